"""
Default filter-expression evaluator for cached queries.

Turns a LINQ-like textual predicate into a function filtering an entity list:

    filter_fn = LinqParser.parse('e => e.Age >= 18 && e.Name.StartsWith("A")')
    adults = filter_fn(users)

Supported grammar:

    expr       := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := ("!" | "not") not_expr | comparison
    comparison := operand (("==" | "!=" | "<" | "<=" | ">" | ">=") operand)?
    operand    := literal | member ("." method "(" literal ")")? | "(" expr ")"
    method     := StartsWith | EndsWith | Contains

An optional lambda prefix (`e =>`) and member prefix (`e.`) are accepted. Any
parse error raises ValueError.
"""
import logging
import operator
import re
from typing import Any, Callable, List, Optional, Tuple

from entitycache.data.entity import Entity

logger = logging.getLogger("LinqParser")

EntityFilter = Callable[[List[Entity]], List[Entity]]
Predicate = Callable[[Entity], Any]

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>-?\d+(?:\.\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op>==|!=|<=|>=|&&|\|\||=>|[<>!().,])
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    )
    """,
    re.VERBOSE,
)

_COMPARISONS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_METHODS = {
    "StartsWith": lambda value, arg: isinstance(value, str) and isinstance(arg, str) and value.startswith(arg),
    "EndsWith": lambda value, arg: isinstance(value, str) and isinstance(arg, str) and value.endswith(arg),
    "Contains": lambda value, arg: (
        isinstance(value, (list, tuple)) and arg in value
        or isinstance(value, str) and isinstance(arg, str) and arg in value
    ),
}

_KEYWORDS = {"true": True, "false": False, "null": None}

Token = Tuple[str, str]


def _tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    stripped = expression.rstrip()
    while pos < len(stripped):
        match = _TOKEN_RE.match(stripped, pos)
        if not match or match.end() == pos:
            raise ValueError(f"Unexpected character at {pos} in filter {expression!r}")
        kind = match.lastgroup
        if kind is None:
            raise ValueError(f"Unexpected character at {pos} in filter {expression!r}")
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _unquote(literal: str) -> str:
    return re.sub(r"\\(.)", r"\1", literal[1:-1])


def _safe_compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        try:
            return bool(op(left, right))
        except TypeError:
            # Ordering against None or mismatched types never matches
            return False
    return compare


class _Parser:
    """Recursive descent parser producing a predicate over one entity."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0
        self.param: Optional[str] = None

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def accept(self, *values: str) -> Optional[str]:
        token = self.peek()
        if token and token[0] in ("op", "name") and token[1] in values:
            self.pos += 1
            return token[1]
        return None

    def expect(self, value: str) -> None:
        if not self.accept(value):
            raise ValueError(f"Expected {value!r} in filter {self.expression!r}")

    def parse(self) -> Predicate:
        # Optional lambda prefix: `e =>`
        if (
            len(self.tokens) > 1
            and self.tokens[0][0] == "name"
            and self.tokens[1] == ("op", "=>")
        ):
            self.param = self.tokens[0][1]
            self.pos = 2
        predicate = self.parse_or()
        if self.peek() is not None:
            raise ValueError(f"Unexpected token {self.peek()[1]!r} in filter {self.expression!r}")
        return predicate

    def parse_or(self) -> Predicate:
        left = self.parse_and()
        while self.accept("||", "or"):
            right = self.parse_and()
            left = (lambda l, r: lambda e: l(e) or r(e))(left, right)
        return left

    def parse_and(self) -> Predicate:
        left = self.parse_not()
        while self.accept("&&", "and"):
            right = self.parse_not()
            left = (lambda l, r: lambda e: l(e) and r(e))(left, right)
        return left

    def parse_not(self) -> Predicate:
        if self.accept("!", "not"):
            inner = self.parse_not()
            return lambda e: not inner(e)
        return self.parse_comparison()

    def parse_comparison(self) -> Predicate:
        left = self.parse_operand()
        token = self.peek()
        if token and token[0] == "op" and token[1] in _COMPARISONS:
            self.pos += 1
            compare = _safe_compare(_COMPARISONS[token[1]])
            right = self.parse_operand()
            return lambda e: compare(left(e), right(e))
        return left

    def parse_operand(self) -> Predicate:
        token = self.peek()
        if token is None:
            raise ValueError(f"Unexpected end of filter {self.expression!r}")
        kind, value = token
        if kind == "op" and value == "(":
            self.pos += 1
            inner = self.parse_or()
            self.expect(")")
            return inner
        if kind == "number":
            self.pos += 1
            number = float(value) if "." in value else int(value)
            return lambda e: number
        if kind == "string":
            self.pos += 1
            text = _unquote(value)
            return lambda e: text
        if kind == "name":
            self.pos += 1
            if value in _KEYWORDS:
                constant = _KEYWORDS[value]
                return lambda e: constant
            return self.parse_member(value)
        raise ValueError(f"Unexpected token {value!r} in filter {self.expression!r}")

    def parse_member(self, name: str) -> Predicate:
        if name == self.param or (self.param is None and name == "e" and self.accept_dot()):
            if name == self.param:
                self.expect(".")
            name = self.expect_name()
        field = name
        getter: Predicate = lambda e: e.value_of(field)
        if self.accept("."):
            method_name = self.expect_name()
            method = _METHODS.get(method_name)
            if method is None:
                raise ValueError(f"Unsupported method {method_name!r} in filter {self.expression!r}")
            self.expect("(")
            argument = self.parse_operand()
            self.expect(")")
            return lambda e: method(getter(e), argument(e))
        return getter

    def accept_dot(self) -> bool:
        # `e.Field` without an explicit lambda parameter
        token = self.peek()
        if token == ("op", ".") and self.pos + 1 < len(self.tokens) and self.tokens[self.pos + 1][0] == "name":
            self.pos += 1
            return True
        return False

    def expect_name(self) -> str:
        token = self.peek()
        if token is None or token[0] != "name":
            raise ValueError(f"Expected a field name in filter {self.expression!r}")
        self.pos += 1
        return token[1]


class LinqParser:
    """Parses filter expressions into entity list filters."""

    @staticmethod
    def parse(expression: str) -> EntityFilter:
        """
        Compile a filter expression.

        Args:
            expression: LINQ-like predicate; empty matches every entity

        Returns:
            Function filtering a list of entities, preserving order

        Raises:
            ValueError: If the expression cannot be parsed
        """
        if not expression or not expression.strip():
            return lambda entities: list(entities)
        predicate = _Parser(expression).parse()
        logger.debug(f"Compiled filter {expression!r}")

        def apply(entities: List[Entity]) -> List[Entity]:
            return [e for e in entities if predicate(e)]

        return apply
