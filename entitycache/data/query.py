"""
Query identifying a cached entity set.

A query is a (type, linq) pair. Its canonical string form `Type:Linq` is used
as the cache key for query results and for the persisted set of cached
queries, so it must round-trip exactly.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SEPARATOR = ":"


class Query(BaseModel):
    """
    Requested entity type plus an optional LINQ-like filter expression.

    Attributes:
        type: Entity type name
        linq: Filter expression, empty for "all entities of this type"
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str = Field(alias="Type")
    linq: str = Field(default="", alias="Linq")

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        if not value or SEPARATOR in value:
            raise ValueError(f"Invalid query type: {value!r}")
        return value

    def to_string(self) -> str:
        return f"{self.type}{SEPARATOR}{self.linq}"

    @classmethod
    def from_string(cls, value: str) -> "Query":
        """
        Parse a canonical query string.

        Only the first separator splits type from filter, filters may contain
        colons themselves.

        Raises:
            ValueError: If the string has no type part
        """
        type_name, _, linq = value.partition(SEPARATOR)
        if not type_name:
            raise ValueError(f"Invalid query string: {value!r}")
        return cls(type=type_name, linq=linq)

    def __str__(self) -> str:
        return self.to_string()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return self.type == other.type and self.linq == other.linq

    def __hash__(self) -> int:
        return hash((self.type, self.linq))
