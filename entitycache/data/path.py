############################################################
# path.py
############################################################

"""
Relationship path resolution across cached entity sets.

A path is a dotted sequence of field names walked one segment at a time,
starting from an entity (or entity list) of a known type:

- `ParentID`        parent reference: entities of the related type whose id
                    is referenced by any current target
- `ChildEntities`   child collection: every cached entity of the related
                    type, optionally narrowed to the ones pointing back at
                    the current targets through a parent field
- anything else     scalar projection of the field out of every target

Example:
    resolver = PathResolver(schema)
    children = resolver.get_target_entity(
        cache, "ChildEntities", "Parent", parent, parent_field="ParentID")

The parent field cannot be inferred from the path alone (a `Parent` may be
referenced by several fields of `Child`), so the caller names it. It is only
applied to the first child collection segment of a path.
"""
import logging
import weakref
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from entitycache.data.entity import Entity
from entitycache.data.errors import NotFoundError
from entitycache.data.schema import (
    Relationship, RelationshipKind, SchemaProvider, describe_field
)

Cache = Mapping[str, Sequence[Entity]]
Target = Union[Entity, Sequence[Any]]

DISPLAY_CACHE_SUFFIX = "_cache"


def get_from_cache(cache: Cache, type_name: str) -> Sequence[Entity]:
    """
    Get all cached entities of a type.

    Raises:
        NotFoundError: If the type is not in the cache (never returns empty)
    """
    if type_name in cache:
        return cache[type_name]
    raise NotFoundError(f"Could not find {type_name!r} in the cache.")


def get_from_entities(entities: Target, field: str) -> List[Any]:
    """Project a field out of an entity or every entity in a list."""
    if isinstance(entities, Entity):
        return [entities.value_of(field)]
    return [_value_of(e, field) for e in entities]


def get_entity_from_cache(
    cache: Cache, type_name: str, value: Any, field: str = "ID"
) -> Optional[Entity]:
    """
    Find the first cached entity of a type whose field equals value.

    Returns:
        The matched entity, or None if nothing matches
    """
    for entity in get_from_cache(cache, type_name):
        if entity.value_of(field) == value:
            return entity
    return None


def _value_of(item: Any, field: str) -> Any:
    if isinstance(item, Entity):
        return item.value_of(field)
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


class PathResolver:
    """
    Resolves dotted relationship paths against a type-indexed cache.

    The schema is injected; relationship descriptors are resolved against it
    once per (type, field) and reused. Display values are memoized in a side
    table owned by the resolver so entities themselves are never mutated.
    """

    def __init__(self, schema: SchemaProvider) -> None:
        self._logger = logging.getLogger("PathResolver")
        self._schema = schema
        self._relationships: Dict[Tuple[str, str], Relationship] = {}
        self._display_values: Dict[int, Dict[str, Any]] = {}

    def describe(self, type_name: str, field: str) -> Relationship:
        """Get the (memoized) relationship descriptor of a field."""
        key = (type_name, field)
        relationship = self._relationships.get(key)
        if relationship is None:
            relationship = describe_field(self._schema, type_name, field)
            self._relationships[key] = relationship
        return relationship

    def get_target_entity(
        self,
        cache: Cache,
        path: Union[str, Sequence[str]],
        type_name: str,
        target: Target,
        parent_field: Optional[str] = None,
    ) -> List[Any]:
        """
        Follow a path from the target and return what it reaches.

        Args:
            cache: Type-indexed cache to read related entities from
            path: Dotted path or list of segments
            type_name: Type of the current target entity(s)
            target: Starting entity or entity list
            parent_field: Field of the first child collection type pointing
                back at the target (e.g. `ParentID` for `ChildEntities`)

        Returns:
            The reached entities, or projected values for a scalar last step

        Raises:
            NotFoundError: If a related type is missing from schema or cache
        """
        if not path:
            raise ValueError("path is required")
        segments = path.split(".") if isinstance(path, str) else list(path)
        current: List[Any] = [target] if isinstance(target, Entity) else list(target)
        current_type = type_name

        for segment in segments:
            relationship = self.describe(current_type, segment)

            if relationship.kind is RelationshipKind.PARENT_REF:
                ids = set(get_from_entities(current, segment))
                current_type = relationship.target_type
                current = [e for e in get_from_cache(cache, current_type) if e.id in ids]
            elif relationship.kind is RelationshipKind.CHILD_COLLECTION:
                current_type = relationship.target_type
                children = get_from_cache(cache, current_type)
                if parent_field:
                    ids = set(get_from_entities(current, "ID"))
                    current = [e for e in children if e.value_of(parent_field) in ids]
                    parent_field = None
                else:
                    current = list(children)
            else:
                current = get_from_entities(current, segment)

            self._logger.debug(
                f"Resolved segment {segment!r} ({relationship.kind.value}) "
                f"to {len(current)} item(s)"
            )

        return current

    def get_entity_display_value(
        self,
        cache: Cache,
        path: str,
        type_name: str,
        target: Entity,
        parent_field: Optional[str] = None,
    ) -> Any:
        """
        Compute (once) the display value of a path for an entity.

        Multiple reached items are joined with ", ", a single item is returned
        as-is and an empty result gives None. The value is memoized per entity
        and path; later calls return it without resolving again.
        """
        memo = self._memo_for(target)
        cache_key = path + DISPLAY_CACHE_SUFFIX
        if cache_key in memo:
            return memo[cache_key]

        reached = self.get_target_entity(cache, path, type_name, target, parent_field)
        if len(reached) > 1:
            value: Any = ", ".join(str(item) for item in reached)
        else:
            value = reached[0] if reached else None
        memo[cache_key] = value
        return value

    def _memo_for(self, entity: Entity) -> Dict[str, Any]:
        key = id(entity)
        memo = self._display_values.get(key)
        if memo is None:
            memo = self._display_values[key] = {}
            # Drop the entry with the entity so a recycled id() never hits it
            weakref.finalize(entity, self._display_values.pop, key, None)
        return memo
