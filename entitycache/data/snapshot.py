"""
Read-only, id-sorted snapshot of a batch of entities.

A snapshot wraps a point-in-time entity set (typically a server response or
LocalStore query results keyed by `Type:Linq`) and serves id lookups by
binary search. It is never mutated after construction except by `extend`,
which replaces whole per-type lists.
"""
import logging
from bisect import bisect_left
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Sequence

from entitycache.data.entity import Entity
from entitycache.data.errors import InvariantViolationError, NotFoundError

logger = logging.getLogger("Snapshot")


def _is_sorted(entities: Sequence[Entity]) -> bool:
    return all(a.id < b.id for a, b in zip(entities, entities[1:]))


class Snapshot:
    """
    Type-indexed view over a batch of entities, each type sorted by id.

    Args:
        raw: Mapping of cache key to unsorted entity list. Keys may carry a
            `:suffix` (e.g. query string keys); only the part before the
            colon is the type name.

    Raises:
        InvariantViolationError: If the same type is supplied twice or a
            type's list holds duplicate ids
    """

    def __init__(self, raw: Mapping[str, Sequence[Entity]]) -> None:
        self._cache: Dict[str, List[Entity]] = {}
        for key, entities in raw.items():
            type_name = key.split(":")[0]
            if type_name in self._cache:
                logger.error(f"Type {type_name!r} supplied twice (key {key!r})")
                raise InvariantViolationError(f"Type {type_name!r} supplied more than once")
            ordered = sorted(entities, key=lambda e: e.id)
            if not _is_sorted(ordered):
                logger.error(f"Duplicate ids in {type_name!r} batch")
                raise InvariantViolationError(f"Duplicate ids supplied for type {type_name!r}")
            self._cache[type_name] = ordered
        logger.debug(f"Created snapshot of {len(self._cache)} type(s)")

    def get(self, type_name: str) -> List[Entity]:
        """
        Get a copy of the entities of a type.

        Raises:
            NotFoundError: If the type is not in this snapshot
        """
        return list(self._get_impl(type_name))

    def get_entity(self, type_name: str, entity_id: int) -> Entity:
        """
        Binary search an entity by id.

        This is on the hot path of grid rendering; the sortedness checks only
        run when assertions are enabled.

        Raises:
            NotFoundError: If the type or the id is not in this snapshot
        """
        assert isinstance(entity_id, int), f"Invalid id: {entity_id!r}"
        entities = self._get_impl(type_name)
        assert _is_sorted(entities), f"{type_name} entities are not sorted by id"

        idx = bisect_left(entities, entity_id, key=lambda e: e.id)
        if idx < len(entities) and entities[idx].id == entity_id:
            return entities[idx]
        raise NotFoundError(f"Could not find entity of type {type_name} id: {entity_id}")

    def extend(self, other: "Snapshot") -> None:
        """Replace this snapshot's list for every type present in other."""
        if not isinstance(other, Snapshot):
            raise TypeError(f"Expected a Snapshot, got {type(other).__name__}")
        for type_name, entities in other._cache.items():
            self._cache[type_name] = entities
        logger.debug(f"Extended snapshot with {len(other._cache)} type(s)")

    def types(self) -> List[str]:
        return list(self._cache)

    def as_cache(self) -> Mapping[str, Sequence[Entity]]:
        """Read-only cache view for the path resolver."""
        return MappingProxyType(self._cache)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._cache

    def __iter__(self) -> Iterator[str]:
        return iter(self._cache)

    def _get_impl(self, type_name: str) -> List[Entity]:
        entities = self._cache.get(type_name)
        if entities is None:
            raise NotFoundError(f"Type: {type_name} not in cache.")
        return entities
