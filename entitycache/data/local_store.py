############################################################
# local_store.py
############################################################

"""
Durable, mutable session cache of entities and cached query results.

The store keeps every cached entity type in memory and mirrors it to a
durable key-value substrate under a namespace prefix:

    {prefix}dbver     schema version the persisted data was written with
    {prefix}last      last update timestamp (decimal string)
    {prefix}queries   JSON array of cached query strings (`Type:Linq`)
    {prefix}{type}    JSON array of the entities of one type

LIFECYCLE:
   1. Construction compares the persisted schema version with the running
      one; a mismatch wipes the whole namespace.
   2. The last update time and cached queries are loaded, then every cached
      type list is parsed back into typed entities through the registry.
   3. Every mutation rewrites the affected aggregate before returning; there
      is no deferred flush.
   4. clear() wipes the namespace; the caller then discards the store.

One store must own a prefix at a time. Two stores on the same prefix
overwrite each other's flushes.

Example Usage:
```python
store = LocalStore(InMemoryKeyValueStorage(), "v1")
store.save_query(Query(type="User"), users)
results = store.query([Query(type="User", linq="e => e.Active == true")])
```
"""
import json
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from entitycache.data.config import DEFAULT_PREFIX, CacheSettings
from entitycache.data.entity import Entity
from entitycache.data.errors import (
    InvariantViolationError, NotFoundError, UnsupportedEnvironmentError
)
from entitycache.data.linq import EntityFilter, LinqParser
from entitycache.data.query import Query
from entitycache.data.schema import EntityTypeRegistry
from entitycache.data.snapshot import Snapshot
from entitycache.storage import create_storage
from entitycache.storage.base import KeyValueStorage

FilterEvaluator = Callable[[str], EntityFilter]

DBVER_KEY = "dbver"
LAST_KEY = "last"
QUERIES_KEY = "queries"


class LocalStore:
    """
    Long-lived entity cache persisted to a durable key-value storage.

    Args:
        storage: Durable substrate; None means no durable storage exists
        db_version: Running schema version
        registry: Parses persisted records back into typed entities
        filter_evaluator: Compiles query filter expressions
        prefix: Namespace prefix of every durable key

    Raises:
        UnsupportedEnvironmentError: If no storage is given
        InvariantViolationError: If the persisted state is inconsistent
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage],
        db_version: str,
        registry: Optional[EntityTypeRegistry] = None,
        filter_evaluator: Optional[FilterEvaluator] = None,
        prefix: str = DEFAULT_PREFIX,
    ) -> None:
        self._logger = logging.getLogger("LocalStore")
        if storage is None:
            self._logger.error("No durable storage available")
            raise UnsupportedEnvironmentError("The current environment has no durable storage")

        self._storage = storage
        self._registry = registry or EntityTypeRegistry()
        self._filter_evaluator = filter_evaluator or LinqParser.parse
        self._prefix = prefix
        self._db_version = db_version
        self._last_update = 0
        self._cache: Dict[str, List[Entity]] = {}
        self._cached_queries: Dict[str, Query] = {}

        self._check_db_version(db_version)
        self._load()

    @classmethod
    def from_settings(
        cls,
        settings: CacheSettings,
        storage: Optional[KeyValueStorage] = None,
        registry: Optional[EntityTypeRegistry] = None,
    ) -> "LocalStore":
        """Build a store (and, unless given, its storage) from settings."""
        if storage is None:
            storage = create_storage(settings)
        return cls(storage, settings.db_version, registry=registry, prefix=settings.prefix)

    ##############################
    # Entity access and mutation
    ##############################

    def get_entity(self, type_name: str, entity_id: int) -> Entity:
        """
        Get a cached entity by id.

        Raises:
            NotFoundError: If the type or the entity is not cached
        """
        for entity in self._get_list(type_name):
            if entity.id == entity_id:
                return entity
        raise NotFoundError(f"Could not find entity: {type_name}.{entity_id} in the cache.")

    def create_entity(self, entity: Entity) -> Entity:
        """
        Add a locally created entity holding a temporary (negative) id.

        Returns:
            The same entity, now cached

        Raises:
            ValueError: If the entity has no temporary id
            NotFoundError: If the entity type is not cached
            InvariantViolationError: If the temporary id is already cached
        """
        if entity.id >= 0:
            raise ValueError(f"New entities need a temporary negative id, got {entity.id}")
        entities = self._get_list(entity.type)
        if any(e.id == entity.id for e in entities):
            self._logger.error(f"Temporary id {entity.id} already used for {entity.type!r}")
            raise InvariantViolationError(
                f"Temporary id {entity.id} is already cached for type {entity.type!r}"
            )
        entities.append(entity)
        self._flush(entity.type)
        return entity

    def update_entity(self, entity: Entity, temp_id: Optional[int] = None) -> None:
        """
        Replace a cached entity in place.

        Args:
            entity: New version of the entity
            temp_id: Temporary id the entity was cached under, used when the
                server has just assigned its permanent id

        Raises:
            ValueError: If temp_id is given but not negative
            NotFoundError: If the type or the entity is not cached
        """
        if temp_id is not None and temp_id >= 0:
            raise ValueError(f"Temporary ids are negative, got {temp_id}")
        entity_id = temp_id if temp_id is not None else entity.id
        entities = self._get_list(entity.type)
        for idx, existing in enumerate(entities):
            if existing.id == entity_id:
                entities[idx] = entity
                break
        else:
            self._logger.error(f"Cannot update missing entity {entity.type}.{entity_id}")
            raise NotFoundError(
                f"Could not find entity: {entity.type}.{entity_id} in the cache."
            )
        self._flush(entity.type)

    def delete_entity(self, type_name: str, entity_id: int) -> None:
        """
        Remove an entity; deleting an id that is not cached is a no-op.

        Raises:
            NotFoundError: If the type is not cached
        """
        entities = self._get_list(type_name)
        self._cache[type_name] = [e for e in entities if e.id != entity_id]
        self._flush(type_name)

    def undelete_entity(self, entity: Entity) -> None:
        """
        Restore an entity whose server-side delete failed.

        Raises:
            ValueError: If the entity is not server-confirmed (id <= 0)
        """
        if entity.id <= 0:
            raise ValueError(f"Only saved entities can be undeleted, got id {entity.id}")
        entities = self._cache.setdefault(entity.type, [])
        for idx, existing in enumerate(entities):
            if existing.id == entity.id:
                entities[idx] = entity
                break
        else:
            entities.append(entity)
        self._flush(entity.type)

    ##############################
    # Queries
    ##############################

    def contains(self, query: Query) -> bool:
        """Whether the query's type is cached (whatever its filter)."""
        return query.type in self._cache

    def query(self, queries: Iterable[Query]) -> Dict[str, List[Entity]]:
        """
        Run queries against the cached lists.

        Returns:
            Results keyed by each query's canonical string

        Raises:
            NotFoundError: If a query's type is not cached
        """
        results: Dict[str, List[Entity]] = {}
        for query in queries:
            entities = self._get_list(query.type)
            if query.linq:
                entities = self._filter_evaluator(query.linq)(entities)
            results[query.to_string()] = list(entities)
        return results

    def save_query(self, query: Query, entities: Sequence[Entity]) -> None:
        """
        Merge query results into the cache and remember the query.

        Incoming entities replace cached ones with the same id; cached
        entities missing from the results are kept after them. There is no
        field level merge.
        """
        merged = list(entities)
        current = self._cache.get(query.type)
        if current is not None:
            incoming_ids = {e.id for e in merged}
            merged.extend(e for e in current if e.id not in incoming_ids)
        self._cache[query.type] = merged
        self._cached_queries[query.to_string()] = query
        self._flush(query.type)
        self._flush_cached_queries()

    def get_cached_queries(self) -> List[Query]:
        return list(self._cached_queries.values())

    def to_snapshot(self, queries: Optional[Iterable[Query]] = None) -> Snapshot:
        """Snapshot the results of queries, or of every cached type."""
        if queries is None:
            return Snapshot({t: list(entities) for t, entities in self._cache.items()})
        return Snapshot(self.query(queries))

    @property
    def cache(self) -> Mapping[str, Sequence[Entity]]:
        """Read-only view of the in-memory cache for the path resolver."""
        return MappingProxyType(self._cache)

    ##############################
    # Last update, status and clearing
    ##############################

    def get_last_update(self) -> int:
        return self._last_update

    def set_last_update(self, last_update: int) -> None:
        self._last_update = last_update
        self._storage.set(self._key(LAST_KEY), str(last_update))

    def get_status(self) -> Dict[str, Any]:
        """Diagnostics about the cached content."""
        return {
            "prefix": self._prefix,
            "db_version": self._db_version,
            "last_update": self._last_update,
            "entities_by_type": {t: len(entities) for t, entities in self._cache.items()},
            "cached_queries": list(self._cached_queries),
        }

    def clear(self) -> None:
        """
        Wipe every durable key of this store's namespace.

        In-memory content is left as is; discard the store afterwards.
        """
        self._last_update = 0
        keys = [k for k in self._storage.keys() if k.startswith(self._prefix)]
        for key in keys:
            self._storage.delete(key)
        self._logger.info(f"Cleared {len(keys)} key(s) under {self._prefix!r}")

    ##############################
    # Internal
    ##############################

    def _key(self, suffix: str) -> str:
        return self._prefix + suffix

    def _get_list(self, type_name: str) -> List[Entity]:
        entities = self._cache.get(type_name)
        if entities is None:
            raise NotFoundError(f"The type: {type_name} does not exist in the local cache")
        return entities

    def _check_db_version(self, db_version: str) -> None:
        persisted = self._storage.get(self._key(DBVER_KEY))
        if db_version:
            self._storage.set(self._key(DBVER_KEY), db_version)
        if not db_version or not persisted or db_version == persisted:
            return
        self._logger.info(
            f"Clearing the LocalStore. Version mismatch [{persisted}] != [{db_version}]"
        )
        self.clear()

    def _read_json(self, suffix: str) -> Any:
        raw = self._storage.get(self._key(suffix))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._logger.error(f"Corrupt persisted value for {self._key(suffix)!r}")
            raise InvariantViolationError(
                f"Persisted value of {self._key(suffix)!r} is not valid JSON"
            ) from e

    def _load(self) -> None:
        cached_time = self._storage.get(self._key(LAST_KEY))
        try:
            self._last_update = int(cached_time) if cached_time else 0
        except ValueError as e:
            self._logger.error(f"Persisted last update time is not a number: {cached_time!r}")
            raise InvariantViolationError(f"Corrupt last update time: {cached_time!r}") from e

        query_keys = self._read_json(QUERIES_KEY) or []
        if not query_keys:
            if self._last_update > 0:
                self._logger.error("Last update time is set but the cache is empty")
                raise InvariantViolationError(
                    f"Last update time is set ({self._last_update}) but the cache is empty."
                )
            self._cache = {}
            self._cached_queries = {}
            return

        cached_queries = {qid: Query.from_string(qid) for qid in query_keys}
        self._cache = {}
        for qid, query in cached_queries.items():
            if query.type in self._cache:
                continue
            raw_list = self._read_json(query.type)
            if raw_list is None:
                self._logger.warning(f"No persisted entities for {qid!r}, dropping the query")
                continue
            if not isinstance(raw_list, list):
                raise InvariantViolationError(f"Persisted {query.type!r} entities are not a list")
            self._cache[query.type] = self._registry.parse_entities(query.type, raw_list)

        self._cached_queries = {
            qid: query for qid, query in cached_queries.items() if query.type in self._cache
        }
        self._logger.info(
            f"Loaded {len(self._cache)} type(s) and {len(self._cached_queries)} "
            f"cached quer(ies) from {self._prefix!r}"
        )

    def _flush(self, type_name: str) -> None:
        entities = self._get_list(type_name)
        self._logger.info(f"Flushing {type_name!r}.")
        payload = json.dumps([e.to_json() for e in entities])
        self._storage.set(self._key(type_name), payload)

    def _flush_cached_queries(self) -> None:
        self._storage.set(self._key(QUERIES_KEY), json.dumps(list(self._cached_queries)))
