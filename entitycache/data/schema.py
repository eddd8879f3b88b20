"""
Schema provider, relationship descriptors and entity type registry.

The path resolver never guesses related types from field names alone: a
relationship field (`XxxID` / `XxxEntities`) is turned into an explicit
Relationship descriptor by asking the schema which entity type the field
points at. Descriptors are plain values and can be memoized per
(type, field).

Main components:
- SchemaProvider: protocol for anything that can map (type, field) to a type
- Schema / EntitySchema / FieldSchema: concrete in-memory schema
- Relationship / RelationshipKind: tagged field descriptor
- EntityTypeRegistry: turns raw persisted records back into typed entities
"""
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Type

from pydantic import BaseModel, Field

from entitycache.data.entity import ID_FIELD, Entity
from entitycache.data.errors import NotFoundError

PARENT_SUFFIX = "ID"
CHILDREN_SUFFIX = "Entities"


##############################
# 1) Field classification
##############################

def is_relationship_property(field: str) -> bool:
    """Whether the field points to a parent or a child collection."""
    return field != ID_FIELD and (
        field.endswith(PARENT_SUFFIX) or field.endswith(CHILDREN_SUFFIX)
    )


def is_parent_property(field: str) -> bool:
    """Whether the field is a parent reference (`XxxID`)."""
    return is_relationship_property(field) and field.endswith(PARENT_SUFFIX)


def is_children_property(field: str) -> bool:
    """Whether the field is a child collection (`XxxEntities`)."""
    return field.endswith(CHILDREN_SUFFIX)


##############################
# 2) Schema
##############################

class SchemaProvider(Protocol):
    """Maps a relationship field of an entity type to the related type."""

    def get_related_type(self, type_name: str, field: str) -> str: ...


class FieldSchema(BaseModel):
    """A single entity field; `entity_type` is set for relationship fields."""
    name: str
    entity_type: Optional[str] = None


class EntitySchema(BaseModel):
    """Field definitions of one entity type."""
    name: str
    fields: Dict[str, FieldSchema] = Field(default_factory=dict)

    def get_field(self, name: str) -> FieldSchema:
        field = self.fields.get(name)
        if field is None:
            raise NotFoundError(f"Field {name!r} not found in schema of {self.name!r}")
        return field


class Schema:
    """In-memory schema provider built from EntitySchema definitions."""

    def __init__(self, entities: Iterable[EntitySchema] = ()) -> None:
        self._logger = logging.getLogger("Schema")
        self._entities: Dict[str, EntitySchema] = {}
        for entity_schema in entities:
            self.add(entity_schema)

    @classmethod
    def from_dict(cls, definition: Mapping[str, Mapping[str, Optional[str]]]) -> "Schema":
        """
        Build a schema from `{type: {field: related_type_or_None}}`.

        Example:
            Schema.from_dict({"Child": {"ParentID": "Parent", "Name": None}})
        """
        return cls(
            EntitySchema(
                name=type_name,
                fields={
                    name: FieldSchema(name=name, entity_type=related)
                    for name, related in fields.items()
                },
            )
            for type_name, fields in definition.items()
        )

    def add(self, entity_schema: EntitySchema) -> None:
        self._entities[entity_schema.name] = entity_schema

    def get_entity_schema(self, type_name: str) -> EntitySchema:
        entity_schema = self._entities.get(type_name)
        if entity_schema is None:
            self._logger.error(f"No schema registered for type {type_name!r}")
            raise NotFoundError(f"Type {type_name!r} not found in schema")
        return entity_schema

    def get_related_type(self, type_name: str, field: str) -> str:
        related = self.get_entity_schema(type_name).get_field(field).entity_type
        if not related:
            raise NotFoundError(
                f"Field {type_name}.{field} does not reference another entity type"
            )
        return related


##############################
# 3) Relationship descriptors
##############################

class RelationshipKind(Enum):
    """How a path segment is followed."""
    SCALAR = "scalar"
    PARENT_REF = "parent_ref"
    CHILD_COLLECTION = "child_collection"


class Relationship(BaseModel):
    """Resolved descriptor of one field of one entity type."""
    field: str
    kind: RelationshipKind
    target_type: Optional[str] = None


def describe_field(schema: SchemaProvider, type_name: str, field: str) -> Relationship:
    """
    Classify a field and resolve its target type against the schema.

    Scalar fields never touch the schema.

    Raises:
        NotFoundError: If a relationship field is unknown to the schema
    """
    if is_parent_property(field):
        kind = RelationshipKind.PARENT_REF
    elif is_children_property(field):
        kind = RelationshipKind.CHILD_COLLECTION
    else:
        return Relationship(field=field, kind=RelationshipKind.SCALAR)
    return Relationship(
        field=field,
        kind=kind,
        target_type=schema.get_related_type(type_name, field),
    )


##############################
# 4) Entity type registry
##############################

class EntityTypeRegistry:
    """
    Registry of entity classes used to parse persisted records.

    Types without a registered class are parsed into the base Entity.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("EntityTypeRegistry")
        self._types: Dict[str, Type[Entity]] = {}

    def register(self, type_name: str, entity_cls: Type[Entity]) -> None:
        if not issubclass(entity_cls, Entity):
            raise ValueError(f"{entity_cls.__name__} is not an Entity subclass")
        self._types[type_name] = entity_cls
        self._logger.debug(f"Registered {entity_cls.__name__} for type {type_name!r}")

    def get_class(self, type_name: str) -> Type[Entity]:
        return self._types.get(type_name, Entity)

    def parse_entities(self, type_name: str, raw_records: List[Dict[str, Any]]) -> List[Entity]:
        """
        Parse raw (deserialized JSON) records into typed entities.

        Args:
            type_name: Entity type of every record
            raw_records: Records as produced by Entity.to_json

        Returns:
            Typed entities in the original order
        """
        entity_cls = self.get_class(type_name)
        entities = []
        for record in raw_records:
            data = dict(record)
            data.setdefault("type", type_name)
            entities.append(entity_cls.model_validate(data))
        return entities
