############################################################
# entity.py
############################################################

"""
Entity model for the client-side entity cache.

An entity is a typed record with a required `type` tag and an integer `id`:

- `id > 0`   server-confirmed entity
- `id < 0`   locally created entity holding a temporary id until the server
             assigns a permanent one
- `id == 0`  new entity that has not been given a temporary id yet

Any other named field is carried as-is. Field naming conventions carry the
relationship information used by the path resolver:

- `XxxID`        parent reference (the id of an `Xxx`-ish related entity)
- `XxxEntities`  child collection

The wire format uses `ID` for the id field; both `id` and `ID` are accepted
on input.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

ID_FIELD = "ID"


class Entity(BaseModel):
    """
    Base class for all cached entities.

    Attributes:
        type: The entity type name (cache key)
        id: Entity identifier (see module docstring for the sign convention)
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    id: int = Field(alias=ID_FIELD)

    def value_of(self, field: str) -> Any:
        """
        Read a field by name.

        Args:
            field: Field name; `ID` and `id` both address the identifier

        Returns:
            The field value, or None if the entity has no such field
        """
        if field in (ID_FIELD, "id"):
            return self.id
        if field == "type":
            return self.type
        extra = self.__pydantic_extra__ or {}
        if field in extra:
            return extra[field]
        return getattr(self, field, None)

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-compatible dict using wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    def __str__(self) -> str:
        name = self.value_of("Name")
        if name is not None:
            return str(name)
        return f"{self.type}({self.id})"


def is_new(entity: Entity) -> bool:
    """Whether the entity has not been saved on the server yet."""
    return entity.id <= 0


def is_temporary(entity: Entity) -> bool:
    """Whether the entity carries a locally assigned temporary id."""
    return entity.id < 0
