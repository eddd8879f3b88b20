"""
Common fixtures and setup for entity cache tests.
Provides test entity classes, a schema and store factories.
"""
import pytest
from typing import Callable, List, Optional

from entitycache.data.entity import Entity
from entitycache.data.local_store import LocalStore
from entitycache.data.path import PathResolver
from entitycache.data.schema import EntityTypeRegistry, Schema
from entitycache.storage import InMemoryKeyValueStorage

# ========================================================================
# Test entity classes
# ========================================================================

class User(Entity):
    """A user with a few scalar fields."""
    FirstName: str = ""
    LastName: str = ""
    Age: int = 0


class Parent(Entity):
    """Parent side of a one-to-many relationship."""
    Name: str = ""


class Child(Entity):
    """Child pointing at its Parent through ParentID."""
    Name: str = ""
    ParentID: Optional[int] = None


class Toy(Entity):
    """Grandchild pointing at its Child through ChildID."""
    Name: str = ""
    ChildID: Optional[int] = None


def make_children() -> List[Child]:
    return [
        Child(type="Child", id=11, Name="Bob", ParentID=2),
        Child(type="Child", id=10, Name="Ann", ParentID=1),
        Child(type="Child", id=12, Name="Cid", ParentID=1),
    ]


# ========================================================================
# Fixtures
# ========================================================================

@pytest.fixture
def schema() -> Schema:
    """Schema describing the Parent/Child/Toy relationships."""
    return Schema.from_dict({
        "Parent": {"Name": None, "ChildEntities": "Child"},
        "Child": {"Name": None, "ParentID": "Parent", "ToyEntities": "Toy"},
        "Toy": {"Name": None, "ChildID": "Child"},
    })


@pytest.fixture
def resolver(schema: Schema) -> PathResolver:
    return PathResolver(schema)


@pytest.fixture
def cache():
    """Type-indexed cache with two parents, three children and two toys."""
    return {
        "Parent": [
            Parent(type="Parent", id=1, Name="Alice"),
            Parent(type="Parent", id=2, Name="Zed"),
        ],
        "Child": sorted(make_children(), key=lambda c: c.id),
        "Toy": [
            Toy(type="Toy", id=100, Name="Ball", ChildID=10),
            Toy(type="Toy", id=101, Name="Kite", ChildID=11),
        ],
    }


@pytest.fixture
def registry() -> EntityTypeRegistry:
    reg = EntityTypeRegistry()
    reg.register("User", User)
    reg.register("Parent", Parent)
    reg.register("Child", Child)
    return reg


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    """Durable storage shared by every store built in one test."""
    return InMemoryKeyValueStorage()


@pytest.fixture
def make_store(storage, registry) -> Callable[..., LocalStore]:
    """Factory building stores over the same storage (simulates restarts)."""
    def factory(db_version: str = "v1", prefix: str = "TEST:") -> LocalStore:
        return LocalStore(storage, db_version, registry=registry, prefix=prefix)
    return factory
