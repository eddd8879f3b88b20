"""
Tests for relationship path resolution.
"""
import gc

import pytest

from entitycache.data.errors import NotFoundError
from entitycache.data.path import (
    PathResolver, get_entity_from_cache, get_from_entities
)
from entitycache.data.schema import (
    RelationshipKind, Schema, is_children_property, is_parent_property,
    is_relationship_property
)
from entitycache.data.snapshot import Snapshot

from conftest import Child, Parent, Toy


class TestClassification:
    """Tests for relationship property classification."""

    def test_relationship_properties(self):
        assert is_relationship_property("ParentID")
        assert is_relationship_property("ChildEntities")
        assert not is_relationship_property("ID")
        assert not is_relationship_property("Name")

    def test_parent_and_children_properties(self):
        assert is_parent_property("ParentID")
        assert not is_parent_property("ID")
        assert not is_parent_property("ChildEntities")
        assert is_children_property("ChildEntities")
        assert not is_children_property("ParentID")

    def test_describe_resolves_target_types(self, resolver):
        parent_ref = resolver.describe("Child", "ParentID")
        assert parent_ref.kind is RelationshipKind.PARENT_REF
        assert parent_ref.target_type == "Parent"

        children = resolver.describe("Parent", "ChildEntities")
        assert children.kind is RelationshipKind.CHILD_COLLECTION
        assert children.target_type == "Child"

        scalar = resolver.describe("Child", "Name")
        assert scalar.kind is RelationshipKind.SCALAR
        assert scalar.target_type is None

    def test_describe_is_memoized(self, resolver):
        assert resolver.describe("Child", "ParentID") is resolver.describe("Child", "ParentID")


class TestTargetEntity:
    """Tests for get_target_entity path walking."""

    def test_children_filtered_by_parent_field(self, resolver):
        cache = {
            "Parent": [Parent(type="Parent", id=1)],
            "Child": [
                Child(type="Child", id=10, ParentID=1),
                Child(type="Child", id=11, ParentID=2),
            ],
        }
        result = resolver.get_target_entity(
            cache, "ChildEntities", "Parent", cache["Parent"][0], parent_field="ParentID")
        assert result == [Child(type="Child", id=10, ParentID=1)]

    def test_children_without_parent_field_returns_all(self, resolver, cache):
        result = resolver.get_target_entity(cache, "ChildEntities", "Parent", cache["Parent"][0])
        assert [c.id for c in result] == [10, 11, 12]

    def test_parent_reference(self, resolver, cache):
        child = cache["Child"][0]
        result = resolver.get_target_entity(cache, "ParentID", "Child", child)
        assert result == [cache["Parent"][0]]

    def test_parent_reference_from_many_targets(self, resolver, cache):
        result = resolver.get_target_entity(cache, "ParentID", "Child", cache["Child"])
        assert [p.id for p in result] == [1, 2]

    def test_scalar_projection(self, resolver, cache):
        result = resolver.get_target_entity(cache, "Name", "Child", cache["Child"])
        assert result == ["Ann", "Bob", "Cid"]

    def test_multi_segment_path(self, resolver, cache):
        """ParentID.Name walks to the parent then projects its name."""
        child = cache["Child"][1]
        result = resolver.get_target_entity(cache, "ParentID.Name", "Child", child)
        assert result == ["Zed"]

    def test_parent_field_only_applied_once(self, resolver, cache):
        """The back reference filters the first child collection only."""
        parent = cache["Parent"][0]
        result = resolver.get_target_entity(
            cache, "ChildEntities.ToyEntities", "Parent", parent, parent_field="ParentID")
        # ToyEntities is not narrowed to Ann/Cid's toys
        assert [t.id for t in result] == [100, 101]

    def test_path_as_segment_list(self, resolver, cache):
        child = cache["Child"][0]
        result = resolver.get_target_entity(cache, ["ParentID", "Name"], "Child", child)
        assert result == ["Alice"]

    def test_missing_type_in_cache(self, resolver, cache):
        del cache["Parent"]
        with pytest.raises(NotFoundError):
            resolver.get_target_entity(cache, "ParentID", "Child", cache["Child"][0])

    def test_missing_schema_field(self, resolver, cache):
        with pytest.raises(NotFoundError):
            resolver.get_target_entity(cache, "OwnerID", "Child", cache["Child"][0])

    def test_missing_schema_type(self, cache):
        resolver = PathResolver(Schema())
        with pytest.raises(NotFoundError):
            resolver.get_target_entity(cache, "ParentID", "Child", cache["Child"][0])

    def test_works_against_snapshot(self, resolver, cache):
        snapshot = Snapshot(cache)
        result = resolver.get_target_entity(
            snapshot.as_cache(), "ChildEntities", "Parent", snapshot.get_entity("Parent", 2),
            parent_field="ParentID")
        assert [c.Name for c in result] == ["Bob"]


class TestDisplayValue:
    """Tests for memoized display values."""

    def test_single_value(self, resolver, cache):
        child = cache["Child"][0]
        assert resolver.get_entity_display_value(cache, "ParentID.Name", "Child", child) == "Alice"

    def test_multiple_values_are_joined(self, resolver, cache):
        parent = cache["Parent"][0]
        value = resolver.get_entity_display_value(
            cache, "ChildEntities", "Parent", parent, parent_field="ParentID")
        assert value == "Ann, Cid"

    def test_no_value(self, resolver, cache):
        parent = Parent(type="Parent", id=3)
        value = resolver.get_entity_display_value(
            cache, "ChildEntities", "Parent", parent, parent_field="ParentID")
        assert value is None

    def test_memo_hit_skips_resolution(self, resolver, cache, monkeypatch):
        child = cache["Child"][0]
        calls = []
        original = resolver.get_target_entity

        def counting(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(resolver, "get_target_entity", counting)
        first = resolver.get_entity_display_value(cache, "ParentID.Name", "Child", child)
        second = resolver.get_entity_display_value(cache, "ParentID.Name", "Child", child)
        assert first == second == "Alice"
        assert len(calls) == 1

    def test_memo_is_per_entity_and_path(self, resolver, cache):
        ann, bob = cache["Child"][0], cache["Child"][1]
        assert resolver.get_entity_display_value(cache, "ParentID.Name", "Child", ann) == "Alice"
        assert resolver.get_entity_display_value(cache, "ParentID.Name", "Child", bob) == "Zed"
        assert resolver.get_entity_display_value(cache, "Name", "Child", ann) == "Ann"

    def test_entity_is_not_mutated(self, resolver, cache):
        child = cache["Child"][0]
        before = child.model_dump()
        resolver.get_entity_display_value(cache, "ParentID.Name", "Child", child)
        assert child.model_dump() == before

    def test_memo_is_dropped_with_the_entity(self, resolver, cache):
        toy = Toy(type="Toy", id=9, Name="Kite", ChildID=1)
        assert resolver.get_entity_display_value(cache, "Name", "Toy", toy) == "Kite"
        assert id(toy) in resolver._display_values

        key = id(toy)
        del toy
        gc.collect()
        assert key not in resolver._display_values


class TestHelpers:
    """Tests for the cache helper functions."""

    def test_get_from_entities(self, cache):
        assert get_from_entities(cache["Child"][0], "ID") == [10]
        assert get_from_entities(cache["Child"], "ParentID") == [1, 2, 1]

    def test_get_entity_from_cache(self, cache):
        assert get_entity_from_cache(cache, "Toy", 101).Name == "Kite"
        assert get_entity_from_cache(cache, "Toy", "Ball", field="Name").id == 100
        assert get_entity_from_cache(cache, "Toy", 999) is None
        with pytest.raises(NotFoundError):
            get_entity_from_cache(cache, "Missing", 1)
