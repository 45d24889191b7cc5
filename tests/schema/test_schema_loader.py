"""Tests for schema loading and the schema registry."""

import json

import pytest

from relationship_resolver.filters import FilterCondition, FilterGroup, FilterLogic, FilterOperator
from relationship_resolver.schema import (
    AggregateFunction,
    CollectionSchema,
    PropertyKind,
    PropertySchema,
    SchemaLoadError,
    SchemaLoader,
    SchemaProvider,
    SchemaRegistry,
    load_schema,
)


class TestLoadSampleSchema:
    def test_collections_in_definition_order(self, schema_registry):
        assert schema_registry.list_collections() == ["users", "categories", "projects", "tasks"]

    def test_registry_is_a_schema_provider(self, schema_registry):
        assert isinstance(schema_registry, SchemaProvider)

    def test_lookup_property(self, schema_registry):
        prop = schema_registry.get_property("projects", "owner_email")
        assert prop.kind == PropertyKind.LOOKUP
        assert prop.reference_property == "owner"
        assert prop.target_collection == "users"
        assert prop.source_property == "email"
        assert prop.is_computed

    def test_rollup_filter_parsed(self, schema_registry):
        prop = schema_registry.get_property("projects", "open_hours")
        assert prop.aggregate == AggregateFunction.SUM
        assert prop.filter == FilterCondition("status", FilterOperator.NOT_EQUALS, "done")

    def test_rollup_or_filter_parsed(self, schema_registry):
        prop = schema_registry.get_property("projects", "open_task_titles")
        assert isinstance(prop.filter, FilterGroup)
        assert prop.filter.logic == FilterLogic.OR
        assert len(prop.filter.conditions) == 2

    def test_hierarchical_property(self, schema_registry):
        prop = schema_registry.get_property("categories", "tree")
        assert prop.kind == PropertyKind.HIERARCHICAL
        assert prop.parent_property == "parent"
        assert prop.max_depth == 10

    def test_display_name_defaults(self, schema_registry):
        schema = schema_registry.get_collection_schema("users")
        assert schema.display_name == "Users"
        assert schema.get_property("email").display_name == "email"
        assert schema.id_field == "id"


class TestSchemaValidation:
    def test_lookup_missing_fields(self):
        with pytest.raises(SchemaLoadError, match="source_property"):
            load_schema({"a": {"properties": [
                {"code": "x", "kind": "lookup", "reference_property": "r", "target_collection": "b"},
            ]}})

    def test_rollup_requires_source_for_sum(self):
        with pytest.raises(SchemaLoadError, match="source_property"):
            load_schema({"a": {"properties": [
                {"code": "x", "kind": "rollup", "reference_property": "r",
                 "target_collection": "b", "aggregate": "sum"},
            ]}})

    def test_count_needs_no_source(self):
        registry = load_schema({"a": {"properties": [
            {"code": "x", "kind": "rollup", "reference_property": "r",
             "target_collection": "b", "aggregate": "count"},
        ]}})
        assert registry.get_property("a", "x").source_property is None

    def test_unknown_field_rejected(self):
        with pytest.raises(SchemaLoadError):
            load_schema({"a": {"properties": [{"code": "x", "formula": "1+1"}]}})

    def test_unknown_kind_rejected(self):
        with pytest.raises(SchemaLoadError):
            load_schema({"a": {"properties": [{"code": "x", "kind": "formula"}]}})

    def test_duplicate_property_codes(self):
        with pytest.raises(SchemaLoadError, match="Duplicate"):
            load_schema({"a": {"properties": [{"code": "x"}, {"code": "x"}]}})

    def test_bad_filter_operator(self):
        with pytest.raises(SchemaLoadError):
            load_schema({"a": {"properties": [
                {"code": "x", "kind": "rollup", "reference_property": "r", "target_collection": "b",
                 "aggregate": "count", "filter": {"field": "s", "operator": "like"}},
            ]}})


class TestLoaderFiles:
    def test_load_json(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({"a": {"properties": [{"code": "name"}]}}))
        registry = SchemaLoader().load_file(path)
        assert registry.list_collections() == ["a"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SchemaLoader().load_file(tmp_path / "nope.yaml")

    def test_directory_later_files_override(self, tmp_path):
        (tmp_path / "01-base.yaml").write_text("a:\n  properties:\n    - code: one\n")
        (tmp_path / "02-override.yaml").write_text("a:\n  properties:\n    - code: two\n")
        registry = load_schema(tmp_path)
        assert [p.code for p in registry.get_collection_schema("a").properties] == ["two"]


class TestSchemaRegistry:
    def test_register_and_remove(self):
        registry = SchemaRegistry()
        registry.register(CollectionSchema("a", (PropertySchema("x"),)))
        assert "a" in registry
        assert len(registry) == 1
        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert registry.get_collection_schema("a") is None

    def test_atomic_replace(self):
        registry = SchemaRegistry()
        registry.register(CollectionSchema("a"))
        registry.atomic_replace([CollectionSchema("b"), CollectionSchema("c")])
        assert registry.list_collections() == ["b", "c"]
