"""
Tests for the resource compiler and configuration loading.
"""

import pytest

from resourcegraph.cli.config import Settings, load_resources
from resourcegraph.core.compiler import ResourceCompiler, compile_resources
from resourcegraph.core.errors import GraphConfigError


def _config(**resources):
    return {"resources": resources}


WIDGET = {
    "fields": {
        "id": "int",
        "label": "string",
        "size": "int?",
    },
}


class TestCompile:
    def test_compiles_catalog(self, registry):
        assert registry.names == ["Product", "Offer", "Book", "Note"]
        assert len(registry) == 4
        assert "Offer" in registry

    def test_shorthand_nullable(self):
        registry = compile_resources(_config(Widget=WIDGET))
        size = registry.get("Widget").get_field("size")
        assert size.type == "int"
        assert size.nullable is True
        assert registry.get("Widget").get_field("label").nullable is False

    def test_bare_mapping_is_accepted(self):
        registry = compile_resources({"Widget": WIDGET})
        assert registry.names == ["Widget"]

    def test_keys_default_to_id(self):
        registry = compile_resources(_config(Widget=WIDGET))
        assert registry.get("Widget").keys == ("id",)

    def test_one_relation_defaults(self):
        registry = compile_resources(_config(
            Owner={"fields": {"id": "int", "name": "string"}},
            Pet={"fields": {"id": "int", "owner_id": "int?", "owner": "Owner"}},
        ))
        relation = registry.get("Pet").get_field("owner").relation
        assert relation.cardinality == "one"
        assert relation.ref.from_field == "owner_id"
        assert relation.ref.to_field == "id"

    def test_operations_list_form(self):
        registry = compile_resources(_config(Widget={**WIDGET, "operations": ["query", "create"]}))
        assert registry.get("Widget").exposed_operations == ("query", "create")

    def test_access_message_is_kept(self, registry):
        rule = registry.get("Book").operations["create"].access
        assert rule.message == "Only admins may add books."
        assert registry.get("Book").access.message is None

    def test_list_properties(self):
        registry = compile_resources(_config(Widget={
            **WIDGET,
            "filters": {"sizes": {"kind": "numeric", "properties": ["size"]}},
        }))
        assert set(registry.translator("Widget").arguments) == {"size", "size_list"}

    def test_default_order(self):
        registry = compile_resources(_config(Widget={**WIDGET, "order": {"label": "desc"}}))
        ordering = registry.translator("Widget").translate({}).order
        assert [(o.field, o.dir) for o in ordering] == [("label", "desc"), ("id", "asc")]


class TestCompileErrors:
    def _errors(self, config):
        result = ResourceCompiler().compile(config)
        assert result.success is False
        assert result.registry is None
        return result.error_messages()

    def test_no_resources(self):
        assert self._errors({"resources": {}}) == ["No resources defined"]

    def test_bad_type(self):
        errors = self._errors(_config(Widget={"fields": {"id": "int", "size": "huge"}}))
        assert len(errors) == 1
        assert errors[0].startswith("[Widget.size] Invalid type 'huge'")

    def test_unknown_relation_target(self):
        errors = self._errors(_config(Widget={"fields": {"id": "int", "owner": "Ghost"}}))
        assert "Invalid type 'Ghost'" in errors[0]

    def test_bad_ref(self):
        errors = self._errors(_config(
            Owner={"fields": {"id": "int"}},
            Pet={"fields": {"id": "int", "owner": {
                "type": "Owner",
                "relation": {"ref": {"from_field": "owner_ref", "to_field": "uuid"}},
            }}},
        ))
        assert len(errors) == 2
        assert any("from_field 'owner_ref'" in e for e in errors)
        assert any("to_field 'uuid'" in e for e in errors)

    def test_many_relation_needs_to_field(self):
        errors = self._errors(_config(
            Owner={"fields": {"id": "int", "pets": {"type": "Pet", "relation": {"cardinality": "many"}}}},
            Pet={"fields": {"id": "int"}},
        ))
        assert "needs ref.to_field" in errors[0]

    def test_bad_expression(self):
        errors = self._errors(_config(Widget={**WIDGET, "access": "user.__class__"}))
        assert errors[0].startswith("[Widget.access]")

    def test_unknown_operation(self):
        errors = self._errors(_config(Widget={**WIDGET, "operations": {"purge": {}}}))
        assert "Unknown operation 'purge'" in errors[0]

    def test_missing_key(self):
        errors = self._errors(_config(Widget={**WIDGET, "keys": ["uuid"]}))
        assert "Key 'uuid' not in fields" in errors[0]

    def test_filter_errors_come_from_registry(self):
        errors = self._errors(_config(Widget={
            **WIDGET,
            "filters": {"f": {"kind": "search", "properties": {"colour": "exact"}}},
        }))
        assert any("colour" in e for e in errors)

    @pytest.mark.parametrize("extra, expected", [
        ({"order": {"id": 1}}, "Invalid order direction 1 for 'id'"),
        ({"order": ["id"]}, "order must be a mapping"),
        ({"operations": {"query": "yes"}}, "operations.query must be a mapping"),
    ])
    def test_malformed_entries_are_reported(self, extra, expected):
        errors = self._errors(_config(Widget={**WIDGET, **extra}))
        assert len(errors) == 1
        assert expected in errors[0]

    def test_bad_default_order(self):
        errors = self._errors(_config(Widget={**WIDGET, "order": {"weight": "ASC"}}))
        assert errors[0].startswith("[Widget.order]")

    def test_errors_are_collected(self):
        errors = self._errors(_config(
            Widget={"fields": {"id": "int", "size": "huge"}},
            Gadget={"fields": {"id": "int"}, "operations": {"purge": {}}},
        ))
        assert len(errors) == 2

    def test_compile_resources_raises(self):
        with pytest.raises(GraphConfigError) as exc_info:
            compile_resources(_config(Widget={"fields": {"id": "int", "size": "huge"}}))
        assert len(exc_info.value.errors) == 1


class TestLoadResources:
    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "resources.yaml"
        path.write_text(
            "resources:\n"
            "  Widget:\n"
            "    fields:\n"
            "      id: int\n"
            "      label: string\n"
        )
        registry = compile_resources(load_resources(path))
        assert registry.names == ["Widget"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(GraphConfigError, match="not found"):
            load_resources(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(GraphConfigError, match="not valid YAML"):
            load_resources(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- Widget\n")
        with pytest.raises(GraphConfigError, match="must contain a mapping"):
            load_resources(path)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.default_page_size == 30
        assert settings.max_page_size == 100
        assert settings.service_url is None
        assert settings.cors_origins == []

    def test_reads_environment(self):
        settings = Settings.from_env({
            "RESOURCEGRAPH_DEFAULT_PAGE_SIZE": "10",
            "RESOURCEGRAPH_MAX_PAGE_SIZE": "0",
            "RESOURCEGRAPH_TIMEOUT": "2.5",
            "RESOURCEGRAPH_SERVICE_URL": "http://offers:8002",
            "RESOURCEGRAPH_CORS_ORIGINS": "http://a.test, http://b.test",
        })
        assert settings.default_page_size == 10
        assert settings.max_page_size is None
        assert settings.timeout == 2.5
        assert settings.service_url == "http://offers:8002"
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_invalid_value(self):
        with pytest.raises(GraphConfigError, match="RESOURCEGRAPH_MAX_DEPTH"):
            Settings.from_env({"RESOURCEGRAPH_MAX_DEPTH": "deep"})
