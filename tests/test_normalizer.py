"""
tests/test_normalizer.py
Tests for schema loading, normalization and documentation annotations.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict

import pytest
import yaml

from schemagen.annotations import (
    AnnotationSyntaxError,
    parse_annotation_line,
    parse_annotations,
)
from schemagen.errors import SchemaError
from schemagen.models import FieldKind, IterationOrder, TargetFramework
from schemagen.normalizer import load_schema, load_schema_file, parse_raw_schema


def _minimal(**extra: Any) -> Dict[str, Any]:
    raw: Dict[str, Any] = {
        "models": [{"name": "Item", "fields": [{"name": "id", "type": "Int", "id": True}]}]
    }
    raw.update(extra)
    return raw


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


class TestAnnotations:
    def test_positional_and_keyword_args(self) -> None:
        annotation = parse_annotation_line('@@service("openai", model: "gpt-4o")')
        assert annotation is not None
        assert annotation.key == "service"
        assert annotation.args == ("openai",)
        assert annotation.first_arg == "openai"
        assert annotation.options == {"model": "gpt-4o"}

    def test_list_option(self) -> None:
        annotation = parse_annotation_line("@@search(fields: [title, body])")
        assert annotation.args == ()
        assert annotation.options == {"fields": ["title", "body"]}

    def test_bare_word_and_empty_args(self) -> None:
        assert parse_annotation_line("@@auth(jwt)").args == ("jwt",)
        empty = parse_annotation_line("  @@realtime()  ")
        assert empty.args == () and empty.options == {}
        assert empty.first_arg is None

    def test_plain_text_is_not_an_annotation(self) -> None:
        assert parse_annotation_line("A blog post.") is None
        assert parse_annotation_line("@@service without parens") is None

    def test_malformed_arguments_raise(self) -> None:
        with pytest.raises(AnnotationSyntaxError):
            parse_annotation_line('@@service("openai", [)')

    def test_block_skips_malformed_and_keeps_unknown(self) -> None:
        doc = "\n".join([
            "Posts written by users.",
            '@@service("claude")',
            '@@service("openai", [)',
            "@@custom(flag: true)",
        ])
        annotations = parse_annotations(doc)
        assert [a.key for a in annotations] == ["service", "custom"]
        assert annotations[1].options == {"flag": True}

    def test_empty_documentation(self) -> None:
        assert parse_annotations(None) == ()
        assert parse_annotations("") == ()


# ---------------------------------------------------------------------------
# Reference schema
# ---------------------------------------------------------------------------


class TestReferenceSchema:
    def test_models_and_enums(self, example) -> None:
        schema, _ = example
        assert schema.model_names == ["User", "Profile", "Post", "Tag", "PostTag", "Comment"]
        assert [e.name for e in schema.enums] == ["Role"]
        assert schema.total_fields == sum(len(m.fields) for m in schema.models)

    def test_field_kinds_are_inferred(self, example) -> None:
        schema, _ = example
        user = schema.get_model("User")
        assert user.get_field("email").kind == FieldKind.SCALAR
        assert user.get_field("role").kind == FieldKind.ENUM
        assert user.get_field("posts").kind == FieldKind.OBJECT
        assert user.get_field("posts").is_list
        assert not user.get_field("name").is_required
        assert user.get_field("role").has_default_value

    def test_relation_keys(self, example) -> None:
        schema, _ = example
        author = schema.get_model("Post").get_field("author")
        assert author.relation_name == "PostAuthor"
        assert author.relation_from_fields == ("authorId",)
        assert author.relation_to_fields == ("id",)
        assert author.owns_foreign_key
        assert schema.get_model("Post").foreign_key_field_names == ("authorId",)

    def test_constraints(self, example) -> None:
        schema, _ = example
        assert schema.get_model("Post").unique_constraints == (("slug", "tenantId"),)
        assert schema.get_model("PostTag").primary_key == ("postId", "tagId")
        assert schema.get_model("PostTag").id_field is None
        assert schema.get_model("Post").id_field.name == "id"

    def test_annotations_parsed_once(self, example) -> None:
        schema, _ = example
        post = schema.get_model("Post")
        assert [a.key for a in post.annotations] == ["service", "search"]
        (service,) = post.get_annotations("service")
        assert service.first_arg == "openai"
        assert service.options == {"model": "gpt-4o"}

    def test_config(self, example, tmp_path) -> None:
        _, config = example
        assert config.project_name == "blog"
        assert config.package_name == "app"
        assert config.target == TargetFramework.FASTAPI
        assert config.api_prefix == "/api/v1"
        assert config.output_dir == str(tmp_path / "out")
        assert config.provider_config == {"openai": {"OPENAI_API_KEY": "sk-test"}}


# ---------------------------------------------------------------------------
# Normalization rules
# ---------------------------------------------------------------------------


class TestNormalization:
    def test_optional_and_required_flags(self) -> None:
        schema, _ = parse_raw_schema({
            "models": [{
                "name": "Item",
                "fields": [
                    {"name": "id", "type": "Int", "id": True},
                    {"name": "a", "type": "String", "optional": True},
                    {"name": "b", "type": "String", "required": False},
                    {"name": "c", "type": "String"},
                ],
            }]
        })
        item = schema.get_model("Item")
        assert [f.is_required for f in item.fields] == [True, False, False, True]

    def test_single_name_relation_keys(self) -> None:
        schema, _ = parse_raw_schema({
            "models": [
                {"name": "A", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {"name": "B", "fields": [
                    {"name": "id", "type": "Int", "id": True},
                    {"name": "a", "type": "A", "relation": {"fields": "aId", "references": "id"}},
                    {"name": "aId", "type": "Int"},
                ]},
            ]
        })
        assert schema.get_model("B").get_field("a").relation_from_fields == ("aId",)

    def test_id_key_is_primary_key_alias(self) -> None:
        schema, _ = parse_raw_schema({
            "models": [{
                "name": "Link",
                "id": ["a", "b"],
                "fields": [{"name": "a", "type": "Int"}, {"name": "b", "type": "Int"}],
            }]
        })
        assert schema.get_model("Link").primary_key == ("a", "b")

    def test_unresolved_target_is_kept_for_the_analyzer(self) -> None:
        schema, _ = parse_raw_schema({
            "models": [{"name": "Item", "fields": [
                {"name": "id", "type": "Int", "id": True},
                {"name": "owner", "type": "Ghost"},
            ]}]
        })
        assert schema.get_model("Item").get_field("owner").kind == FieldKind.OBJECT

    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"models": []},
            {"models": [{"name": "Item"}]},
            {"models": [{"name": "Item", "fields": [{"name": "id", "type": "Int", "colour": 1}]}]},
            {"models": [{"name": "Item", "table": "x", "fields": [{"name": "id", "type": "Int"}]}]},
            {"models": [{"name": "Item", "fields": [{"name": "id"}]}]},
            {"models": [{"name": "Item", "fields": [
                {"name": "id", "type": "Int", "relation": {"fields": ["x"]}},
            ]}]},
            {"models": [{"name": "Item", "fields": [
                {"name": "id", "type": "Int"}, {"name": "id", "type": "String"},
            ]}]},
            {"models": [
                {"name": "Item", "fields": [{"name": "id", "type": "Int"}]},
                {"name": "Item", "fields": [{"name": "id", "type": "Int"}]},
            ]},
            {"models": [{"name": "Item", "unique": [["nope"]], "fields": [{"name": "id", "type": "Int"}]}]},
            {"models": [{"name": "Item", "fields": [{"name": "id", "type": "Int", "kind": "blob"}]}]},
            {"models": [{"name": "Item", "fields": [{"name": "id", "type": "Int"}]}],
             "enums": [{"name": "E", "values": ["A", "A"]}]},
        ],
        ids=[
            "no-models",
            "empty-models",
            "no-fields",
            "unknown-field-key",
            "unknown-model-key",
            "field-without-type",
            "relation-on-scalar",
            "duplicate-field",
            "duplicate-model",
            "unique-unknown-field",
            "bad-kind",
            "duplicate-enum-values",
        ],
    )
    def test_malformed_input_raises_schema_error(self, raw: Dict[str, Any]) -> None:
        with pytest.raises(SchemaError):
            parse_raw_schema(raw)


class TestConfig:
    def test_defaults(self) -> None:
        _, config = parse_raw_schema(_minimal())
        assert config.package_name == "generated"
        assert config.order == IterationOrder.DECLARATION
        assert config.workers == 1
        assert config.layers == ["contracts", "validators", "services", "controllers", "routes"]

    def test_generation_config_key_and_overrides(self) -> None:
        _, config = parse_raw_schema(
            _minimal(generation_config={"package_name": "shop", "workers": 2}),
            config_overrides={"workers": 8, "order": "topological"},
        )
        assert config.package_name == "shop"
        assert config.workers == 8
        assert config.order == IterationOrder.TOPOLOGICAL

    def test_api_prefix_trailing_slash(self) -> None:
        _, config = parse_raw_schema(_minimal(config={"api_prefix": "/api/"}))
        assert config.api_prefix == "/api"

    @pytest.mark.parametrize(
        "config",
        [
            {"workers": 0},
            {"layers": ["contracts", "graphql"]},
            {"api_prefix": "api"},
            {"package_name": "my-app"},
            {"target": "django"},
            {"colour": "blue"},
        ],
    )
    def test_invalid_config(self, config: Dict[str, Any]) -> None:
        with pytest.raises(SchemaError, match="Config validation failed"):
            parse_raw_schema(_minimal(config=config))

    def test_config_must_be_mapping(self) -> None:
        with pytest.raises(SchemaError):
            parse_raw_schema(_minimal(config=["nope"]))


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


class TestFileLoading:
    def test_yaml_file(self, schema_yaml_path: pathlib.Path) -> None:
        schema, config = load_schema(schema_yaml_path)
        assert schema.source_file == str(schema_yaml_path)
        assert len(schema.models) == 6
        assert config.project_name == "blog"

    def test_json_file(self, schema_dict, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "schema.json"
        path.write_text(json.dumps(schema_dict), encoding="utf-8")
        schema, _ = load_schema(path)
        assert schema.get_model("PostTag") is not None

    def test_unknown_extension_falls_back(self, schema_dict, tmp_path: pathlib.Path) -> None:
        as_json = tmp_path / "schema.txt"
        as_json.write_text(json.dumps(schema_dict), encoding="utf-8")
        as_yaml = tmp_path / "schema.cfg"
        as_yaml.write_text(yaml.dump(schema_dict), encoding="utf-8")
        assert load_schema_file(as_json) == load_schema_file(as_yaml)

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_schema_file(tmp_path / "missing.yaml")

    def test_directory_is_rejected(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(SchemaError):
            load_schema_file(tmp_path)

    def test_invalid_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("models: [unclosed\n", encoding="utf-8")
        with pytest.raises(SchemaError, match="Invalid YAML"):
            load_schema_file(path)

    def test_invalid_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SchemaError, match="Invalid JSON"):
            load_schema_file(path)

    def test_top_level_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(SchemaError, match="mapping"):
            load_schema_file(path)
