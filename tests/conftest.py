"""
tests/conftest.py
Shared fixtures for the schemagen test suite.

Raw schemas are plain dicts; tests that need a file dump them with PyYAML
into pytest's ``tmp_path``. No mocking libraries are used.
"""

from __future__ import annotations

import copy
import pathlib
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import yaml

from schemagen.models import GenerationConfig, ParsedSchema
from schemagen.normalizer import parse_raw_schema


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"

SchemaFactory = Callable[..., Tuple[ParsedSchema, GenerationConfig]]


def _id(name: str = "id") -> Dict[str, Any]:
    return {"name": name, "type": "Int", "id": True, "default": "autoincrement"}


# ---------------------------------------------------------------------------
# Reference schema
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_schema_dict() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session and return as dict."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def schema_dict(raw_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_schema_dict)


@pytest.fixture()
def schema_yaml_path(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """Write the schema dict to a temporary YAML file and return its path."""
    path = tmp_path / "schema.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(schema_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def example(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> Tuple[ParsedSchema, GenerationConfig]:
    """The reference schema parsed, with output redirected into tmp_path."""
    return parse_raw_schema(
        schema_dict, config_overrides={"output_dir": str(tmp_path / "out")}
    )


# ---------------------------------------------------------------------------
# Schema factory
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_schema(tmp_path: pathlib.Path) -> SchemaFactory:
    """
    ``make_schema(models, enums=None, **config)`` → ``(schema, config)``.

    ``output_dir`` defaults to a directory inside tmp_path.
    """

    def _factory(
        models: List[Dict[str, Any]],
        enums: Optional[List[Dict[str, Any]]] = None,
        **config: Any,
    ) -> Tuple[ParsedSchema, GenerationConfig]:
        config.setdefault("output_dir", str(tmp_path / "out"))
        raw: Dict[str, Any] = {"models": copy.deepcopy(models), "config": config}
        if enums:
            raw["enums"] = copy.deepcopy(enums)
        return parse_raw_schema(raw)

    return _factory


# ---------------------------------------------------------------------------
# Minimal / edge-case model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_post_models() -> List[Dict[str, Any]]:
    """``User { id, posts: Post[] }`` and ``Post { id, author: User, authorId }``."""
    return [
        {
            "name": "User",
            "fields": [
                _id(),
                {"name": "posts", "type": "Post", "list": True},
            ],
        },
        {
            "name": "Post",
            "fields": [
                _id(),
                {
                    "name": "author",
                    "type": "User",
                    "relation": {"fields": ["authorId"], "references": ["id"]},
                },
                {"name": "authorId", "type": "Int"},
            ],
        },
    ]


@pytest.fixture()
def many_to_many_models() -> List[Dict[str, Any]]:
    """Implicit many-to-many: both sides are lists."""
    return [
        {
            "name": "Article",
            "fields": [_id(), {"name": "labels", "type": "Label", "list": True}],
        },
        {
            "name": "Label",
            "fields": [_id(), {"name": "articles", "type": "Article", "list": True}],
        },
    ]


@pytest.fixture()
def self_ref_models() -> List[Dict[str, Any]]:
    """Category tree with ``parent`` and ``children`` of its own type."""
    return [
        {
            "name": "Category",
            "fields": [
                _id(),
                {"name": "name", "type": "String"},
                {
                    "name": "parent",
                    "type": "Category",
                    "optional": True,
                    "relation": {"fields": ["parentId"], "references": ["id"]},
                },
                {"name": "parentId", "type": "Int", "optional": True},
                {"name": "children", "type": "Category", "list": True},
            ],
        }
    ]


@pytest.fixture()
def post_tag_models() -> List[Dict[str, Any]]:
    """``PostTag { postId, tagId, post, tag }`` between Post and Tag."""
    return [
        {
            "name": "Post",
            "fields": [_id(), {"name": "tags", "type": "PostTag", "list": True}],
        },
        {
            "name": "Tag",
            "fields": [_id(), {"name": "posts", "type": "PostTag", "list": True}],
        },
        {
            "name": "PostTag",
            "primary_key": ["postId", "tagId"],
            "fields": [
                {"name": "postId", "type": "Int"},
                {"name": "tagId", "type": "Int"},
                {
                    "name": "post",
                    "type": "Post",
                    "relation": {"fields": ["postId"], "references": ["id"]},
                },
                {
                    "name": "tag",
                    "type": "Tag",
                    "relation": {"fields": ["tagId"], "references": ["id"]},
                },
            ],
        },
    ]


@pytest.fixture()
def slug_models() -> List[Dict[str, Any]]:
    """One model with a standalone-unique slug, one with a (slug, tenantId) composite."""
    return [
        {
            "name": "Page",
            "fields": [
                _id(),
                {"name": "slug", "type": "String", "unique": True},
            ],
        },
        {
            "name": "Article",
            "unique": [["slug", "tenantId"]],
            "fields": [
                _id(),
                {"name": "slug", "type": "String"},
                {"name": "tenantId", "type": "Int"},
            ],
        },
    ]
