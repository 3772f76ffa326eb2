# File: schemagen/normalizer.py
"""
schemagen - Schema Normalizer
===============================
Loads a schema description from JSON or YAML and converts it into the
immutable ``ParsedSchema`` consumed by the analyzer, plus the
``GenerationConfig`` found next to it.

Expected top-level keys:
    - ``models`` (required): list of model mappings
    - ``enums`` (optional): list of ``{name, values}``
    - ``config`` / ``generation_config`` (optional): generation settings

Field kinds are inferred here, once: a scalar type name is ``scalar``, a
declared enum is ``enum``, anything else is a relation (``object``) whose
target is resolved later by the analyzer.

Every problem is reported as ``SchemaError``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union

import yaml
from pydantic import ValidationError

from schemagen.annotations import parse_annotations
from schemagen.errors import SchemaError
from schemagen.models import (
    SCALAR_TYPE_NAMES,
    EnumDefinition,
    FieldDefinition,
    FieldKind,
    GenerationConfig,
    ModelDefinition,
    ParsedSchema,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.normalizer")

_CONFIG_KEYS: Tuple[str, ...] = ("config", "generation_config")

_FIELD_KEYS: Set[str] = {
    "name", "type", "kind", "list", "required", "optional", "unique", "id",
    "default", "updated_at", "relation", "documentation",
}
_MODEL_KEYS: Set[str] = {
    "name", "fields", "unique", "primary_key", "id", "documentation",
}


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load and parse a JSON file. Raises SchemaError on parse errors."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaError(
            f"Expected a JSON object at top level, got {type(data).__name__}."
        )
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file. Raises SchemaError on parse errors."""
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SchemaError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaError(
            f"Expected a YAML mapping at top level, got {type(data).__name__}."
        )
    return data


def load_schema_file(path: Path) -> Dict[str, Any]:
    """
    Load a schema description file (JSON or YAML), dispatching on the file
    extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        SchemaError: If the file can't be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    if not path.is_file():
        raise SchemaError(f"Schema path is not a file: {path}")

    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_file(path)
    if suffix == ".json":
        return _load_json_file(path)

    logger.info("Unknown extension '%s' — trying JSON then YAML.", suffix)
    try:
        return _load_json_file(path)
    except SchemaError:
        return _load_yaml_file(path)


# ---------------------------------------------------------------------------
# Raw dict → normalized models
# ---------------------------------------------------------------------------


def _as_name_list(value: Any, where: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise SchemaError(f"{where}: expected a field name or list of field names, got {value!r}.")


def _infer_kind(type_name: str, enum_names: Set[str]) -> FieldKind:
    if type_name in SCALAR_TYPE_NAMES:
        return FieldKind.SCALAR
    if type_name in enum_names:
        return FieldKind.ENUM
    return FieldKind.OBJECT


def normalize_field(
    raw: Mapping[str, Any],
    model_name: str,
    enum_names: Set[str],
) -> FieldDefinition:
    """Convert one raw field mapping into a ``FieldDefinition``."""
    if not isinstance(raw, Mapping):
        raise SchemaError(f"Model '{model_name}': each field must be a mapping, got {raw!r}.")

    unknown: Set[str] = set(raw) - _FIELD_KEYS
    if unknown:
        raise SchemaError(
            f"Model '{model_name}', field '{raw.get('name', '?')}': "
            f"unknown keys {sorted(unknown)}."
        )

    name: Any = raw.get("name")
    type_name: Any = raw.get("type")
    if not isinstance(name, str) or not isinstance(type_name, str):
        raise SchemaError(
            f"Model '{model_name}': every field needs string 'name' and 'type', got {dict(raw)!r}."
        )

    try:
        kind: FieldKind = (
            FieldKind(raw["kind"]) if "kind" in raw else _infer_kind(type_name, enum_names)
        )
    except ValueError as exc:
        raise SchemaError(f"Model '{model_name}', field '{name}': {exc}") from exc
    is_list: bool = bool(raw.get("list", False))
    if "optional" in raw:
        is_required = not bool(raw["optional"])
    else:
        is_required = bool(raw.get("required", True))

    relation: Any = raw.get("relation") or {}
    if relation and kind != FieldKind.OBJECT:
        raise SchemaError(
            f"Model '{model_name}', field '{name}': 'relation' given on a "
            f"non-relation type '{type_name}'."
        )
    if relation and not isinstance(relation, Mapping):
        raise SchemaError(f"Model '{model_name}', field '{name}': 'relation' must be a mapping.")

    where = f"Model '{model_name}', field '{name}'"
    from_fields: Tuple[str, ...] = (
        _as_name_list(relation["fields"], where) if "fields" in relation else ()
    )
    to_fields: Tuple[str, ...] = (
        _as_name_list(relation["references"], where) if "references" in relation else ()
    )

    try:
        return FieldDefinition(
            name=name,
            type=type_name,
            kind=kind,
            is_list=is_list,
            is_required=is_required,
            is_unique=bool(raw.get("unique", False)),
            is_id=bool(raw.get("id", False)),
            is_updated_at=bool(raw.get("updated_at", False)),
            has_default_value="default" in raw,
            relation_name=relation.get("name"),
            relation_from_fields=from_fields,
            relation_to_fields=to_fields,
            documentation=raw.get("documentation"),
        )
    except ValidationError as exc:
        raise SchemaError(f"{where}: {exc}") from exc


def normalize_model(raw: Mapping[str, Any], enum_names: Set[str]) -> ModelDefinition:
    """Convert one raw model mapping into a ``ModelDefinition``."""
    if not isinstance(raw, Mapping) or not isinstance(raw.get("name"), str):
        raise SchemaError(f"Every model must be a mapping with a string 'name', got {raw!r}.")

    model_name: str = raw["name"]
    unknown: Set[str] = set(raw) - _MODEL_KEYS
    if unknown:
        raise SchemaError(f"Model '{model_name}': unknown keys {sorted(unknown)}.")

    raw_fields: Any = raw.get("fields")
    if not isinstance(raw_fields, list) or not raw_fields:
        raise SchemaError(f"Model '{model_name}' must declare a non-empty 'fields' list.")

    fields: List[FieldDefinition] = [
        normalize_field(f, model_name, enum_names) for f in raw_fields
    ]

    where = f"Model '{model_name}'"
    uniques: List[Tuple[str, ...]] = [
        _as_name_list(u, f"{where} unique") for u in (raw.get("unique") or [])
    ]
    primary_key_raw: Any = raw.get("primary_key", raw.get("id"))
    primary_key: Tuple[str, ...] = (
        _as_name_list(primary_key_raw, f"{where} primary_key") if primary_key_raw else ()
    )

    documentation: Optional[str] = raw.get("documentation")
    try:
        return ModelDefinition(
            name=model_name,
            fields=fields,
            primary_key=primary_key,
            unique_constraints=uniques,
            documentation=documentation,
            annotations=parse_annotations(documentation),
        )
    except ValidationError as exc:
        raise SchemaError(f"{where}: {exc}") from exc


def normalize_schema(
    raw: Mapping[str, Any],
    *,
    source_file: Optional[str] = None,
) -> ParsedSchema:
    """
    Build a ``ParsedSchema`` from a raw mapping (already loaded from disk).

    Relation targets are not checked here; the analyzer and validators
    report unresolved targets as ``SchemaError``.
    """
    raw_models: Any = raw.get("models")
    if not isinstance(raw_models, list) or not raw_models:
        raise SchemaError(
            "Cannot find models in input. Expected a non-empty top-level 'models' list."
        )

    raw_enums: Any = raw.get("enums") or []
    if not isinstance(raw_enums, list):
        raise SchemaError("'enums' must be a list of {name, values} mappings.")

    try:
        enums: List[EnumDefinition] = [EnumDefinition.model_validate(e) for e in raw_enums]
    except ValidationError as exc:
        raise SchemaError(f"Enum validation failed: {exc}") from exc

    enum_names: Set[str] = {e.name for e in enums}
    models: List[ModelDefinition] = [normalize_model(m, enum_names) for m in raw_models]

    try:
        schema = ParsedSchema(models=models, enums=enums, source_file=source_file)
    except ValidationError as exc:
        raise SchemaError(f"Schema validation failed: {exc}") from exc

    logger.info(
        "Normalized schema: %d models, %d enums, %d fields.",
        len(schema.models),
        len(schema.enums),
        schema.total_fields,
    )
    return schema


def parse_raw_schema(
    raw: Mapping[str, Any],
    *,
    source_file: Optional[str] = None,
    config_overrides: Optional[Mapping[str, Any]] = None,
) -> Tuple[ParsedSchema, GenerationConfig]:
    """
    Parse a raw dictionary (from JSON/YAML) into the normalized schema and
    its generation config.

    Raises:
        SchemaError: If the schema or config is malformed.
    """
    config_data: Dict[str, Any] = {}
    for key in _CONFIG_KEYS:
        if key in raw:
            if not isinstance(raw[key], Mapping):
                raise SchemaError(f"'{key}' must be a mapping.")
            config_data = dict(raw[key])
            break
    else:
        logger.info("No generation config found in input — using defaults.")

    if config_overrides:
        config_data.update(config_overrides)

    schema: ParsedSchema = normalize_schema(raw, source_file=source_file)

    try:
        config: GenerationConfig = GenerationConfig.model_validate(config_data)
    except ValidationError as exc:
        raise SchemaError(f"Config validation failed: {exc}") from exc

    return schema, config


def load_schema(
    path: Union[str, Path],
    *,
    config_overrides: Optional[Mapping[str, Any]] = None,
) -> Tuple[ParsedSchema, GenerationConfig]:
    """Convenience wrapper: ``load_schema_file`` + ``parse_raw_schema``."""
    path = Path(path)
    raw: Dict[str, Any] = load_schema_file(path)
    return parse_raw_schema(raw, source_file=str(path), config_overrides=config_overrides)


__all__: List[str] = [
    "load_schema_file",
    "normalize_field",
    "normalize_model",
    "normalize_schema",
    "parse_raw_schema",
    "load_schema",
]

logger.debug("schemagen.normalizer loaded.")
