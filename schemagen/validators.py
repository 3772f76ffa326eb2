# File: schemagen/validators.py
"""
schemagen - Schema & Configuration Validators
===============================================
Pydantic already guarantees per-model structure (frozen fields, constraint
members exist, no duplicate names). This module adds the **cross-entity**
checks: relation targets resolve, foreign-key columns exist, enum fields
reference declared enums, annotations name registered providers, and the
configuration makes sense.

Every validator is a single O(n) pass that returns a ``ValidationResult``;
``validate_full`` merges them. The orchestrator turns any error into a
fatal ``SchemaError`` before analysis starts.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from schemagen.annotations import KNOWN_ANNOTATIONS
from schemagen.models import (
    FieldKind,
    GenerationConfig,
    ModelDefinition,
    ParsedSchema,
)
from schemagen.providers import ProviderRegistry, default_registry

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances produced by the pipeline."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    def add_info(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def has_warnings(self) -> bool:
        return any(e.is_warning for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def codes(self) -> Set[str]:
        return {e.code for e in self._items}

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self, include_info: bool = False) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            prefix: str = {"error": "✗", "warning": "⚠", "info": "ℹ"}.get(item.level, "•")
            lines.append(f"  {prefix} [{item.code}] {item.message}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Regex patterns & reserved words
# ---------------------------------------------------------------------------

_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][a-zA-Z0-9]*$")

_PYTHON_RESERVED_WORDS: FrozenSet[str] = frozenset({
    "False", "None", "True", "and", "as", "assert", "async", "await",
    "break", "class", "continue", "def", "del", "elif", "else",
    "except", "finally", "for", "from", "global", "if", "import",
    "in", "is", "lambda", "nonlocal", "not", "or", "pass", "raise",
    "return", "try", "while", "with", "yield",
})

_MAX_MODELS_BEFORE_WARNING: int = 500


# ---------------------------------------------------------------------------
# Individual validation functions
# ---------------------------------------------------------------------------


def validate_model_names(schema: ParsedSchema) -> ValidationResult:
    """
    Model names must be identifiers, should be PascalCase, and must not be
    Python keywords (they become class names in every layer).
    """
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        ctx: Dict[str, Any] = {"model": model.name}
        if not _IDENTIFIER_RE.match(model.name):
            result.add_error(
                "INVALID_MODEL_NAME",
                f"Model name '{model.name}' is not a valid identifier.",
                ctx,
            )
            continue
        if model.name in _PYTHON_RESERVED_WORDS:
            result.add_error(
                "MODEL_NAME_PYTHON_RESERVED",
                f"Model name '{model.name}' clashes with a Python reserved word.",
                ctx,
            )
        if not _PASCAL_CASE_RE.match(model.name):
            result.add_warning(
                "MODEL_NAME_NOT_PASCAL_CASE",
                f"Model name '{model.name}' is not PascalCase. "
                f"Generated class names may look odd.",
                ctx,
            )

    logger.debug(
        "validate_model_names: checked %d models, %d issue(s).",
        len(schema.models),
        len(result),
    )
    return result


def validate_field_names(schema: ParsedSchema) -> ValidationResult:
    """Every field name must be an identifier. Complexity: O(F)."""
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        for f in model.fields:
            ctx = {"model": model.name, "field": f.name}
            if not _IDENTIFIER_RE.match(f.name):
                result.add_error(
                    "INVALID_FIELD_NAME",
                    f"Field '{model.name}.{f.name}' is not a valid identifier.",
                    ctx,
                )
            elif f.name in _PYTHON_RESERVED_WORDS:
                result.add_warning(
                    "FIELD_NAME_PYTHON_RESERVED",
                    f"Field '{model.name}.{f.name}' is a Python keyword and will be "
                    f"renamed in generated code.",
                    ctx,
                )
    return result


def validate_id_fields(schema: ParsedSchema) -> ValidationResult:
    """Each model should have exactly one ``id`` field or a composite primary key."""
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        ids = [f.name for f in model.fields if f.is_id]
        ctx = {"model": model.name}
        if len(ids) > 1:
            result.add_error(
                "MULTIPLE_ID_FIELDS",
                f"Model '{model.name}' marks several fields as id: {ids}. "
                f"Use a composite primary_key instead.",
                ctx,
            )
        elif not ids and not model.primary_key:
            result.add_warning(
                "MISSING_ID",
                f"Model '{model.name}' has neither an id field nor a primary_key; "
                f"lookup by id will not be generated.",
                ctx,
            )
        elif ids and model.primary_key:
            result.add_warning(
                "ID_AND_PRIMARY_KEY",
                f"Model '{model.name}' declares both an id field and a composite "
                f"primary_key; the id field wins.",
                ctx,
            )
    return result


def validate_relation_targets(schema: ParsedSchema) -> ValidationResult:
    """Every relation field must point at a model defined in the schema."""
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        for rel in model.relation_fields:
            if schema.get_model(rel.type) is None:
                result.add_error(
                    "RELATION_TARGET_UNDEFINED",
                    f"Model '{model.name}' has relation field '{rel.name}' pointing to "
                    f"undefined model '{rel.type}'.",
                    {"model": model.name, "field": rel.name, "target": rel.type},
                )
    return result


def validate_relation_keys(schema: ParsedSchema) -> ValidationResult:
    """
    Foreign-key columns named by a relation must exist as scalar fields of
    the declaring model, and referenced columns must exist on the target.
    A list field cannot own a foreign key.
    """
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        for rel in model.relation_fields:
            ctx = {"model": model.name, "field": rel.name}
            if rel.is_list and rel.owns_foreign_key:
                result.add_error(
                    "LIST_RELATION_OWNS_FK",
                    f"List relation '{model.name}.{rel.name}' cannot declare "
                    f"foreign-key fields.",
                    ctx,
                )
            for column in rel.relation_from_fields:
                local = model.get_field(column)
                if local is None or not local.is_scalar:
                    result.add_error(
                        "FK_FIELD_UNDEFINED",
                        f"Relation '{model.name}.{rel.name}' uses foreign-key field "
                        f"'{column}' which is not a scalar field of '{model.name}'.",
                        ctx,
                    )
            target: Optional[ModelDefinition] = schema.get_model(rel.type)
            if target is None:
                continue
            for column in rel.relation_to_fields:
                if target.get_field(column) is None:
                    result.add_error(
                        "FK_REFERENCE_UNDEFINED",
                        f"Relation '{model.name}.{rel.name}' references "
                        f"'{target.name}.{column}' which does not exist.",
                        ctx,
                    )
    return result


def validate_enum_fields(schema: ParsedSchema) -> ValidationResult:
    """Enum fields must reference declared enums; unused enums are reported."""
    result: ValidationResult = ValidationResult()
    used: Set[str] = set()

    for model in schema.models:
        for f in model.scalar_fields:
            if f.kind != FieldKind.ENUM:
                continue
            used.add(f.type)
            if f.type not in schema.enum_map:
                result.add_error(
                    "ENUM_UNDEFINED",
                    f"Field '{model.name}.{f.name}' uses undefined enum '{f.type}'.",
                    {"model": model.name, "field": f.name},
                )

    for enum in schema.enums:
        if enum.name not in used:
            result.add_info(
                "ENUM_UNUSED",
                f"Enum '{enum.name}' is declared but never used.",
                {"enum": enum.name},
            )
    return result


def validate_unique_constraints(schema: ParsedSchema) -> ValidationResult:
    """
    Flag duplicate unique constraints and fields that are marked unique while
    also belonging to a multi-field unique constraint: such fields never get
    single-field lookup methods.
    """
    result: ValidationResult = ValidationResult()

    for model in schema.models:
        seen: Set[Tuple[str, ...]] = set()
        composite_members: Set[str] = set()
        for constraint in model.unique_constraints:
            key = tuple(sorted(constraint))
            if key in seen:
                result.add_warning(
                    "DUPLICATE_UNIQUE_CONSTRAINT",
                    f"Model '{model.name}' declares unique {list(constraint)} twice.",
                    {"model": model.name},
                )
            seen.add(key)
            if len(constraint) > 1:
                composite_members.update(constraint)

        for f in model.scalar_fields:
            if f.is_unique and f.name in composite_members:
                result.add_warning(
                    "UNIQUE_FIELD_IN_COMPOSITE",
                    f"Field '{model.name}.{f.name}' is marked unique but is also part "
                    f"of a multi-field unique constraint; it will not get a "
                    f"single-field lookup.",
                    {"model": model.name, "field": f.name},
                )
    return result


def validate_annotations(
    schema: ParsedSchema,
    config: Optional[GenerationConfig] = None,
    registry: Optional[ProviderRegistry] = None,
) -> ValidationResult:
    """
    Known annotation keys only; ``@@service`` must name a registered provider
    whose required configuration keys are present in
    ``config.provider_config[<provider>]``.
    """
    result: ValidationResult = ValidationResult()
    registry = registry or default_registry()
    provider_config: Dict[str, Dict[str, Any]] = config.provider_config if config else {}

    for model in schema.models:
        for annotation in model.annotations:
            ctx = {"model": model.name, "annotation": annotation.key}
            if annotation.key not in KNOWN_ANNOTATIONS:
                result.add_warning(
                    "UNKNOWN_ANNOTATION",
                    f"Model '{model.name}' uses unknown annotation @@{annotation.key}.",
                    ctx,
                )
                continue
            if annotation.key != "service":
                continue

            provider = annotation.first_arg
            if not isinstance(provider, str) or not provider:
                result.add_error(
                    "SERVICE_PROVIDER_MISSING",
                    f"@@service on '{model.name}' needs a provider name as first argument.",
                    ctx,
                )
                continue
            descriptor = registry.get(provider)
            if descriptor is None:
                result.add_error(
                    "SERVICE_PROVIDER_UNKNOWN",
                    f"@@service on '{model.name}' names unknown provider '{provider}'. "
                    f"Known: {registry.names()}",
                    ctx,
                )
                continue
            missing = descriptor.missing_config(provider_config.get(descriptor.name, {}))
            if missing:
                result.add_warning(
                    "SERVICE_CONFIG_MISSING",
                    f"Provider '{descriptor.name}' used by '{model.name}' is missing "
                    f"config keys {missing}.",
                    {**ctx, "missing": missing},
                )
    return result


def validate_schema_size(schema: ParsedSchema) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    if len(schema.models) > _MAX_MODELS_BEFORE_WARNING:
        result.add_warning(
            "LARGE_SCHEMA",
            f"Schema has {len(schema.models)} models; generation may be slow.",
        )
    return result


def validate_generation_config(config: GenerationConfig) -> ValidationResult:
    """Configuration sanity checks. Complexity: O(1)."""
    result: ValidationResult = ValidationResult()

    if not config.layers:
        result.add_warning("NO_LAYERS", "No layers enabled; nothing will be generated.")
    if len(set(config.layers)) != len(config.layers):
        result.add_warning("DUPLICATE_LAYERS", f"Layers listed more than once: {config.layers}")

    head: str = config.package_name.split(".")[0]
    if head in _PYTHON_RESERVED_WORDS:
        result.add_error(
            "PACKAGE_NAME_RESERVED",
            f"package_name '{config.package_name}' starts with a Python keyword.",
        )
    if ("controllers" in config.layers) != ("routes" in config.layers):
        result.add_info(
            "PARTIAL_HTTP_LAYERS",
            "Only one of 'controllers' / 'routes' is enabled; generated routes "
            "expect both.",
        )
    return result


# ---------------------------------------------------------------------------
# Composite validation entry points
# ---------------------------------------------------------------------------


def validate_schema(schema: ParsedSchema) -> ValidationResult:
    """Run all schema-level validators and merge their results."""
    result: ValidationResult = ValidationResult()

    validators: List[Callable[[ParsedSchema], ValidationResult]] = [
        validate_model_names,
        validate_field_names,
        validate_id_fields,
        validate_relation_targets,
        validate_relation_keys,
        validate_enum_fields,
        validate_unique_constraints,
        validate_schema_size,
    ]
    for validator_fn in validators:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(schema))

    logger.info("Schema validation complete: %s", result.summary())
    return result


def validate_config(config: GenerationConfig) -> ValidationResult:
    result: ValidationResult = validate_generation_config(config)
    logger.info("Config validation complete: %s", result.summary())
    return result


def validate_full(
    schema: ParsedSchema,
    config: GenerationConfig,
    registry: Optional[ProviderRegistry] = None,
) -> ValidationResult:
    """
    **Master validation entry point**: schema validators, config validators
    and the cross-cutting annotation / provider checks.
    """
    logger.info("Starting full validation — %d models.", len(schema.models))

    result: ValidationResult = ValidationResult()
    result.merge(validate_schema(schema))
    result.merge(validate_config(config))
    result.merge(validate_annotations(schema, config, registry))

    if result.has_errors:
        logger.error("Validation FAILED with %d error(s). %s", result.error_count, result.summary())
    else:
        logger.info("Validation PASSED. %s", result.summary())
    return result


__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "validate_model_names",
    "validate_field_names",
    "validate_id_fields",
    "validate_relation_targets",
    "validate_relation_keys",
    "validate_enum_fields",
    "validate_unique_constraints",
    "validate_annotations",
    "validate_schema_size",
    "validate_generation_config",
    "validate_schema",
    "validate_config",
    "validate_full",
]

logger.debug("schemagen.validators loaded — %d public symbols.", len(__all__))
