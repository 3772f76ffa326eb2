# File: schemagen/models.py
"""
schemagen - Core Data Models
==============================
Pydantic V2 models for the normalized schema, the derived per-model
analysis, generated artifacts and the run manifest. These models are the
single source of truth for the entire pipeline:
Normalize → Validate → Analyze → Generate → Track → Export.

Schema-side models (``FieldDefinition``, ``ModelDefinition``,
``ParsedSchema``) and analysis results are frozen: once built they are
never mutated, so every layer generator reads the same values.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    field_validator,
    model_validator,
)

from schemagen.errors import RelationshipAmbiguityWarning

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FieldKind(str, Enum):
    """What a field's declared type refers to."""

    SCALAR = "scalar"
    ENUM = "enum"
    OBJECT = "object"


class ScalarType(str, Enum):
    """Scalar type names accepted in a schema description."""

    STRING = "String"
    INT = "Int"
    BIGINT = "BigInt"
    FLOAT = "Float"
    DECIMAL = "Decimal"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"
    JSON = "Json"
    BYTES = "Bytes"


SCALAR_TYPE_NAMES: Tuple[str, ...] = tuple(t.value for t in ScalarType)


class RelationshipType(str, Enum):
    """Relationship cardinalities, as seen from the declaring model."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


class FilterType(str, Enum):
    """How a list endpoint matches a filterable field."""

    EXACT = "exact"
    RANGE = "range"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ARRAY = "array"


class IterationOrder(str, Enum):
    """Order in which the orchestrator visits models during generation."""

    DECLARATION = "declaration"
    TOPOLOGICAL = "topological"


class TargetFramework(str, Enum):
    """Web framework the controller and route layers are written for."""

    FASTAPI = "fastapi"
    FLASK = "flask"


# ---------------------------------------------------------------------------
# Shared model configs
# ---------------------------------------------------------------------------

_SHARED_CONFIG = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)

_FROZEN_CONFIG = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=True,
    extra="forbid",
    arbitrary_types_allowed=True,
    protected_namespaces=(),
)


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


class Annotation(BaseModel):
    """
    A structured ``@@key(args...)`` annotation taken from model
    documentation. Parsed once at load time by ``schemagen.annotations``.
    """

    model_config = _FROZEN_CONFIG

    key: str = Field(..., min_length=1, description="Annotation name.")
    args: Tuple[Any, ...] = Field(
        default_factory=tuple, description="Positional arguments."
    )
    options: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments."
    )

    @property
    def first_arg(self) -> Optional[Any]:
        return self.args[0] if self.args else None

    def __repr__(self) -> str:
        return f"<Annotation @@{self.key} args={list(self.args)} options={self.options}>"


# ---------------------------------------------------------------------------
# Normalized schema
# ---------------------------------------------------------------------------


class FieldDefinition(BaseModel):
    """A single field of a model: scalar, enum or relation."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, max_length=128)
    type: str = Field(
        ..., min_length=1, description="Scalar name, enum name or target model."
    )
    kind: FieldKind = Field(default=FieldKind.SCALAR)
    is_list: bool = Field(default=False)
    is_required: bool = Field(default=True)
    is_unique: bool = Field(default=False)
    is_id: bool = Field(default=False)
    is_updated_at: bool = Field(default=False)
    has_default_value: bool = Field(default=False)
    relation_name: Optional[str] = Field(default=None)
    relation_from_fields: Tuple[str, ...] = Field(default_factory=tuple)
    relation_to_fields: Tuple[str, ...] = Field(default_factory=tuple)
    documentation: Optional[str] = Field(default=None)

    @property
    def is_relation(self) -> bool:
        return self.kind == FieldKind.OBJECT

    @property
    def is_scalar(self) -> bool:
        return self.kind != FieldKind.OBJECT

    @property
    def owns_foreign_key(self) -> bool:
        return len(self.relation_from_fields) > 0

    @model_validator(mode="after")
    def _validate_relation_shape(self) -> "FieldDefinition":
        if self.kind != FieldKind.OBJECT and (
            self.relation_from_fields or self.relation_to_fields
        ):
            raise ValueError(
                f"Field '{self.name}' declares relation keys but is not a relation."
            )
        if self.relation_to_fields and len(self.relation_to_fields) != len(
            self.relation_from_fields
        ):
            raise ValueError(
                f"Field '{self.name}': relation fields {list(self.relation_from_fields)} "
                f"and references {list(self.relation_to_fields)} differ in length."
            )
        return self

    def __repr__(self) -> str:
        suffix = "[]" if self.is_list else ("" if self.is_required else "?")
        return f"<Field {self.name}: {self.type}{suffix}>"


class EnumDefinition(BaseModel):
    """A named enum type referenced by enum fields."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, max_length=128)
    values: Tuple[str, ...] = Field(..., min_length=1)

    @field_validator("values")
    @classmethod
    def _unique_values(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(v) != len(set(v)):
            raise ValueError(f"Enum values must be unique, got {list(v)}.")
        return v


class ModelDefinition(BaseModel):
    """
    One model of the schema.

    ``scalar_fields``, ``relation_fields`` and ``id_field`` are derived once
    at construction and exposed read-only.
    """

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, max_length=128)
    fields: Tuple[FieldDefinition, ...] = Field(..., min_length=1)
    primary_key: Tuple[str, ...] = Field(
        default_factory=tuple, description="Composite id field names."
    )
    unique_constraints: Tuple[Tuple[str, ...], ...] = Field(
        default_factory=tuple, description="Explicit unique constraints."
    )
    documentation: Optional[str] = Field(default=None)
    annotations: Tuple[Annotation, ...] = Field(default_factory=tuple)

    _field_map: Dict[str, FieldDefinition] = PrivateAttr(default_factory=dict)
    _scalar_fields: Tuple[FieldDefinition, ...] = PrivateAttr(default=())
    _relation_fields: Tuple[FieldDefinition, ...] = PrivateAttr(default=())

    @model_validator(mode="after")
    def _build_views(self) -> "ModelDefinition":
        names: List[str] = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Model '{self.name}' has duplicate fields: {dupes}")

        self._field_map = {f.name: f for f in self.fields}
        self._scalar_fields = tuple(f for f in self.fields if f.is_scalar)
        self._relation_fields = tuple(f for f in self.fields if f.is_relation)
        return self

    @model_validator(mode="after")
    def _validate_constraint_members(self) -> "ModelDefinition":
        known = {f.name for f in self.fields}
        for constraint in self.unique_constraints:
            missing = [c for c in constraint if c not in known]
            if missing:
                raise ValueError(
                    f"Unique constraint on model '{self.name}' references "
                    f"unknown fields: {missing}"
                )
        missing_pk = [c for c in self.primary_key if c not in known]
        if missing_pk:
            raise ValueError(
                f"Primary key of model '{self.name}' references unknown fields: "
                f"{missing_pk}"
            )
        return self

    @property
    def scalar_fields(self) -> Tuple[FieldDefinition, ...]:
        return self._scalar_fields

    @property
    def relation_fields(self) -> Tuple[FieldDefinition, ...]:
        return self._relation_fields

    @property
    def id_field(self) -> Optional[FieldDefinition]:
        """The single ``@id`` field, or None for composite-key models."""
        for f in self.fields:
            if f.is_id:
                return f
        return None

    @property
    def foreign_key_field_names(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for rel in self._relation_fields:
            for name in rel.relation_from_fields:
                seen.setdefault(name, None)
        return tuple(seen)

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        """O(1) field lookup."""
        return self._field_map.get(name)

    def get_annotations(self, key: str) -> Tuple[Annotation, ...]:
        return tuple(a for a in self.annotations if a.key == key)

    def __repr__(self) -> str:
        return (
            f"<Model {self.name} ({len(self._scalar_fields)} scalars, "
            f"{len(self._relation_fields)} relations)>"
        )


class ParsedSchema(BaseModel):
    """
    The root model: the entire normalized schema.

    Invariant: ``model_map`` and the back-reference index are built once
    from ``models`` upon construction, so every lookup the analyzer makes
    is O(1).
    """

    model_config = _FROZEN_CONFIG

    models: Tuple[ModelDefinition, ...] = Field(..., min_length=1)
    enums: Tuple[EnumDefinition, ...] = Field(default_factory=tuple)
    source_file: Optional[str] = Field(default=None)

    _model_map: Dict[str, ModelDefinition] = PrivateAttr(default_factory=dict)
    _enum_map: Dict[str, EnumDefinition] = PrivateAttr(default_factory=dict)
    _relation_index: Dict[str, Dict[str, Tuple[FieldDefinition, ...]]] = PrivateAttr(
        default_factory=dict
    )

    @model_validator(mode="after")
    def _build_indexes(self) -> "ParsedSchema":
        names: List[str] = [m.name for m in self.models]
        if len(names) != len(set(names)):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate model names: {dupes}")

        self._model_map = {m.name: m for m in self.models}
        self._enum_map = {e.name: e for e in self.enums}

        # holder model -> declared type -> relation fields, declaration order
        index: Dict[str, Dict[str, List[FieldDefinition]]] = {}
        for model in self.models:
            by_type: Dict[str, List[FieldDefinition]] = {}
            for rel in model.relation_fields:
                by_type.setdefault(rel.type, []).append(rel)
            index[model.name] = by_type
        self._relation_index = {
            holder: {t: tuple(fs) for t, fs in by_type.items()}
            for holder, by_type in index.items()
        }
        return self

    @property
    def model_map(self) -> Dict[str, ModelDefinition]:
        return self._model_map

    @property
    def enum_map(self) -> Dict[str, EnumDefinition]:
        return self._enum_map

    def get_model(self, name: str) -> Optional[ModelDefinition]:
        """O(1) model lookup."""
        return self._model_map.get(name)

    def relation_fields_of_type(
        self, holder: str, type_name: str
    ) -> Tuple[FieldDefinition, ...]:
        """Relation fields declared on ``holder`` whose type is ``type_name``."""
        return self._relation_index.get(holder, {}).get(type_name, ())

    @computed_field  # type: ignore[misc]
    @property
    def model_names(self) -> List[str]:
        return [m.name for m in self.models]

    @computed_field  # type: ignore[misc]
    @property
    def total_fields(self) -> int:
        return sum(len(m.fields) for m in self.models)

    def __repr__(self) -> str:
        return (
            f"<ParsedSchema {len(self.models)} models, "
            f"{len(self.enums)} enums, {self.total_fields} fields>"
        )


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------


class RelationshipInfo(BaseModel):
    """Classified relation, from the point of view of ``source_model``."""

    model_config = _FROZEN_CONFIG

    source_model: str
    target_model: str
    field_name: str
    kind: RelationshipType
    back_reference_field: Optional[str] = None
    is_self_referential: bool = False
    relation_name: Optional[str] = None
    foreign_key_fields: Tuple[str, ...] = Field(default_factory=tuple)
    is_required: bool = True
    is_list: bool = False
    auto_include: bool = False

    def __repr__(self) -> str:
        back = f" <-> {self.back_reference_field}" if self.back_reference_field else ""
        return (
            f"<Relationship {self.source_model}.{self.field_name} "
            f"{self.kind} {self.target_model}{back}>"
        )


class FilterField(BaseModel):
    model_config = _FROZEN_CONFIG

    name: str
    filter_type: FilterType
    field_type: str
    is_required: bool = True


class ForeignKeyInfo(BaseModel):
    """Foreign-key columns owned by one relation field."""

    model_config = _FROZEN_CONFIG

    field_names: Tuple[str, ...]
    relation_alias: str
    related_model: str
    relation_name: Optional[str] = None


class SpecialFields(BaseModel):
    """Fields with conventional meaning, detected by name and type."""

    model_config = _FROZEN_CONFIG

    slug: Optional[FieldDefinition] = None
    published: Optional[FieldDefinition] = None
    views: Optional[FieldDefinition] = None
    likes: Optional[FieldDefinition] = None
    approved: Optional[FieldDefinition] = None
    deleted_at: Optional[FieldDefinition] = None
    parent_id: Optional[FieldDefinition] = None

    def present(self) -> List[str]:
        """Names of the slots that were filled, in declaration order."""
        return [
            slot
            for slot in type(self).model_fields
            if getattr(self, slot) is not None
        ]


class ModelAnalysis(BaseModel):
    """
    Everything a layer generator needs to know about one model.

    Computed once per run by ``AnalysisCache`` and shared, by identity,
    between every layer generator.
    """

    model_config = _FROZEN_CONFIG

    model_name: str
    relationships: Tuple[RelationshipInfo, ...] = Field(default_factory=tuple)
    special_fields: SpecialFields = Field(default_factory=SpecialFields)
    is_junction_table: bool = False
    composite_unique_conflicts: Tuple[str, ...] = Field(default_factory=tuple)
    unique_lookup_fields: Tuple[str, ...] = Field(default_factory=tuple)
    search_fields: Tuple[str, ...] = Field(default_factory=tuple)
    filter_fields: Tuple[FilterField, ...] = Field(default_factory=tuple)
    foreign_keys: Tuple[ForeignKeyInfo, ...] = Field(default_factory=tuple)
    warnings: Tuple[RelationshipAmbiguityWarning, ...] = Field(default_factory=tuple)

    def has_composite_unique_conflict(self, field_name: str) -> bool:
        return field_name in self.composite_unique_conflicts

    def supports_unique_lookup(self, field_name: str) -> bool:
        return field_name in self.unique_lookup_fields

    @property
    def supports_slug_lookup(self) -> bool:
        slug = self.special_fields.slug
        return slug is not None and slug.name in self.unique_lookup_fields

    @property
    def auto_include(self) -> Tuple[str, ...]:
        """Relation fields loaded by default when a row is fetched."""
        return tuple(r.field_name for r in self.relationships if r.auto_include)

    def get_relationship(self, field_name: str) -> Optional[RelationshipInfo]:
        for rel in self.relationships:
            if rel.field_name == field_name:
                return rel
        return None

    def __repr__(self) -> str:
        return (
            f"<ModelAnalysis {self.model_name} "
            f"({len(self.relationships)} rels, junction={self.is_junction_table})>"
        )


# ---------------------------------------------------------------------------
# Generated artifacts & manifest
# ---------------------------------------------------------------------------


class ArtifactFile(BaseModel):
    """A single artifact emitted by a layer generator."""

    model_config = _FROZEN_CONFIG

    logical_id: str = Field(..., min_length=1, description="Stable artifact id.")
    content: str = Field(..., description="Full file content.")
    relative_path: Optional[str] = Field(
        default=None,
        description="Path below the output root; defaults to '<logical_id>.py'.",
    )

    @field_validator("logical_id")
    @classmethod
    def _no_surrounding_slashes(cls, v: str) -> str:
        if v.startswith("/") or v.endswith("/"):
            raise ValueError(f"logical_id must not start or end with '/': {v!r}")
        return v

    @property
    def resolved_relative_path(self) -> str:
        return self.relative_path or f"{self.logical_id}.py"

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))


class PathEntry(BaseModel):
    """Where one artifact lives and how other code imports it."""

    model_config = _FROZEN_CONFIG

    logical_id: str
    absolute_path: str
    import_specifier: str


class Manifest(BaseModel):
    """
    Record of one generation run.

    ``path_map`` is ordered by logical id so that two runs over the same
    schema and config serialise identically apart from ``generated_at``.
    """

    model_config = _FROZEN_CONFIG

    schema_hash: str
    tool_version: str
    generated_at: datetime
    path_map: Dict[str, PathEntry] = Field(default_factory=dict)
    failed_artifacts: Tuple[str, ...] = Field(default_factory=tuple)

    def to_dict(self, *, include_timestamp: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "schema_hash": self.schema_hash,
            "tool_version": self.tool_version,
            "path_map": {
                lid: entry.model_dump() for lid, entry in sorted(self.path_map.items())
            },
            "failed_artifacts": sorted(self.failed_artifacts),
        }
        if include_timestamp:
            data["generated_at"] = self.generated_at.isoformat()
        return data

    def to_json(self, indent_size: int = 2, *, include_timestamp: bool = True) -> str:
        """Serialise manifest to pretty-printed JSON with sorted keys."""
        return json.dumps(
            self.to_dict(include_timestamp=include_timestamp),
            indent=indent_size,
            sort_keys=True,
            ensure_ascii=False,
        )

    def __repr__(self) -> str:
        return (
            f"<Manifest {len(self.path_map)} paths, "
            f"{len(self.failed_artifacts)} failed, hash={self.schema_hash[:12]}>"
        )


# ---------------------------------------------------------------------------
# Generation configuration
# ---------------------------------------------------------------------------

ALL_LAYERS: Tuple[str, ...] = ("contracts", "validators", "services", "controllers", "routes")


class GenerationConfig(BaseModel):
    """
    Per-run configuration. The core only reads the path and scheduling
    settings; everything else is forwarded untouched to layer generators.
    """

    model_config = _SHARED_CONFIG

    # -- Project ------------------------------------------------------------
    project_name: str = Field(default="app", min_length=1, max_length=128)
    package_name: str = Field(
        default="generated",
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$",
        description="Dotted package prefix used in import specifiers.",
    )
    output_dir: str = Field(default="./generated")

    # -- Generation ---------------------------------------------------------
    target: TargetFramework = Field(default=TargetFramework.FASTAPI)
    layers: List[str] = Field(default_factory=lambda: list(ALL_LAYERS))
    order: IterationOrder = Field(default=IterationOrder.DECLARATION)
    workers: int = Field(default=1, ge=1, le=64)
    fail_on_warnings: bool = Field(default=False)
    auto_include_required_only: bool = Field(
        default=False,
        description="Auto-include a many-to-one relation only when its foreign key is required.",
    )
    api_prefix: str = Field(default="/api")

    # -- Opaque settings forwarded to layer generators ------------------------
    provider_config: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("layers")
    @classmethod
    def _known_layers(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in ALL_LAYERS]
        if unknown:
            raise ValueError(f"Unknown layers {unknown}; choose from {list(ALL_LAYERS)}.")
        return v

    @field_validator("api_prefix")
    @classmethod
    def _prefix_shape(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("api_prefix must start with '/'.")
        return v.rstrip("/") or "/"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "FieldKind",
    "ScalarType",
    "SCALAR_TYPE_NAMES",
    "RelationshipType",
    "FilterType",
    "IterationOrder",
    "TargetFramework",
    "Annotation",
    "FieldDefinition",
    "EnumDefinition",
    "ModelDefinition",
    "ParsedSchema",
    "RelationshipInfo",
    "FilterField",
    "ForeignKeyInfo",
    "SpecialFields",
    "ModelAnalysis",
    "ArtifactFile",
    "PathEntry",
    "Manifest",
    "ALL_LAYERS",
    "GenerationConfig",
]

logger.debug("schemagen.models loaded — %d public symbols.", len(__all__))
