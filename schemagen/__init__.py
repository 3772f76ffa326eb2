# File: schemagen/__init__.py
"""
schemagen — Layered Code Generator for Data-Model Schemas
===========================================================

Reads a data-model description (models, fields, relations, enums and
documentation annotations), infers relationship semantics once per model
and renders a set of layered source artifacts (contracts, validators,
services, controllers, routes) for every model.

Architecture overview::

    ┌──────────────┐     ┌────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│  Orchestrator  │────▶│  LayerGenerator  │
    │   (cli.py)   │     │ (generator.py) │     │   (layers.py)    │
    └──────────────┘     └───────┬────────┘     └──────────────────┘
                                 │
          ┌───────────┬──────────┼───────────┬────────────┐
          ▼           ▼          ▼           ▼            ▼
    ┌──────────┐ ┌──────────┐ ┌───────┐ ┌─────────┐ ┌───────────┐
    │normalizer│ │validators│ │ cache │ │ tracker │ │ exporters │
    └────┬─────┘ └──────────┘ └───┬───┘ └─────────┘ └───────────┘
         ▼                        ▼
    ┌───────────┐         ┌───────────────┐
    │annotations│         │ relationships │
    └───────────┘         └───────────────┘

Usage::

    # As a library
    from schemagen import Orchestrator, default_layers, load_schema
    schema, config = load_schema("schema.yaml")
    result = Orchestrator().run(schema, default_layers(config), config)

    # From the command line
    python -m schemagen --schema schema.yaml --output ./generated --verbose

Public API:
    - Orchestrator       — Two-phase run (analyze, then generate)
    - AnalysisCache      — Memoized per-model analysis
    - PathTracker        — Output path ownership and manifest
    - analyze_model      — Relationship and uniqueness analysis
    - load_schema        — File → ParsedSchema + GenerationConfig
    - validate_full      — Schema validation entry point
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "schemagen contributors"
__license__: str = "MIT"

from schemagen.errors import (
    GenerationError,
    PathConflictError,
    RelationshipAmbiguityWarning,
    SchemaError,
    SchemaGenError,
)
from schemagen.models import (
    Annotation,
    ArtifactFile,
    EnumDefinition,
    FieldDefinition,
    FieldKind,
    GenerationConfig,
    IterationOrder,
    Manifest,
    ModelAnalysis,
    ModelDefinition,
    ParsedSchema,
    PathEntry,
    RelationshipInfo,
    RelationshipType,
    ScalarType,
    SpecialFields,
    TargetFramework,
)
from schemagen.annotations import parse_annotations
from schemagen.normalizer import load_schema, parse_raw_schema
from schemagen.relationships import (
    analyze,
    analyze_model,
    classify,
    find_back_reference,
    is_junction_table,
    topological_order,
)
from schemagen.cache import AnalysisCache
from schemagen.tracker import PathTracker
from schemagen.providers import ProviderDescriptor, ProviderRegistry, default_registry
from schemagen.validators import ValidationResult, validate_full
from schemagen.layers import LayerGenerator, default_layers
from schemagen.exporters import ArtifactExporter, ExportResult
from schemagen.generator import Failure, Orchestrator, RunResult, run

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Errors
    "SchemaGenError",
    "SchemaError",
    "GenerationError",
    "PathConflictError",
    "RelationshipAmbiguityWarning",
    # Models
    "Annotation",
    "ArtifactFile",
    "EnumDefinition",
    "FieldDefinition",
    "FieldKind",
    "GenerationConfig",
    "IterationOrder",
    "Manifest",
    "ModelAnalysis",
    "ModelDefinition",
    "ParsedSchema",
    "PathEntry",
    "RelationshipInfo",
    "RelationshipType",
    "ScalarType",
    "SpecialFields",
    "TargetFramework",
    # Loading
    "load_schema",
    "parse_raw_schema",
    "parse_annotations",
    # Analysis
    "analyze",
    "analyze_model",
    "classify",
    "find_back_reference",
    "is_junction_table",
    "topological_order",
    "AnalysisCache",
    "PathTracker",
    # Providers
    "ProviderDescriptor",
    "ProviderRegistry",
    "default_registry",
    # Validation
    "validate_full",
    "ValidationResult",
    # Generation
    "LayerGenerator",
    "default_layers",
    "Orchestrator",
    "RunResult",
    "Failure",
    "run",
    # Export
    "ArtifactExporter",
    "ExportResult",
]
