# File: schemagen/generator.py
"""
schemagen - Generator Orchestrator
====================================
Connects every phase together:

    ParsedSchema → Validate → Analyze (barrier) → Generate → Track → Manifest

Workflow::

    1. Validate the schema (validators.py); any error is a fatal SchemaError.
    2. Phase 1: analyze every model once into the run's ``AnalysisCache``.
       Nothing is generated until every model is analyzed.
    3. Order models (declaration order, or ``topological_order``).
    4. Phase 2: call every layer generator for every model with the *same*
       ``ModelAnalysis`` instance. Failures are isolated per model × layer.
    5. Register every artifact with the ``PathTracker``; a conflicting
       artifact is skipped and recorded.
    6. Finalize the ``Manifest``.

Error handling strategy:
    - Schema-level problems (validation errors, undefined relation targets)
      propagate to the caller as ``SchemaError``; no artifact is produced.
    - A layer generator that raises becomes a ``Failure`` and the batch
      continues with every other model × layer combination.
    - ``RunResult`` is the source of truth for what succeeded.

Complexity: O(M × (R + L)) where M = models, R = relations per model,
L = layer generators.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from schemagen.cache import AnalysisCache
from schemagen.errors import (
    GenerationError,
    PathConflictError,
    RelationshipAmbiguityWarning,
    SchemaError,
)
from schemagen.exporters import ArtifactExporter, ExportResult
from schemagen.layers import default_layers
from schemagen.models import (
    ArtifactFile,
    GenerationConfig,
    IterationOrder,
    Manifest,
    ModelAnalysis,
    ModelDefinition,
    ParsedSchema,
)
from schemagen.normalizer import load_schema
from schemagen.providers import ProviderRegistry
from schemagen.relationships import analyze_model, topological_order
from schemagen.tracker import PathTracker, import_specifier_for, schema_hash
from schemagen.utils import Timer, count_lines
from schemagen.validators import ValidationResult, validate_full

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.generator")

LayerCallable = Callable[[ModelDefinition, ModelAnalysis, GenerationConfig], Sequence[ArtifactFile]]


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Failure:
    """One model × layer invocation (or one artifact) that did not make it."""

    model: str
    layer: str
    cause: str
    error_type: str = "Exception"
    logical_id: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        target: str = f" [{self.logical_id}]" if self.logical_id else ""
        return f"{self.model} × {self.layer}{target}: {self.error_type}: {self.cause}"


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class RunResult:
    """
    Everything one orchestrator run produced: artifacts from every
    model × layer that succeeded, the failures of the ones that did not,
    non-fatal warnings and the finalized manifest.
    """

    success: bool = False
    failures: List[Failure] = field(default_factory=list)
    artifacts: List[ArtifactFile] = field(default_factory=list)
    warnings: List[RelationshipAmbiguityWarning] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    manifest: Optional[Manifest] = None
    export: Optional[ExportResult] = None
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    models_processed: int = 0
    total_elapsed_seconds: float = 0.0

    def artifact(self, logical_id: str) -> Optional[ArtifactFile]:
        for item in self.artifacts:
            if item.logical_id == logical_id:
                return item
        return None

    @property
    def artifact_ids(self) -> List[str]:
        return [a.logical_id for a in self.artifacts]

    @property
    def total_bytes(self) -> int:
        return sum(a.size_bytes for a in self.artifacts)

    @property
    def total_lines(self) -> int:
        return sum(count_lines(a.content) for a in self.artifacts)

    def summary(self) -> str:
        """Plain-text run report, as printed by the CLI."""
        rule: str = "-" * 60
        lines: List[str] = [
            rule,
            f"schemagen Generation Report: {'SUCCESS' if self.success else 'FAILED'}",
            rule,
        ]
        totals: List[Tuple[str, str]] = [
            ("models", str(self.models_processed)),
            ("artifacts", str(len(self.artifacts))),
            ("lines", f"{self.total_lines:,}"),
            ("bytes", f"{self.total_bytes:,}"),
            ("elapsed", f"{self.total_elapsed_seconds:.3f}s"),
        ]
        if self.manifest is not None:
            totals.append(("schema hash", self.manifest.schema_hash[:16]))
        lines.extend(f"{label:>12}: {value}" for label, value in totals)

        if self.step_metrics:
            lines.append("")
            lines.append("Steps:")
            for step in self.step_metrics:
                mark: str = "ok" if step.success else "FAIL"
                lines.append(
                    f"  [{mark:>4}] {step.step_name:<26s} {step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections: List[Tuple[str, Sequence[Any]]] = [
            ("Validation Warnings", self.validation_warnings),
            ("Relationship Warnings", self.warnings),
            ("Failures", self.failures),
            ("Export Errors", self.export.errors if self.export is not None else ()),
        ]
        for title, items in sections:
            if not items:
                continue
            lines.append("")
            lines.append(f"{title} ({len(items)}):")
            lines.extend(f"  - {item}" for item in items)

        lines.append(rule)
        return "\n".join(lines)


def layer_name(generator: Any) -> str:
    """Display name of a layer generator: ``.layer``, else ``__name__``."""
    name: Optional[str] = getattr(generator, "layer", None) or getattr(generator, "__name__", None)
    return name or type(generator).__name__


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """
    Runs every layer generator over every model of a schema.

    Usage::

        orchestrator = Orchestrator()
        result = orchestrator.run(schema, default_layers(config), config)
        print(result.summary())

    The orchestrator holds no per-run state: each ``run`` gets a fresh
    ``AnalysisCache`` and ``PathTracker`` unless the caller passes its own.
    """

    def __init__(
        self,
        *,
        validate: bool = True,
        registry: Optional[ProviderRegistry] = None,
        tool_version: Optional[str] = None,
    ) -> None:
        self._validate: bool = validate
        self._registry: Optional[ProviderRegistry] = registry
        self._tool_version: Optional[str] = tool_version
        logger.debug("Orchestrator initialised: validate=%s.", validate)

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def run(
        self,
        schema: ParsedSchema,
        layer_generators: Sequence[LayerCallable],
        config: GenerationConfig,
        *,
        cache: Optional[AnalysisCache] = None,
        tracker: Optional[PathTracker] = None,
    ) -> RunResult:
        """
        Execute validate → analyze → generate → finalize.

        Raises:
            SchemaError: On any schema-level problem, before generation.
        """
        pipeline_start: float = time.perf_counter()
        result: RunResult = RunResult()
        if cache is None:
            cache = AnalysisCache(partial(
                analyze_model,
                auto_include_required_only=config.auto_include_required_only,
            ))
        tracker = tracker if tracker is not None else PathTracker()

        if self._validate:
            self._step_validate(schema, config, result)

        analyses: Dict[str, ModelAnalysis] = self._step_analyze(schema, config, cache, result)
        order: List[str] = self._step_order(schema, config, result)
        self._step_generate(schema, order, analyses, layer_generators, config, tracker, result)

        with Timer("finalize") as t:
            result.manifest = tracker.finalize(
                schema_hash=schema_hash(schema),
                tool_version=self._tool_version,
            )
        result.step_metrics.append(GenerationStepMetric(
            step_name="Finalize Manifest",
            success=True,
            elapsed_seconds=t.elapsed,
            detail=f"{len(result.manifest.path_map)} paths",
        ))

        result.models_processed = len(schema.models)
        result.success = not result.failures
        result.total_elapsed_seconds = time.perf_counter() - pipeline_start

        if result.success:
            logger.info(
                "Run complete: %d artifacts for %d models in %.3fs.",
                len(result.artifacts),
                result.models_processed,
                result.total_elapsed_seconds,
            )
        else:
            logger.error(
                "Run finished with %d failure(s); %d artifacts produced.",
                len(result.failures),
                len(result.artifacts),
            )
        return result

    def generate_from_file(
        self,
        schema_path: Path,
        output_dir: Optional[Path] = None,
        *,
        config_overrides: Optional[Mapping[str, Any]] = None,
        layer_generators: Optional[Sequence[LayerCallable]] = None,
        write: bool = True,
        clean_output: bool = False,
    ) -> RunResult:
        """
        Full pipeline: load file → run → export.

        Raises:
            FileNotFoundError: If ``schema_path`` does not exist.
            SchemaError: If the file or the schema is invalid.
        """
        overrides: Dict[str, Any] = dict(config_overrides or {})
        if output_dir is not None:
            overrides["output_dir"] = str(output_dir)

        with Timer("load_schema") as t_load:
            schema, config = load_schema(Path(schema_path), config_overrides=overrides)
        logger.info("Loaded schema file: %s (%d models).", schema_path, len(schema.models))

        generators: Sequence[LayerCallable] = (
            layer_generators
            if layer_generators is not None
            else default_layers(config, self._registry)
        )
        result: RunResult = self.run(schema, generators, config)
        result.step_metrics.insert(0, GenerationStepMetric(
            step_name="Load Schema File",
            success=True,
            elapsed_seconds=t_load.elapsed,
            detail=f"from {Path(schema_path).name}",
        ))

        if write:
            with Timer("export") as t_export:
                exporter = ArtifactExporter(
                    Path(config.output_dir),
                    clean_before_export=clean_output,
                    workers=config.workers,
                )
                result.export = exporter.export(result.artifacts, result.manifest)
            result.step_metrics.append(GenerationStepMetric(
                step_name="Export to Filesystem",
                success=result.export.success,
                elapsed_seconds=t_export.elapsed,
                detail=f"{len(result.export.records)} files, {result.export.total_bytes:,} bytes",
            ))
            result.total_elapsed_seconds += t_export.elapsed
        return result

    # -----------------------------------------------------------------
    # Pipeline step: Validation
    # -----------------------------------------------------------------

    def _step_validate(
        self,
        schema: ParsedSchema,
        config: GenerationConfig,
        result: RunResult,
    ) -> None:
        with Timer("validation") as t:
            validation: ValidationResult = validate_full(schema, config, self._registry)

        result.validation_warnings.extend(str(w) for w in validation.warnings)
        if validation.has_errors:
            detail: str = f"{validation.error_count} error(s)"
        elif validation.has_warnings:
            detail = f"{validation.warning_count} warning(s)"
        else:
            detail = "all checks passed"
        result.step_metrics.append(GenerationStepMetric(
            step_name="Validate Schema",
            success=validation.is_valid,
            elapsed_seconds=t.elapsed,
            detail=detail,
        ))

        if validation.has_errors:
            for err in validation.errors:
                logger.error("  ✗ %s", err)
            raise SchemaError(
                f"Schema validation failed with {validation.error_count} error(s).",
                issues=[str(e) for e in validation.errors],
            )

        for warn in validation.warnings:
            logger.warning("  ⚠ %s", warn)
        if validation.has_warnings and config.fail_on_warnings:
            raise SchemaError(
                f"{validation.warning_count} validation warning(s) treated as errors.",
                issues=[str(w) for w in validation.warnings],
            )

    # -----------------------------------------------------------------
    # Pipeline step: Phase 1, analysis barrier
    # -----------------------------------------------------------------

    def _step_analyze(
        self,
        schema: ParsedSchema,
        config: GenerationConfig,
        cache: AnalysisCache,
        result: RunResult,
    ) -> Dict[str, ModelAnalysis]:
        analyses: Dict[str, ModelAnalysis] = {}
        with Timer("analysis") as t:
            for model in schema.models:
                analysis: ModelAnalysis = cache.get_analysis(model, schema)
                analyses[model.name] = analysis
                result.warnings.extend(analysis.warnings)

        junctions: int = sum(1 for a in analyses.values() if a.is_junction_table)
        result.step_metrics.append(GenerationStepMetric(
            step_name="Analyze Relationships",
            success=True,
            elapsed_seconds=t.elapsed,
            detail=f"{len(analyses)} models, {junctions} junction(s), {len(result.warnings)} warning(s)",
        ))
        logger.info("Analysis complete: %d models in %.3fs.", len(analyses), t.elapsed)

        if result.warnings and config.fail_on_warnings:
            raise SchemaError(
                f"{len(result.warnings)} relationship warning(s) treated as errors.",
                issues=[str(w) for w in result.warnings],
            )
        return analyses

    # -----------------------------------------------------------------
    # Pipeline step: Ordering
    # -----------------------------------------------------------------

    def _step_order(
        self,
        schema: ParsedSchema,
        config: GenerationConfig,
        result: RunResult,
    ) -> List[str]:
        with Timer("ordering") as t:
            if config.order == IterationOrder.TOPOLOGICAL:
                order: List[str] = topological_order(schema)
            else:
                order = [m.name for m in schema.models]
        result.step_metrics.append(GenerationStepMetric(
            step_name="Order Models",
            success=True,
            elapsed_seconds=t.elapsed,
            detail=f"{config.order}: {' → '.join(order)}",
        ))
        return order

    # -----------------------------------------------------------------
    # Pipeline step: Phase 2, generation
    # -----------------------------------------------------------------

    def _step_generate(
        self,
        schema: ParsedSchema,
        order: Sequence[str],
        analyses: Mapping[str, ModelAnalysis],
        layer_generators: Sequence[LayerCallable],
        config: GenerationConfig,
        tracker: PathTracker,
        result: RunResult,
    ) -> None:
        jobs: List[Tuple[ModelDefinition, LayerCallable]] = [
            (schema.model_map[name], generator)
            for name in order
            for generator in layer_generators
        ]

        with Timer("code_generation") as t:
            if config.workers > 1 and len(jobs) > 1:
                with ThreadPoolExecutor(
                    max_workers=config.workers, thread_name_prefix="schemagen"
                ) as pool:
                    futures: List[Future] = [
                        pool.submit(self._invoke, model, generator, analyses[model.name], config)
                        for model, generator in jobs
                    ]
                    # collected in submission order, not completion order
                    outcomes = [future.result() for future in futures]
            else:
                outcomes = [
                    self._invoke(model, generator, analyses[model.name], config)
                    for model, generator in jobs
                ]

            for (model, generator), (artifacts, failure) in zip(jobs, outcomes):
                if failure is not None:
                    result.failures.append(failure)
                    continue
                for artifact in artifacts:
                    self._register(model, layer_name(generator), artifact, config, tracker, result)

        result.step_metrics.append(GenerationStepMetric(
            step_name="Code Generation",
            success=not result.failures,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{len(result.artifacts)} artifacts, {len(jobs)} jobs, "
                f"{len(result.failures)} failure(s)"
            ),
        ))
        logger.info(
            "Code generation complete: %d artifacts from %d jobs in %.3fs.",
            len(result.artifacts),
            len(jobs),
            t.elapsed,
        )

    @staticmethod
    def _invoke(
        model: ModelDefinition,
        generator: LayerCallable,
        analysis: ModelAnalysis,
        config: GenerationConfig,
    ) -> Tuple[List[ArtifactFile], Optional[Failure]]:
        """Call one layer generator; any exception becomes a ``Failure``."""
        layer: str = layer_name(generator)
        try:
            artifacts: List[ArtifactFile] = list(generator(model, analysis, config) or ())
            for artifact in artifacts:
                if not isinstance(artifact, ArtifactFile):
                    raise TypeError(
                        f"layer '{layer}' returned {type(artifact).__name__}, "
                        f"expected ArtifactFile"
                    )
        except Exception as exc:
            error = GenerationError(model.name, layer, exc)
            logger.error("%s", error)
            logger.debug("Traceback for %s × %s", model.name, layer, exc_info=True)
            return [], Failure(
                model=model.name,
                layer=layer,
                cause=str(exc),
                error_type=type(exc).__name__,
                exception=error,
            )
        return artifacts, None

    @staticmethod
    def _register(
        model: ModelDefinition,
        layer: str,
        artifact: ArtifactFile,
        config: GenerationConfig,
        tracker: PathTracker,
        result: RunResult,
    ) -> None:
        relative: str = artifact.resolved_relative_path
        absolute: str = (Path(config.output_dir).resolve() / relative).as_posix()
        previous = tracker.get(artifact.logical_id)
        try:
            tracker.track_path(
                artifact.logical_id,
                absolute,
                import_specifier_for(config.package_name, relative),
            )
            if previous is not None:
                # same id and same path: the tracker accepts it, but the first artifact stays
                tracker.mark_failed(artifact.logical_id)
                raise PathConflictError(artifact.logical_id, previous.absolute_path, absolute)
        except PathConflictError as exc:
            logger.error("Skipping artifact: %s", exc)
            result.failures.append(Failure(
                model=model.name,
                layer=layer,
                cause=str(exc),
                error_type=type(exc).__name__,
                logical_id=artifact.logical_id,
                exception=exc,
            ))
            return
        result.artifacts.append(artifact)


# ---------------------------------------------------------------------------
# Module-level convenience
# ---------------------------------------------------------------------------


def run(
    schema: ParsedSchema,
    layer_generators: Sequence[LayerCallable],
    config: GenerationConfig,
    *,
    cache: Optional[AnalysisCache] = None,
    tracker: Optional[PathTracker] = None,
) -> RunResult:
    """``Orchestrator().run(...)`` with default settings."""
    return Orchestrator().run(schema, layer_generators, config, cache=cache, tracker=tracker)


__all__: List[str] = [
    "Failure",
    "GenerationStepMetric",
    "RunResult",
    "LayerCallable",
    "Orchestrator",
    "layer_name",
    "run",
]

logger.debug("schemagen.generator loaded.")
