# File: schemagen/cache.py
"""
schemagen - Model Analysis Cache
==================================
Memoizes one ``ModelAnalysis`` per model for the lifetime of a single run.

The cache is an explicit object created by the caller (normally the
orchestrator) and passed to whoever needs an analysis; there is no
module-level state, so separate runs, tests and parallel runs never see
each other's results.

A cache is bound to the first ``ParsedSchema`` instance it sees. Asking it
about a different schema instance is a programming error and raises
``ValueError``: analyses are only valid for the exact schema they were
computed from.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterator, List, Optional

from schemagen.models import ModelAnalysis, ModelDefinition, ParsedSchema
from schemagen.relationships import analyze_model

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.cache")

Analyzer = Callable[[ModelDefinition, ParsedSchema], ModelAnalysis]


class AnalysisCache:
    """
    Per-run memo of ``ModelAnalysis`` keyed by model name.

    Usage::

        cache = AnalysisCache()
        analysis = cache.get_analysis(model, schema)
        assert cache.get_analysis(model, schema) is analysis

    ``analyzer`` can be replaced (e.g. by a counting wrapper in tests); it
    defaults to ``schemagen.relationships.analyze_model``.
    """

    def __init__(self, analyzer: Optional[Analyzer] = None) -> None:
        self._analyzer: Analyzer = analyzer or analyze_model
        self._schema: Optional[ParsedSchema] = None
        self._entries: Dict[str, ModelAnalysis] = {}
        self._computations: Dict[str, int] = {}
        self._lock: threading.Lock = threading.Lock()

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def get_analysis(self, model: ModelDefinition, schema: ParsedSchema) -> ModelAnalysis:
        """
        Return the cached analysis for ``model``, computing it on first use.

        Raises ``SchemaError`` (from the analyzer) when the model references
        an undefined model; nothing is cached in that case.
        """
        with self._lock:
            self._bind(schema)
            cached: Optional[ModelAnalysis] = self._entries.get(model.name)
            if cached is not None:
                return cached

            analysis: ModelAnalysis = self._analyzer(model, schema)
            self._entries[model.name] = analysis
            self._computations[model.name] = self._computations.get(model.name, 0) + 1
            logger.debug("Analyzed model %s: %r", model.name, analysis)
            return analysis

    def try_get(self, model_name: str) -> Optional[ModelAnalysis]:
        """Cached analysis or None, never computes."""
        return self._entries.get(model_name)

    def has(self, model_name: str) -> bool:
        return model_name in self._entries

    def clear(self) -> None:
        """Drop every entry and unbind the schema."""
        with self._lock:
            self._entries.clear()
            self._computations.clear()
            self._schema = None

    def computation_count(self, model_name: str) -> int:
        """How many times the analyzer ran for ``model_name``."""
        return self._computations.get(model_name, 0)

    @property
    def schema(self) -> Optional[ParsedSchema]:
        return self._schema

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _bind(self, schema: ParsedSchema) -> None:
        if self._schema is None:
            self._schema = schema
        elif self._schema is not schema:
            raise ValueError(
                "AnalysisCache is bound to a different schema instance; "
                "create one cache per run."
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, model_name: object) -> bool:
        return model_name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return f"<AnalysisCache {len(self._entries)} models>"


__all__: List[str] = ["AnalysisCache", "Analyzer"]
