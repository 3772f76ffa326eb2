# File: schemagen/errors.py
"""
schemagen - Error Taxonomy
============================

    SchemaGenError
    ├── SchemaError            fatal, aborts the run before generation
    ├── GenerationError        one model × layer invocation failed
    └── PathConflictError      two artifacts claim the same logical id / path

    RelationshipAmbiguityWarning (UserWarning)
        recorded on the analysis and the run result, never raised.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class SchemaGenError(Exception):
    """Base class for every error raised by schemagen."""


class SchemaError(SchemaGenError):
    """
    Fatal schema-level error: unresolved relation target, malformed model
    or field, or failed validation.

    ``issues`` holds every individual message when several problems were
    collected before aborting.
    """

    def __init__(self, message: str, issues: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.issues: List[str] = list(issues) if issues else [message]


class GenerationError(SchemaGenError):
    """A layer generator failed for one model."""

    def __init__(self, model: str, layer: str, cause: BaseException) -> None:
        super().__init__(
            f"Layer '{layer}' failed for model '{model}': "
            f"{type(cause).__name__}: {cause}"
        )
        self.model: str = model
        self.layer: str = layer
        self.cause: BaseException = cause


class PathConflictError(SchemaGenError):
    """Two artifacts claim the same logical id or the same output path."""

    def __init__(
        self,
        logical_id: str,
        existing_path: str,
        new_path: str,
        *,
        existing_id: Optional[str] = None,
    ) -> None:
        if existing_id is not None and existing_id != logical_id:
            message = (
                f"Path '{new_path}' for '{logical_id}' is already owned by "
                f"'{existing_id}'."
            )
        else:
            message = (
                f"Logical id '{logical_id}' already tracked at '{existing_path}', "
                f"refusing '{new_path}'."
            )
        super().__init__(message)
        self.logical_id: str = logical_id
        self.existing_path: str = existing_path
        self.new_path: str = new_path
        self.existing_id: Optional[str] = existing_id


class RelationshipAmbiguityWarning(UserWarning):
    """
    A back-reference could not be determined uniquely and a best-effort
    candidate was chosen.
    """

    def __init__(
        self,
        model: str,
        field: str,
        target: str,
        candidates: Sequence[str],
        chosen: str,
    ) -> None:
        super().__init__(
            f"{model}.{field} -> {target}: ambiguous back-reference among "
            f"{list(candidates)}, chose '{chosen}'."
        )
        self.model: str = model
        self.field: str = field
        self.target: str = target
        self.candidates: List[str] = list(candidates)
        self.chosen: str = chosen

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RelationshipAmbiguityWarning):
            return NotImplemented
        return (
            self.model == other.model
            and self.field == other.field
            and self.target == other.target
            and self.candidates == other.candidates
            and self.chosen == other.chosen
        )

    def __hash__(self) -> int:
        return hash((self.model, self.field, self.target, self.chosen))


__all__: List[str] = [
    "SchemaGenError",
    "SchemaError",
    "GenerationError",
    "PathConflictError",
    "RelationshipAmbiguityWarning",
]
