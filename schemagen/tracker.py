# File: schemagen/tracker.py
"""
schemagen - Path / Manifest Tracker
=====================================
Assigns every emitted artifact a unique logical id, output path and import
specifier, and assembles the run ``Manifest`` once generation is over.

``track_path`` is the only shared mutable state of a run and is serialised
with a lock, so artifact generation and file emission may run on several
threads.

Determinism: ``path_map`` is sorted by logical id and ``schema_hash`` is
computed from a canonical JSON dump, so two runs over identical input
produce byte-identical manifests apart from ``generated_at``.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set

from schemagen.errors import PathConflictError
from schemagen.models import Manifest, ParsedSchema, PathEntry
from schemagen.utils import sha256_hex

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.tracker")


def schema_hash(schema: ParsedSchema) -> str:
    """SHA-256 of the canonical JSON form of the normalized schema."""
    payload = schema.model_dump(mode="json", exclude={"source_file"})
    canonical: str = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return sha256_hex(canonical)


def import_specifier_for(package_name: str, relative_path: str) -> str:
    """``("app", "services/blog_post.py")`` → ``"app.services.blog_post"``."""
    parts = list(PurePosixPath(relative_path).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join([package_name, *parts]) if parts else package_name


class PathTracker:
    """
    Registry of ``PathEntry`` values for one run.

    Usage::

        tracker = PathTracker()
        tracker.track_path("services/user", "/out/services/user.py", "app.services.user")
        manifest = tracker.finalize(schema_hash="...", tool_version="1.0.0")
    """

    def __init__(self) -> None:
        self._entries: Dict[str, PathEntry] = {}
        self._owners: Dict[str, str] = {}
        self._failed: Set[str] = set()
        self._lock: threading.Lock = threading.Lock()
        self._manifest: Optional[Manifest] = None

    # -----------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------

    def track_path(
        self,
        logical_id: str,
        absolute_path: str,
        import_specifier: str,
    ) -> PathEntry:
        """
        Record where ``logical_id`` lives.

        Re-registering an id with the same path is a no-op. A different path
        for a known id, or a path already owned by another id, raises
        ``PathConflictError`` and marks ``logical_id`` as failed.
        """
        with self._lock:
            if self._manifest is not None:
                raise RuntimeError("PathTracker already finalized.")

            existing: Optional[PathEntry] = self._entries.get(logical_id)
            if existing is not None:
                if existing.absolute_path == absolute_path:
                    return existing
                self._failed.add(logical_id)
                raise PathConflictError(logical_id, existing.absolute_path, absolute_path)

            owner: Optional[str] = self._owners.get(absolute_path)
            if owner is not None:
                self._failed.add(logical_id)
                raise PathConflictError(
                    logical_id, absolute_path, absolute_path, existing_id=owner
                )

            entry = PathEntry(
                logical_id=logical_id,
                absolute_path=absolute_path,
                import_specifier=import_specifier,
            )
            self._entries[logical_id] = entry
            self._owners[absolute_path] = logical_id
            return entry

    def mark_failed(self, logical_id: str) -> None:
        """Record an artifact that could not be emitted for another reason."""
        with self._lock:
            self._failed.add(logical_id)

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def get(self, logical_id: str) -> Optional[PathEntry]:
        return self._entries.get(logical_id)

    @property
    def failed(self) -> List[str]:
        return sorted(self._failed)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, logical_id: object) -> bool:
        return logical_id in self._entries

    # -----------------------------------------------------------------
    # Finalisation
    # -----------------------------------------------------------------

    def finalize(
        self,
        *,
        schema_hash: str,
        tool_version: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> Manifest:
        """
        Freeze the registry into a ``Manifest``. Called once per run, after
        every model × layer has either produced artifacts or failed.
        """
        if tool_version is None:
            from schemagen import __version__ as tool_version

        with self._lock:
            if self._manifest is not None:
                raise RuntimeError("PathTracker.finalize() called twice.")

            self._manifest = Manifest(
                schema_hash=schema_hash,
                tool_version=tool_version,
                generated_at=generated_at or datetime.now(timezone.utc),
                path_map={lid: self._entries[lid] for lid in sorted(self._entries)},
                failed_artifacts=tuple(sorted(self._failed)),
            )

        logger.info(
            "Manifest finalized: %d paths, %d failed artifact(s).",
            len(self._manifest.path_map),
            len(self._manifest.failed_artifacts),
        )
        return self._manifest

    @property
    def manifest(self) -> Optional[Manifest]:
        return self._manifest

    def __repr__(self) -> str:
        return f"<PathTracker {len(self._entries)} paths, {len(self._failed)} failed>"


__all__: List[str] = ["PathTracker", "schema_hash", "import_specifier_for"]
