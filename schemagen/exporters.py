# File: schemagen/exporters.py
"""
schemagen - Artifact Exporter (File-System Manager)
=====================================================

Responsible for:
    1. Writing generated artifacts atomically (write-to-temp then rename)
       at the paths the ``PathTracker`` assigned.
    2. Adding ``__init__.py`` markers so the generated tree is importable.
    3. Writing ``manifest.json`` next to the generated code.
    4. Idempotent operation: re-running on the same path is always safe.

Each file is written independently; a failed write is recorded and the
rest of the batch continues. With ``workers > 1`` files are written on a
thread pool, which is safe because the tracker guarantees every artifact
owns a distinct path.

Complexity: O(F) where F = total number of output files.
"""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from schemagen.models import ArtifactFile, Manifest
from schemagen.utils import Timer, count_lines, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.exporters")

MANIFEST_FILE_NAME: str = "manifest.json"

_PRESERVED_ON_CLEAN: Set[str] = {".git", ".gitignore", ".gitkeep"}


# ---------------------------------------------------------------------------
# Data classes for export results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single exported file."""

    relative_path: str
    absolute_path: str
    size_bytes: int
    line_count: int
    sha256: str
    logical_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ExportResult:
    """
    Final result returned by ``ArtifactExporter.export()``.

    ``records`` is sorted by relative path.
    """

    success: bool
    records: Tuple[FileRecord, ...]
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    elapsed_seconds: float
    manifest_path: Optional[str] = None

    @property
    def total_bytes(self) -> int:
        return sum(r.size_bytes for r in self.records)

    @property
    def total_lines(self) -> int:
        return sum(r.line_count for r in self.records)


# ---------------------------------------------------------------------------
# ArtifactExporter
# ---------------------------------------------------------------------------


class ArtifactExporter:
    """
    Writes artifacts and the run manifest to the filesystem.

    Usage::

        exporter = ArtifactExporter(Path("./generated"))
        export = exporter.export(result.artifacts, result.manifest)
        print(export.manifest_path)

    Thread-safety: NOT thread-safe. Use one exporter per output directory.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        clean_before_export: bool = False,
        atomic_writes: bool = True,
        write_manifest: bool = True,
        write_package_markers: bool = True,
        workers: int = 1,
    ) -> None:
        self._output_dir: Path = Path(output_dir).resolve()
        self._clean_before_export: bool = clean_before_export
        self._atomic_writes: bool = atomic_writes
        self._write_manifest: bool = write_manifest
        self._write_package_markers: bool = write_package_markers
        self._workers: int = max(1, workers)

        self._errors: List[str] = []
        self._warnings: List[str] = []

        logger.debug(
            "ArtifactExporter initialised: output_dir=%s, atomic=%s, workers=%d.",
            self._output_dir,
            self._atomic_writes,
            self._workers,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def export(
        self,
        artifacts: Sequence[ArtifactFile],
        manifest: Optional[Manifest] = None,
    ) -> ExportResult:
        """
        Write every artifact, the package markers and ``manifest.json``.

        When a manifest is given, artifacts are written at the absolute
        path it records; otherwise below ``output_dir``.
        """
        self._errors = []
        self._warnings = []
        records: List[FileRecord] = []
        manifest_path: Optional[str] = None

        with Timer("export") as timer:
            self._pre_export_cleanup()

            targets: Dict[str, Tuple[Path, str, Optional[str]]] = {}
            for artifact in artifacts:
                path: Path = self._target_for(artifact, manifest)
                if str(path) in targets:
                    self._errors.append(
                        f"Duplicate output path {path} for '{artifact.logical_id}'; skipped."
                    )
                    continue
                targets[str(path)] = (path, artifact.content, artifact.logical_id)
            if self._write_package_markers:
                for marker in self._package_markers(targets.values()):
                    targets.setdefault(str(marker), (marker, '"""Generated package."""\n', None))

            records.extend(self._write_all(list(targets.values())))

            if self._write_manifest and manifest is not None:
                target: Path = self._output_dir / MANIFEST_FILE_NAME
                record = self._write_single_file(target, manifest.to_json(), None)
                if record is not None:
                    records.append(record)
                    manifest_path = record.absolute_path

        records.sort(key=lambda r: r.relative_path)
        success: bool = not self._errors
        result = ExportResult(
            success=success,
            records=tuple(records),
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            elapsed_seconds=timer.elapsed,
            manifest_path=manifest_path,
        )

        if success:
            logger.info(
                "Export completed successfully: %d files, %d bytes, %.3fs.",
                len(records),
                result.total_bytes,
                timer.elapsed,
            )
        else:
            logger.error(
                "Export completed with %d error(s) in %.3fs.",
                len(self._errors),
                timer.elapsed,
            )
        return result

    # -----------------------------------------------------------------
    # Internal: directory management
    # -----------------------------------------------------------------

    def _pre_export_cleanup(self) -> None:
        """Clean output directory if configured to do so."""
        if not self._clean_before_export or not self._output_dir.exists():
            return

        logger.info("Cleaning output directory: %s", self._output_dir)
        for item in self._output_dir.iterdir():
            if item.name in _PRESERVED_ON_CLEAN:
                continue
            try:
                if item.is_dir():
                    shutil.rmtree(item)
                else:
                    item.unlink()
            except OSError as exc:
                warning_msg: str = f"Could not remove {item}: {exc}"
                self._warnings.append(warning_msg)
                logger.warning(warning_msg)

    def _target_for(
        self, artifact: ArtifactFile, manifest: Optional[Manifest]
    ) -> Path:
        if manifest is not None:
            entry = manifest.path_map.get(artifact.logical_id)
            if entry is not None:
                return Path(entry.absolute_path)
        return self._output_dir / PurePosixPath(artifact.resolved_relative_path)

    def _package_markers(
        self, targets: Iterable[Tuple[Path, str, Optional[str]]]
    ) -> List[Path]:
        """``__init__.py`` for every directory between the root and a ``.py`` file."""
        markers: Set[Path] = set()
        for path, _, _ in targets:
            if path.suffix != ".py" or self._output_dir not in path.parents:
                continue
            directory: Path = path.parent
            while directory != self._output_dir:
                markers.add(directory / "__init__.py")
                directory = directory.parent
            markers.add(self._output_dir / "__init__.py")
        return sorted(markers)

    # -----------------------------------------------------------------
    # Internal: file writing
    # -----------------------------------------------------------------

    def _write_all(
        self, targets: Sequence[Tuple[Path, str, Optional[str]]]
    ) -> List[FileRecord]:
        if self._workers > 1 and len(targets) > 1:
            with ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="schemagen-export"
            ) as pool:
                written = list(pool.map(lambda t: self._write_single_file(*t), targets))
        else:
            written = [self._write_single_file(*t) for t in targets]
        return [record for record in written if record is not None]

    def _write_single_file(
        self,
        target_path: Path,
        content: str,
        logical_id: Optional[str],
    ) -> Optional[FileRecord]:
        """Write one file; failures are recorded, not raised."""
        try:
            size: int = write_file(target_path, content, atomic=self._atomic_writes)
        except OSError as exc:
            error_msg: str = f"Failed to write {target_path}: {exc}"
            self._errors.append(error_msg)
            logger.error(error_msg)
            return None

        try:
            relative: str = target_path.relative_to(self._output_dir).as_posix()
        except ValueError:
            relative = target_path.as_posix()

        return FileRecord(
            relative_path=relative,
            absolute_path=str(target_path),
            size_bytes=size,
            line_count=count_lines(content),
            sha256=sha256_hex(content),
            logical_id=logical_id,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ArtifactExporter",
    "ExportResult",
    "FileRecord",
    "MANIFEST_FILE_NAME",
]

logger.debug("schemagen.exporters loaded.")
