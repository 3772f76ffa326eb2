# File: schemagen/cli.py
"""
schemagen - Command-Line Interface
====================================

CLI built with the standard-library ``argparse`` module.

Usage examples::

    # Basic generation
    schemagen --schema schema.yaml --output ./generated

    # Verbose output, topological order, four worker threads
    schemagen -s schema.yaml -o ./out -v --order topological --workers 4

    # Only some layers, Flask routes
    schemagen -s schema.yaml -o ./out --layers contracts,services,routes --target flask

    # Validate only (no file output)
    schemagen -s schema.yaml --validate-only

    # Run everything but write nothing / write only manifest.json
    schemagen -s schema.yaml -o ./out --dry-run
    schemagen -s schema.yaml -o ./out --manifest-only

Exit codes:
    0: success
    1: validation / schema error
    2: generation error (one or more model × layer failures)
    3: export error
    4: input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Sequence

from schemagen.errors import SchemaError
from schemagen.exporters import ArtifactExporter
from schemagen.generator import Orchestrator, RunResult
from schemagen.models import ALL_LAYERS, IterationOrder, TargetFramework
from schemagen.normalizer import load_schema
from schemagen.utils import Timer
from schemagen.validators import validate_full

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root schemagen logger based on verbosity level.

    Args:
        verbosity: -1 = silent, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.CRITICAL + 1

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("schemagen")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _layer_list(value: str) -> List[str]:
    layers: List[str] = [part.strip() for part in value.split(",") if part.strip()]
    unknown: List[str] = [name for name in layers if name not in ALL_LAYERS]
    if unknown:
        raise argparse.ArgumentTypeError(
            f"unknown layer(s) {unknown}; choose from {', '.join(ALL_LAYERS)}"
        )
    return layers


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from schemagen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="schemagen",
        description=(
            "schemagen — layered application code from a data-model schema.\n\n"
            "Reads a YAML/JSON model description, infers relationship "
            "semantics once per model and renders contracts, validators, "
            "services, controllers and routes."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s schema.yaml -o ./generated\n"
            "  %(prog)s -s schema.yaml -o ./out -v --order topological\n"
            "  %(prog)s -s schema.yaml --validate-only\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"schemagen v{__version__}",
    )

    # --- Required arguments ---
    parser.add_argument(
        "-s", "--schema",
        type=str,
        required=True,
        metavar="PATH",
        help="Path to the schema description file (JSON or YAML).",
    )

    # --- Output ---
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help=(
            "Output directory for generated code. "
            "Required unless --validate-only is set."
        ),
    )

    # --- Modes ---
    mode_group = parser.add_argument_group("operation modes")
    exclusive = mode_group.add_mutually_exclusive_group()
    exclusive.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Only validate the schema without generating code.",
    )
    exclusive.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full pipeline but don't write files to disk.",
    )
    exclusive.add_argument(
        "--manifest-only",
        action="store_true",
        default=False,
        help="Run the full pipeline and write only manifest.json.",
    )

    # --- Config overrides ---
    config_group = parser.add_argument_group("configuration overrides")
    config_group.add_argument(
        "--project-name",
        type=str,
        default=None,
        metavar="NAME",
        help="Override the project name.",
    )
    config_group.add_argument(
        "--package-name",
        type=str,
        default=None,
        metavar="PKG",
        help="Dotted package prefix used in import specifiers.",
    )
    config_group.add_argument(
        "--target",
        type=str,
        default=None,
        choices=[t.value for t in TargetFramework],
        help="Web framework for controllers and routes.",
    )
    config_group.add_argument(
        "--layers",
        type=_layer_list,
        default=None,
        metavar="LIST",
        help=f"Comma-separated layers to generate ({', '.join(ALL_LAYERS)}).",
    )
    config_group.add_argument(
        "--order",
        type=str,
        default=None,
        choices=[o.value for o in IterationOrder],
        help="Model iteration order during generation.",
    )
    config_group.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Worker threads for generation and file writes.",
    )
    config_group.add_argument(
        "--api-prefix",
        type=str,
        default=None,
        metavar="PREFIX",
        help="Override API URL prefix (e.g. '/api/v1').",
    )

    # --- Behaviour flags ---
    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--clean",
        action="store_true",
        default=False,
        help="Clean output directory before writing.",
    )
    behaviour_group.add_argument(
        "--fail-on-warnings",
        action="store_true",
        default=False,
        help="Treat validation and relationship warnings as errors.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all log output.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config override builder
# ---------------------------------------------------------------------------


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, object]:
    """Build a config override dictionary from CLI arguments."""
    overrides: Dict[str, object] = {}

    if args.project_name is not None:
        overrides["project_name"] = args.project_name
    if args.package_name is not None:
        overrides["package_name"] = args.package_name
    if args.target is not None:
        overrides["target"] = args.target
    if args.layers is not None:
        overrides["layers"] = args.layers
    if args.order is not None:
        overrides["order"] = args.order
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.api_prefix is not None:
        overrides["api_prefix"] = args.api_prefix
    if args.fail_on_warnings:
        overrides["fail_on_warnings"] = True

    return overrides


# ---------------------------------------------------------------------------
# Validate-only mode
# ---------------------------------------------------------------------------


def _run_validate_only(schema_path: Path, args: argparse.Namespace) -> int:
    """
    Run validation only (no code generation).

    Returns the appropriate exit code.
    """
    logger.info("Running validation-only mode for: %s", schema_path)

    try:
        schema, config = load_schema(schema_path, config_overrides=_build_config_overrides(args))
    except SchemaError as exc:
        logger.error("Failed to parse schema: %s", exc)
        return EXIT_VALIDATION_ERROR

    with Timer("validation") as t:
        result = validate_full(schema, config)

    print(f"\n{'=' * 50}")
    print("  Schema Validation Report")
    print(f"{'=' * 50}")
    print(f"  File:     {schema_path.name}")
    print(f"  Models:   {len(schema.models)}")
    print(f"  Enums:    {len(schema.enums)}")
    print(f"  Time:     {t.elapsed:.3f}s")
    print(f"  Valid:    {'Yes' if result.is_valid else 'No'}")

    if result.errors:
        print(f"\n  Errors ({len(result.errors)}):")
        for err in result.errors:
            print(f"    ✗ {err}")

    if result.warnings:
        print(f"\n  Warnings ({len(result.warnings)}):")
        for warn in result.warnings:
            print(f"    ⚠ {warn}")

    if result.is_valid and not result.warnings:
        print("\n  ✅ All validations passed!")

    print(f"{'=' * 50}\n")

    if not result.is_valid:
        return EXIT_VALIDATION_ERROR
    if result.has_warnings and config.fail_on_warnings:
        return EXIT_VALIDATION_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Full generation mode
# ---------------------------------------------------------------------------


def _run_generation(
    schema_path: Path,
    output_dir: Path,
    args: argparse.Namespace,
) -> int:
    """
    Run the full generation pipeline.

    Returns the appropriate exit code.
    """
    from schemagen import __version__

    orchestrator: Orchestrator = Orchestrator(tool_version=__version__)

    if args.dry_run:
        logger.info("Dry-run mode: files will not be written to disk.")

    try:
        result: RunResult = orchestrator.generate_from_file(
            schema_path,
            output_dir,
            config_overrides=_build_config_overrides(args),
            write=not (args.dry_run or args.manifest_only),
            clean_output=args.clean,
        )
    except SchemaError as exc:
        logger.error("Schema error: %s", exc)
        for issue in exc.issues:
            print(f"  ✗ {issue}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if args.manifest_only and result.manifest is not None:
        result.export = ArtifactExporter(output_dir).export([], result.manifest)

    print(result.summary())

    if result.failures:
        return EXIT_GENERATION_ERROR
    if result.export is not None and not result.export.success:
        return EXIT_EXPORT_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse ``argv`` and run; returns the exit code instead of exiting.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    verbosity: int = -1 if args.quiet else args.verbose
    _setup_logging(verbosity)

    # --- Schema path ---
    schema_path: Path = Path(args.schema).resolve()

    if not schema_path.exists():
        logger.error("Schema file not found: %s", schema_path)
        return EXIT_INPUT_ERROR

    if not schema_path.is_file():
        logger.error("Schema path is not a file: %s", schema_path)
        return EXIT_INPUT_ERROR

    if args.workers is not None and args.workers < 1:
        logger.error("--workers must be at least 1.")
        return EXIT_INPUT_ERROR

    # --- Validate-only mode ---
    if args.validate_only:
        return _run_validate_only(schema_path, args)

    # --- Output directory validation ---
    if args.output is None:
        logger.error(
            "Output directory is required for generation. "
            "Use -o/--output or --validate-only."
        )
        parser.print_usage(sys.stderr)
        return EXIT_INPUT_ERROR

    output_dir: Path = Path(args.output).resolve()

    logger.info("Schema:  %s", schema_path)
    logger.info("Output:  %s", output_dir)
    logger.info("Clean:   %s", args.clean)

    exit_code: int = _run_generation(schema_path, output_dir, args)

    if exit_code == EXIT_SUCCESS:
        logger.info("Generation completed successfully.")
    else:
        logger.error("Generation failed with exit code %d.", exit_code)
    return exit_code


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.
    """
    sys.exit(run_cli(argv))


def main() -> None:
    """Console-script entry point."""
    cli_main()


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "run_cli",
    "cli_main",
    "main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_EXPORT_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("schemagen.cli loaded.")
