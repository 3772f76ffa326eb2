# File: schemagen/annotations.py
"""
schemagen - Documentation Annotation Parser
=============================================
Turns ``@@key(args...)`` lines in model documentation into typed
``Annotation`` values. Runs once, when the schema is normalized; layer
generators only ever read the parsed list.

Argument syntax follows YAML flow style, which PyYAML parses for us::

    @@service("openai", model: "gpt-4o")
    @@search(fields: [title, body], engine: native)
    @@auth(jwt)

Positional values land in ``Annotation.args``; ``key: value`` pairs land in
``Annotation.options``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml

from schemagen.models import Annotation

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.annotations")

_ANNOTATION_RE: re.Pattern[str] = re.compile(r"^@@(\w+)\((.*)\)\s*$")

KNOWN_ANNOTATIONS: FrozenSet[str] = frozenset(
    {"service", "auth", "policy", "realtime", "search"}
)


class AnnotationSyntaxError(ValueError):
    """Raised by ``parse_annotation_line`` for unparseable arguments."""


def _parse_args(raw_args: str) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
    text: str = raw_args.strip()
    if not text:
        return (), {}

    try:
        items: Any = yaml.safe_load(f"[{text}]")
    except yaml.YAMLError as exc:
        raise AnnotationSyntaxError(f"Invalid annotation arguments '{text}': {exc}") from exc

    if not isinstance(items, list):
        raise AnnotationSyntaxError(f"Invalid annotation arguments '{text}'.")

    positional: List[Any] = []
    options: Dict[str, Any] = {}
    for item in items:
        # YAML turns ``key: value`` inside a flow sequence into a one-pair mapping
        if isinstance(item, dict) and len(item) == 1:
            ((key, value),) = item.items()
            options[str(key)] = value
        else:
            positional.append(item)
    return tuple(positional), options


def parse_annotation_line(line: str) -> Optional[Annotation]:
    """
    Parse one documentation line.

    Returns None for lines that are not annotations. Raises
    ``AnnotationSyntaxError`` when the line looks like an annotation but its
    arguments cannot be parsed.
    """
    match = _ANNOTATION_RE.match(line.strip())
    if match is None:
        return None
    key, raw_args = match.group(1), match.group(2)
    args, options = _parse_args(raw_args)
    return Annotation(key=key, args=args, options=options)


def parse_annotations(documentation: Optional[str]) -> Tuple[Annotation, ...]:
    """
    Extract every annotation from a documentation block.

    Malformed annotations are logged and skipped; unknown keys are kept
    (validators report them) so no information is lost.
    """
    if not documentation:
        return ()

    parsed: List[Annotation] = []
    for line in documentation.splitlines():
        try:
            annotation = parse_annotation_line(line)
        except AnnotationSyntaxError as exc:
            logger.warning("Skipping malformed annotation %r: %s", line.strip(), exc)
            continue
        if annotation is None:
            continue
        if annotation.key not in KNOWN_ANNOTATIONS:
            logger.debug("Unknown annotation @@%s kept for validation.", annotation.key)
        parsed.append(annotation)
    return tuple(parsed)


__all__: List[str] = [
    "KNOWN_ANNOTATIONS",
    "AnnotationSyntaxError",
    "parse_annotation_line",
    "parse_annotations",
]
