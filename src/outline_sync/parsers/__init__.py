"""Format parsers turning external outline files into canonical documents.

Each supported ``SourceFormat`` maps to exactly one parser class.  The
``get_parser()`` factory resolves a format to a parser instance and
``parse_source()`` validates a path, detects its format when none is given,
and dispatches.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ..file_handler import detect_source_format, validate_source_path
from ..models import ParsedProject, SourceFormat
from .base import OutlineParser
from .longform import LongformParser
from .markdown import MarkdownOutlineParser
from .plottr import PlottrParser
from .scrivener import ScrivenerParser
from .ywriter import YWriterParser

logger = logging.getLogger(__name__)

_PARSER_MAP: dict[SourceFormat, type] = {
    SourceFormat.PLOTTR: PlottrParser,
    SourceFormat.MARKDOWN: MarkdownOutlineParser,
    SourceFormat.SCRIVENER: ScrivenerParser,
    SourceFormat.YWRITER: YWriterParser,
    SourceFormat.LONGFORM: LongformParser,
}


def get_parser(fmt: SourceFormat | str) -> OutlineParser:
    """Create the parser for *fmt*.

    Args:
        fmt: A ``SourceFormat`` or its string value.

    Returns:
        An ``OutlineParser`` implementation instance.

    Raises:
        ValueError: If the format is not recognised.
    """
    try:
        key = SourceFormat(fmt)
    except ValueError:
        key = None
    cls = _PARSER_MAP.get(key) if key is not None else None
    if cls is None:
        raise ValueError(
            f"Unknown source format: '{fmt}'. Valid formats: {sorted(f.value for f in _PARSER_MAP)}"
        )
    return cls()  # type: ignore[return-value]


def detect_format(path: str | os.PathLike) -> SourceFormat:
    """Detect the source format of *path* from its extension and shape."""
    return detect_source_format(Path(path))


def parse_source(
    path: str | os.PathLike, fmt: SourceFormat | str | None = None
) -> ParsedProject:
    """Validate *path* and parse it into a canonical document.

    Args:
        path: Source file or package directory.
        fmt: Explicit format; detected from the path when ``None``.

    Returns:
        The canonical import document.

    Raises:
        UnreadableError: If the path is missing or unreadable.
        ParseError: On any other parse failure.
        ValueError: If the format is unknown or cannot be detected.
    """
    resolved = validate_source_path(path)
    parser = get_parser(fmt if fmt is not None else detect_format(resolved))
    parsed = parser.parse(resolved)
    logger.debug(
        "Parsed %s source %s: %s",
        parser.source_format.value,
        resolved,
        parsed.counts(),
    )
    return parsed


__all__ = [
    "LongformParser",
    "MarkdownOutlineParser",
    "OutlineParser",
    "PlottrParser",
    "ScrivenerParser",
    "SourceFormat",
    "YWriterParser",
    "detect_format",
    "get_parser",
    "parse_source",
]
