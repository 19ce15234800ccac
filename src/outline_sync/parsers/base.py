"""Parser protocol shared by every source format."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from ..models import ParsedProject, SourceFormat


class OutlineParser(Protocol):
    """Protocol that all format parsers must satisfy.

    A parser either returns a complete ``ParsedProject`` or raises a
    ``ParseError`` subclass; it never returns a partial document.
    """

    source_format: SourceFormat

    def parse(self, path: Path) -> ParsedProject:
        """Parse the source at *path* into a canonical document.

        Args:
            path: Resolved path to the source file or package directory.

        Returns:
            The canonical import document.

        Raises:
            ParseError: On any read, decode or structure failure.
        """
        ...  # pragma: no cover
