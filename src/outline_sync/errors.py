"""Exception taxonomy for parsing, previewing and applying outline syncs.

Parse failures are fatal and all-or-nothing: a parser either returns a
complete ``ParsedProject`` or raises one of the ``ParseError`` subclasses
below.  Matching ambiguity during a diff is *not* an error; it is reported
through the preview instead.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class ParseErrorKind(str, Enum):
    """Category of a parse failure."""

    UNREADABLE = "unreadable"
    INVALID_STRUCTURE = "invalid_structure"
    UNSUPPORTED_VERSION = "unsupported_version"
    ENCODING_ERROR = "encoding_error"


class OutlineSyncError(Exception):
    """Base class for all outline-sync errors."""


# ---------------------------------------------------------------------------
# Parse errors
# ---------------------------------------------------------------------------


class ParseError(OutlineSyncError):
    """A source file could not be turned into a canonical document.

    Attributes:
        kind: The failure category.
        path: The offending source path, when known.
    """

    kind: ParseErrorKind = ParseErrorKind.INVALID_STRUCTURE

    def __init__(self, message: str, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self.message = message
        if self.path is not None:
            message = f"{message} ({self.path})"
        super().__init__(message)


class UnreadableError(ParseError):
    """The source is missing, unreadable or permission-denied."""

    kind = ParseErrorKind.UNREADABLE


class InvalidStructureError(ParseError):
    """Malformed JSON/XML, or a required index/entry is missing."""

    kind = ParseErrorKind.INVALID_STRUCTURE


class UnsupportedVersionError(ParseError):
    """The format is recognised but its schema revision is not."""

    kind = ParseErrorKind.UNSUPPORTED_VERSION

    def __init__(
        self,
        message: str,
        version: str | None,
        path: Path | str | None = None,
    ):
        self.version = version
        super().__init__(f"{message} (version: {version or 'unknown'})", path)


class SourceEncodingError(ParseError):
    """The source contains bytes that are not safe to treat as text."""

    kind = ParseErrorKind.ENCODING_ERROR


# ---------------------------------------------------------------------------
# Sync errors
# ---------------------------------------------------------------------------


class SourceMissingError(OutlineSyncError):
    """The file a project was imported from no longer exists."""

    def __init__(self, project_id: str, source_path: str | None):
        self.project_id = project_id
        self.source_path = source_path
        if source_path:
            message = f"Source file for project {project_id} no longer exists: {source_path}"
        else:
            message = f"Project {project_id} has no source path to reimport from"
        super().__init__(message)


class ApplyError(OutlineSyncError):
    """Writing an approved preview failed; every write was rolled back."""


class StalePreviewError(ApplyError):
    """The project changed after the preview was computed; nothing was written."""

    def __init__(self, project_id: str, base_revision: int | None, revision: int):
        self.project_id = project_id
        self.base_revision = base_revision
        self.revision = revision
        if base_revision is None:
            message = f"Preview for project {project_id} has no base revision"
        else:
            message = (
                f"Preview for project {project_id} is stale: computed at revision "
                f"{base_revision}, project is now at revision {revision}"
            )
        super().__init__(message)


class ProjectNotFoundError(OutlineSyncError):
    """No project with the given id exists in the repository."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class ProjectBusyError(OutlineSyncError):
    """Another import or reimport holds the project's lock."""

    def __init__(self, project_id: str, timeout: float):
        self.project_id = project_id
        self.timeout = timeout
        super().__init__(
            f"Project {project_id} is busy with another import "
            f"(waited {timeout:g}s)"
        )
