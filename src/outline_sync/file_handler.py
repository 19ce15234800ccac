"""File handler module: source path validation, text decoding, format detection.

Every parser reads its input through this module so that I/O and decoding
failures map onto the same ``ParseError`` kinds regardless of format:

* missing or unreadable paths raise ``UnreadableError``;
* bytes that are not safe to treat as text raise ``SourceEncodingError``.

Structured formats (JSON, XML) are decoded strictly (BOM or UTF-8).  Plain
text outlines written by hand fall back to charset-normalizer detection.
"""

from __future__ import annotations

import codecs
import hashlib
import os
import re
import xml.etree.ElementTree as ET
from pathlib import Path

from charset_normalizer import from_bytes

from .converters.frontmatter import load_frontmatter
from .errors import InvalidStructureError, SourceEncodingError, UnreadableError
from .models import SourceFormat

# =============================================================================
# Path Validation
# =============================================================================


def validate_source_path(
    path_str: str | os.PathLike, require_absolute: bool = False
) -> Path:
    """Validate and resolve an import source path.

    Sources are usually files, but folder-based packages (``.scriv``) are
    directories, so both are accepted.

    Args:
        path_str: Path to the source file or package directory.
        require_absolute: Reject relative paths (used at the MCP edge).

    Returns:
        Resolved Path object.

    Raises:
        UnreadableError: If the path is relative when it must not be,
            doesn't exist, or cannot be read.
    """
    path = Path(path_str)
    if require_absolute and not path.is_absolute():
        raise UnreadableError("Path must be absolute", path)
    resolved = path.expanduser().resolve()
    if not resolved.exists():
        raise UnreadableError("Source not found", path)
    if not os.access(resolved, os.R_OK):
        raise UnreadableError("Permission denied", path)
    return resolved


# =============================================================================
# Reading and decoding
# =============================================================================


_BOMS: list[tuple[bytes, str]] = [
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
]


def read_source_bytes(path: Path) -> bytes:
    """Read raw bytes, mapping I/O failures to ``UnreadableError``."""
    try:
        return path.read_bytes()
    except IsADirectoryError:
        raise UnreadableError("Expected a file, found a directory", path) from None
    except OSError as exc:
        raise UnreadableError(exc.strerror or str(exc), path) from exc


def decode_text(raw: bytes, path: Path | None = None, detect: bool = False) -> str:
    """Decode source bytes to text.

    Order: byte-order mark, strict UTF-8, then (only when *detect* is set)
    charset-normalizer's best guess.

    Args:
        raw: File content.
        path: Source path, for error messages.
        detect: Allow encoding detection for hand-written text files.

    Returns:
        Decoded string without a BOM.

    Raises:
        SourceEncodingError: If no text-safe decoding exists.
    """
    if not raw:
        return ""

    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError as exc:
                raise SourceEncodingError(
                    f"Invalid {encoding} content: {exc.reason}", path
                ) from exc

    if b"\x00" in raw:
        raise SourceEncodingError("Binary content (NUL bytes) in text source", path)

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        if not detect:
            raise SourceEncodingError(
                f"Invalid UTF-8 at byte {exc.start}", path
            ) from exc

    result = from_bytes(raw).best()
    if result is None:
        raise SourceEncodingError("Unable to detect text encoding", path)
    return str(result)


def read_text_source(path: Path, detect: bool = False) -> str:
    """Read and decode a text source in one step."""
    return decode_text(read_source_bytes(path), path, detect=detect)


# =============================================================================
# Fingerprints
# =============================================================================


def content_hash(content: str) -> str:
    """Compute a normalised SHA-256 hex digest of *content*.

    Strips the BOM, normalises line endings, right-strips each line and
    drops trailing empty lines so the hash is stable across editors.
    """
    text = content.lstrip("\ufeff").replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()


def source_fingerprint(path: Path) -> str:
    """Hash a source file, or every file inside a source package directory."""
    if path.is_file():
        return content_hash(read_source_bytes(path).decode("utf-8", errors="replace"))
    digest = hashlib.sha256()
    for child in sorted(p for p in path.rglob("*") if p.is_file()):
        digest.update(child.relative_to(path).as_posix().encode("utf-8"))
        digest.update(read_source_bytes(child))
    return digest.hexdigest()


# =============================================================================
# Format Detection
# =============================================================================


_EXTENSION_FORMAT_MAP: dict[str, SourceFormat] = {
    ".pltr": SourceFormat.PLOTTR,
    ".scriv": SourceFormat.SCRIVENER,
    ".scrivx": SourceFormat.SCRIVENER,
    ".yw7": SourceFormat.YWRITER,
    ".yw6": SourceFormat.YWRITER,
    ".md": SourceFormat.MARKDOWN,
    ".markdown": SourceFormat.MARKDOWN,
    ".txt": SourceFormat.MARKDOWN,
}


def detect_source_format(path: Path) -> SourceFormat:
    """Detect the source format from the path's extension and shape.

    Markdown files whose frontmatter carries a ``longform`` key are Longform
    vault indexes rather than plain outlines.

    Args:
        path: Resolved source path.

    Returns:
        The detected ``SourceFormat``.

    Raises:
        ValueError: If the extension is not recognised.
    """
    suffix = path.suffix.lower()
    fmt = _EXTENSION_FORMAT_MAP.get(suffix)
    if fmt is None and path.is_dir() and any(path.glob("*.scrivx")):
        fmt = SourceFormat.SCRIVENER
    if fmt is None:
        raise ValueError(
            f"Cannot detect outline format for '{path.name}'. "
            f"Known extensions: {sorted(_EXTENSION_FORMAT_MAP)}"
        )
    if fmt is SourceFormat.MARKDOWN and path.is_file():
        frontmatter = load_frontmatter(read_text_source(path, detect=True))
        if frontmatter and isinstance(frontmatter.data.get("longform"), dict):
            return SourceFormat.LONGFORM
    return fmt


# =============================================================================
# XML
# =============================================================================


_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")


def parse_xml_text(text: str, path: Path | None = None) -> ET.Element:
    """Parse decoded XML text, ignoring its encoding declaration.

    The bytes have already been decoded, so a declared encoding (often
    UTF-16 for older project files) no longer applies.

    Raises:
        InvalidStructureError: If the XML is malformed.
    """
    try:
        return ET.fromstring(_XML_DECLARATION.sub("", text, count=1))
    except ET.ParseError as exc:
        raise InvalidStructureError(f"Malformed XML: {exc}", path) from exc
