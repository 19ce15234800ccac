"""YAML frontmatter splitting for Markdown-based outline sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml


@dataclass
class Frontmatter:
    """Parsed frontmatter block and the remaining document body."""

    data: dict[str, Any] = field(default_factory=dict)
    body: str = ""


def split_frontmatter(text: str) -> tuple[str, str] | None:
    """Split ``---`` delimited frontmatter from the body.

    The first line must be exactly ``---`` and a closing ``---`` line must
    follow; otherwise the document has no frontmatter.

    Returns:
        ``(frontmatter_text, body)`` or ``None``.
    """
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != "---":
        return None
    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            return "\n".join(lines[1:index]), "\n".join(lines[index + 1 :])
    return None


def load_frontmatter(text: str, strict: bool = False) -> Frontmatter | None:
    """Parse the frontmatter of *text* with ``yaml.safe_load``.

    Args:
        text: Full document text.
        strict: Re-raise ``yaml.YAMLError`` instead of treating broken
            frontmatter as empty.

    Returns:
        ``Frontmatter`` when a delimited block exists, else ``None``.
    """
    split = split_frontmatter(text)
    if split is None:
        return None
    raw, body = split
    try:
        data = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError:
        if strict:
            raise
        data = {}
    if not isinstance(data, dict):
        data = {}
    return Frontmatter(data=data, body=body)
