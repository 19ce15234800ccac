"""Flattening of tool-specific rich text into plain outline text.

Outline fields in the canonical document are plain text.  Each source tool
stores formatted text differently:

- Plottr: Slate-style JSON (a list of paragraph nodes with ``children``).
- yWriter: BBCode-like ``[i]...[/i]`` markup.

The helpers here reduce each of them to plain text.
"""

from __future__ import annotations

import re
from typing import Any

# =============================================================================
# Plottr rich text
# =============================================================================


def _node_text(node: Any) -> str:
    """Concatenate the ``text`` leaves below a Slate node."""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""
    if isinstance(node.get("text"), str):
        return node["text"]
    children = node.get("children")
    if isinstance(children, list):
        return "".join(_node_text(child) for child in children)
    return ""


def flatten_rich_text(value: Any) -> str | None:
    """Flatten a Plottr rich text value to plain text.

    Rich text is either a plain string or a list of paragraph nodes; the
    inline text of each paragraph is concatenated and paragraphs are joined
    with ``\\n``.  Empty paragraphs are dropped.

    Returns:
        Plain text, or ``None`` when there is no text at all.
    """
    match value:
        case str() as text:
            return text.strip() or None
        case list() as paragraphs:
            texts = [_node_text(p) for p in paragraphs]
            joined = "\n".join(t for t in texts if t)
            return joined.strip() or None
        case _:
            return None


def attribute_text(value: Any) -> str | None:
    """Render a custom attribute value as text (bools as Yes/No)."""
    match value:
        case bool() as flag:
            return "Yes" if flag else "No"
        case int() | float() as number:
            return str(number)
        case str() | list():
            return flatten_rich_text(value)
        case _:
            return None


# =============================================================================
# yWriter markup
# =============================================================================

_YWRITER_TAG = re.compile(r"\[/?(?:[ibus]|h\d|c|r|lang=[^\]]*)\]", re.IGNORECASE)
_YWRITER_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


def strip_ywriter_markup(text: str) -> str:
    """Remove yWriter formatting tags and inline comments."""
    text = _YWRITER_COMMENT.sub("", text)
    return _YWRITER_TAG.sub("", text).strip()
