"""Conversion of source-specific text formats into plain outline text."""

from .frontmatter import Frontmatter, load_frontmatter, split_frontmatter
from .markdown_text import (
    PlainTextRenderer,
    extract_list_items,
    markdown_to_text,
)
from .richtext import (
    attribute_text,
    flatten_rich_text,
    strip_ywriter_markup,
)

__all__ = [
    "Frontmatter",
    "PlainTextRenderer",
    "attribute_text",
    "extract_list_items",
    "flatten_rich_text",
    "load_frontmatter",
    "markdown_to_text",
    "split_frontmatter",
    "strip_ywriter_markup",
]
