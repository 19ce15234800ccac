"""Markdown to plain text flattening using mistune AST rendering."""

from __future__ import annotations

import re
from typing import Any

import mistune


class PlainTextRenderer(mistune.BaseRenderer):
    """Renderer that reduces Markdown AST to its visible plain text."""

    NAME = "plaintext"

    def text(self, text: str) -> str:
        return text

    def emphasis(self, text: str) -> str:
        return text

    def strong(self, text: str) -> str:
        return text

    def strikethrough(self, text: str) -> str:
        return text

    def codespan(self, text: str) -> str:
        return text

    def linebreak(self) -> str:
        return "\n"

    def softbreak(self) -> str:
        return "\n"

    def blank_line(self) -> str:
        return ""

    def newline(self) -> str:
        return ""

    def heading(self, text: str, level: int, **attrs) -> str:
        return f"{text}\n\n"

    def paragraph(self, text: str) -> str:
        return f"{text}\n\n"

    def block_text(self, text: str) -> str:
        return f"{text}\n"

    def block_code(self, code: str, info: str | None = None) -> str:
        return f"{code.rstrip()}\n\n"

    def block_quote(self, text: str) -> str:
        return text

    def block_html(self, html: str) -> str:
        """HTML blocks (including comments) carry no outline text."""
        return ""

    def inline_html(self, html: str) -> str:
        return ""

    def block_error(self, text: str) -> str:
        return text

    def thematic_break(self) -> str:
        return ""

    def list(self, text: str, ordered: bool, **attrs) -> str:
        return f"{text}\n"

    def list_item(self, text: str) -> str:
        return text.rstrip("\n") + "\n"

    def link(self, text: str, url: str, title=None) -> str:
        return text

    def image(self, text: str, url: str, title=None) -> str:
        return text

    def render_token(self, token: dict[str, Any], state) -> str:
        """Extract text or children from each token and pass attrs along."""
        func = self._get_method(token.get("type") or "")
        attrs = token.get("attrs")
        if "raw" in token:
            text = token["raw"]
        elif "children" in token:
            text = self.render_tokens(token["children"], state)
        elif attrs:
            return func(**attrs)
        else:
            return func()
        if attrs:
            return func(text, **attrs)
        return func(text)


def markdown_to_text(markdown_text: str) -> str:
    """Convert Markdown to plain text, keeping paragraph breaks."""
    markdown = mistune.create_markdown(renderer=PlainTextRenderer())
    result: str = markdown(markdown_text)  # type: ignore[assignment]
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.strip()


def extract_list_items(markdown_text: str) -> list[str]:
    """Return the first line of every top-level list item, as plain text.

    Continuation lines under an item (prose written beneath a bullet) and
    nested lists are ignored.  Items with no text are skipped.
    """
    parse = mistune.create_markdown(renderer="ast")
    tokens: list[dict[str, Any]] = parse(markdown_text)  # type: ignore[assignment]
    renderer = PlainTextRenderer()
    state = mistune.BlockState()

    items: list[str] = []
    for token in tokens:
        if token.get("type") != "list":
            continue
        for item in token.get("children", []):
            lead = next(
                (
                    child
                    for child in item.get("children", [])
                    if child.get("type") in ("block_text", "paragraph")
                ),
                None,
            )
            if lead is None:
                continue
            text = renderer.render_tokens(lead.get("children", []), state)
            first_line = text.strip().split("\n", 1)[0].strip()
            if first_line:
                items.append(first_line)
    return items
