"""Plain heading/list outline parser.

The outline is read in one left-to-right pass over its lines, driven by a
three-state machine:

* ``NO_CHAPTER`` -- nothing open yet.  Scene headings and beats are dropped.
* ``IN_CHAPTER`` -- a ``# `` chapter is open.  Beats are still dropped.
* ``IN_SCENE`` -- a ``## `` scene is open.  List items, paragraph lines and
  ``###``+ headings become beats of that scene.

A ``# `` heading always opens a new chapter, whatever the current state.
Blockquote lines directly under a scene heading become the scene synopsis.
The format carries no identifiers, so every ``source_id`` stays ``None``.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path

from ..converters.frontmatter import load_frontmatter
from ..file_handler import read_text_source
from ..models import ParsedProject, SourceFormat
from .builder import ChapterDraft, SceneDraft

logger = logging.getLogger(__name__)

DEFAULT_CHAPTER_TITLE = "Chapter 1"

_HEADING = re.compile(r"^(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_LIST_ITEM = re.compile(r"^(?:[-*+]|\d{1,9}[.)])(?:[ \t]+(.*))?$")
_THEMATIC_BREAK = re.compile(r"^(?:(?:-[ \t]*){3,}|(?:\*[ \t]*){3,}|(?:_[ \t]*){3,})$")
_BLOCKQUOTE = re.compile(r"^>[ \t]?(.*)$")


class _State(Enum):
    NO_CHAPTER = "no_chapter"
    IN_CHAPTER = "in_chapter"
    IN_SCENE = "in_scene"


def _coerce_word_target(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric word target: %r", value)
        return None


class MarkdownOutlineParser:
    """Parse ``#``/``##``/list outlines into a canonical document."""

    source_format = SourceFormat.MARKDOWN

    def parse(self, path: Path) -> ParsedProject:
        text = read_text_source(path, detect=True)
        return self.parse_text(text, default_name=path.stem)

    def parse_text(self, text: str, default_name: str = "Untitled") -> ParsedProject:
        """Parse outline text that has already been decoded.

        Args:
            text: Outline text, optionally starting with YAML frontmatter.
            default_name: Project name used when the frontmatter has none.

        Returns:
            The canonical import document.
        """
        metadata: dict = {}
        frontmatter = load_frontmatter(text)
        if frontmatter is not None:
            metadata = frontmatter.data
            text = frontmatter.body

        chapters = self._scan(text)
        if not chapters:
            chapters = [ChapterDraft(title=DEFAULT_CHAPTER_TITLE)]

        name = str(metadata.get("title") or "").strip() or default_name
        word_target = metadata.get("word_target", metadata.get("wordTarget"))
        return ParsedProject(
            name=name,
            source_format=self.source_format,
            author=str(metadata["author"]) if metadata.get("author") else None,
            description=(
                str(metadata["description"]) if metadata.get("description") else None
            ),
            word_target=_coerce_word_target(word_target),
            chapters=[chapter.freeze() for chapter in chapters],
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _scan(self, text: str) -> list[ChapterDraft]:
        chapters: list[ChapterDraft] = []
        chapter: ChapterDraft | None = None
        scene: SceneDraft | None = None
        state = _State.NO_CHAPTER
        synopsis_lines: list[str] | None = None

        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line:
                continue

            if synopsis_lines is not None:
                quote = _BLOCKQUOTE.match(line)
                if quote and scene is not None:
                    synopsis_lines.append(quote.group(1).strip())
                    scene.synopsis = "\n".join(
                        s for s in synopsis_lines if s
                    ) or None
                    continue
                synopsis_lines = None

            heading = _HEADING.match(line)
            if heading:
                level = len(heading.group(1))
                title = (heading.group(2) or "").strip()
                if level == 1:
                    chapter = ChapterDraft(
                        title=title or f"Chapter {len(chapters) + 1}"
                    )
                    chapters.append(chapter)
                    scene = None
                    state = _State.IN_CHAPTER
                elif level == 2:
                    if state is _State.NO_CHAPTER or chapter is None:
                        logger.debug(
                            "Line %d: scene heading outside a chapter dropped",
                            lineno,
                        )
                        continue
                    scene = SceneDraft(
                        title=title or f"Scene {len(chapter.scenes) + 1}"
                    )
                    chapter.scenes.append(scene)
                    state = _State.IN_SCENE
                    synopsis_lines = []
                else:
                    self._add_beat(state, scene, title, lineno)
                continue

            if _THEMATIC_BREAK.match(line):
                continue

            item = _LIST_ITEM.match(line)
            if item:
                content = (item.group(1) or "").strip()
                if not content:
                    continue
                self._add_beat(state, scene, content, lineno)
                continue

            quote = _BLOCKQUOTE.match(line)
            if quote:
                line = quote.group(1).strip()
                if not line:
                    continue
            self._add_beat(state, scene, line, lineno)

        return chapters

    @staticmethod
    def _add_beat(
        state: _State, scene: SceneDraft | None, content: str, lineno: int
    ) -> None:
        if state is not _State.IN_SCENE or scene is None:
            logger.debug("Line %d: beat outside a scene dropped", lineno)
            return
        scene.add_beat(content)
