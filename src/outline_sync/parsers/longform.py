"""Vault outline parser for Obsidian Longform projects.

A Longform project is an index note whose frontmatter lists the scene
notes in order::

    ---
    longform:
      format: scenes
      title: My Novel
      sceneFolder: /
      scenes:
        - Opening
        - - Nested scene
    ---

Every scene note becomes a scene of a single ``Chapter 1``.  Outline data
inside a scene note is marked with HTML comments so the writer's prose is
left alone::

    <!-- outline: synopsis="One line summary" -->
    Prose of the scene...
    <!-- outline: beats -->
    - First beat
    - Second beat
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from ..converters.frontmatter import load_frontmatter, split_frontmatter
from ..converters.markdown_text import extract_list_items
from ..errors import InvalidStructureError
from ..file_handler import read_text_source
from ..models import ParsedProject, SourceFormat
from .builder import ChapterDraft, SceneDraft

logger = logging.getLogger(__name__)

DEFAULT_CHAPTER_TITLE = "Chapter 1"
DEFAULT_CHAPTER_SOURCE_ID = "longform:default"

_MARKER = re.compile(r"^<!--\s*outline:\s*(.*?)\s*-->$", re.IGNORECASE)
_KEY_VALUE = re.compile(r'(\w+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|(\S+))')
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), value)


def parse_marker(line: str) -> dict[str, str] | None:
    """Parse an ``<!-- outline: key="value" ... -->`` comment line.

    Returns:
        The key/value payload, ``{"beats": ""}`` for the beats marker, or
        ``None`` when the line is not an outline marker.
    """
    match = _MARKER.match(line.strip())
    if match is None:
        return None
    payload = match.group(1)
    if payload.lower() == "beats":
        return {"beats": ""}
    return {
        m.group(1): _unescape(m.group(2)) if m.group(2) is not None else m.group(3)
        for m in _KEY_VALUE.finditer(payload)
    }


def _scene_names(entries: list[Any], path: Path) -> list[str]:
    """Flatten the nested ``scenes`` list in reading order."""
    names: list[str] = []
    for entry in entries:
        match entry:
            case list():
                names.extend(_scene_names(entry, path))
            case bool():
                names.append(str(entry).lower())
            case str() | int() | float():
                names.append(str(entry))
            case _:
                raise InvalidStructureError(
                    f"Scene names must be strings, got {type(entry).__name__}", path
                )
    return names


class LongformParser:
    """Parse Longform index notes and the scene notes they list."""

    source_format = SourceFormat.LONGFORM

    def parse(self, path: Path) -> ParsedProject:
        text = read_text_source(path, detect=True)
        if split_frontmatter(text) is None:
            raise InvalidStructureError("Missing YAML frontmatter", path)
        try:
            frontmatter = load_frontmatter(text, strict=True)
        except yaml.YAMLError as exc:
            raise InvalidStructureError(f"Invalid frontmatter: {exc}", path) from exc
        index = frontmatter.data.get("longform") if frontmatter else None
        if not isinstance(index, dict):
            raise InvalidStructureError("Missing 'longform' frontmatter entry", path)

        fmt = str(index.get("format") or "").lower()
        if fmt != "scenes":
            raise InvalidStructureError(
                f"Only multi-scene Longform projects are supported (format: {fmt or 'none'})",
                path,
            )
        entries = index.get("scenes")
        if not isinstance(entries, list):
            raise InvalidStructureError("longform.scenes must be a list", path)

        index_dir = path.parent
        scene_dir = index_dir / str(index.get("sceneFolder") or "/").strip("/")
        chapter = ChapterDraft(
            title=DEFAULT_CHAPTER_TITLE, source_id=DEFAULT_CHAPTER_SOURCE_ID
        )
        for name in _scene_names(entries, path):
            file_name = name if name.lower().endswith(".md") else f"{name}.md"
            scene_path = scene_dir / file_name
            source_id = scene_path.relative_to(index_dir).as_posix()
            chapter.scenes.append(
                self._scene(name.removesuffix(".md"), source_id, scene_path)
            )

        title = str(index.get("title") or "").strip()
        return ParsedProject(
            name=title or path.stem,
            source_format=self.source_format,
            chapters=[chapter.freeze()],
        )

    @staticmethod
    def _scene(title: str, source_id: str, path: Path) -> SceneDraft:
        text = read_text_source(path, detect=True)
        frontmatter = load_frontmatter(text)
        if frontmatter is not None:
            text = frontmatter.body

        scene = SceneDraft(title=title, source_id=source_id)
        beat_lines: list[str] = []
        in_beats = False
        for line in text.splitlines():
            if in_beats:
                beat_lines.append(line)
                continue
            marker = parse_marker(line)
            if marker is None:
                continue
            if "beats" in marker:
                in_beats = True
            elif marker.get("synopsis", "").strip() and scene.synopsis is None:
                scene.synopsis = marker["synopsis"].strip()

        if scene.synopsis:
            scene.add_beat(scene.synopsis, source_id=f"{source_id}#synopsis")
        for item in extract_list_items("\n".join(beat_lines)):
            scene.add_beat(item)
        if not in_beats:
            logger.debug("Scene %s has no beats marker", source_id)
        return scene
