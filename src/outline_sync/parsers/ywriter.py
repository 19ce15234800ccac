"""XML project parser for yWriter ``.yw7``/``.yw6`` files.

Mapping:

* ``PROJECT`` -> project metadata; ``PROJECTNOTES`` are appended to the
  description;
* ``CHAPTER`` elements of type 0 (normal), ordered by ``SortOrder`` ->
  chapters; ``SectionStart`` marks a part;
* the chapter's ``Scenes`` id list -> scenes, skipping unused scenes;
* scene ``Desc`` -> synopsis and first beat; ``Goal``/``Conflict``/
  ``Outcome`` (or ``Response``/``Dilemma``/``Decision`` for reaction
  scenes) -> further beats;
* ``CHARACTER``/``LOCATION`` -> references, scene ``Characters``/
  ``Locations`` -> scene references.

``SceneContent`` is prose written in yWriter and is never imported as
outline text.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path

from ..converters.richtext import strip_ywriter_markup
from ..errors import InvalidStructureError, UnsupportedVersionError
from ..file_handler import decode_text, parse_xml_text, read_source_bytes
from ..models import (
    ParsedProject,
    ParsedReference,
    ParsedSceneReference,
    ReferenceKind,
    SourceFormat,
)
from .builder import ChapterDraft, SceneDraft

logger = logging.getLogger(__name__)

MIN_SUPPORTED_VERSION = 6

_ROOT_TAG = re.compile(r"^YWRITER(\d+)$")

_ACTION_LABELS = ("Goal", "Conflict", "Outcome")
_REACTION_LABELS = ("Response", "Dilemma", "Decision")


def _text(element: ET.Element | None, tag: str) -> str | None:
    """Markup-free text of a child element, or ``None`` when blank."""
    if element is None:
        return None
    value = element.findtext(tag)
    if value is None:
        return None
    return strip_ywriter_markup(value) or None


def _flag(element: ET.Element, tag: str) -> bool:
    """yWriter booleans are present-but-empty, ``1`` or ``-1``."""
    child = element.find(tag)
    if child is None:
        return False
    value = (child.text or "").strip()
    return value not in ("0", "false", "False")


def _id_list(element: ET.Element | None, item_tag: str) -> list[str]:
    """Read an id list stored either as child elements or ``;``-separated."""
    if element is None:
        return []
    items = [(child.text or "").strip() for child in element.findall(item_tag)]
    if not items and element.text:
        items = [part.strip() for part in element.text.split(";")]
    return [item for item in items if item]


def _sort_key(element: ET.Element) -> int:
    try:
        return int((element.findtext("SortOrder") or "0").strip())
    except ValueError:
        return 0


class YWriterParser:
    """Parse yWriter 6 and 7 project files."""

    source_format = SourceFormat.YWRITER

    def parse(self, path: Path) -> ParsedProject:
        root = parse_xml_text(decode_text(read_source_bytes(path), path), path)

        match = _ROOT_TAG.match(root.tag)
        if match is None:
            raise InvalidStructureError(
                f"Unexpected root element <{root.tag}>", path
            )
        version = int(match.group(1))
        if version < MIN_SUPPORTED_VERSION:
            raise UnsupportedVersionError(
                "yWriter project version is older than supported",
                str(version),
                path,
            )

        project = root.find("PROJECT")
        if project is None:
            raise InvalidStructureError("Missing PROJECT element", path)

        references = self._references(root)
        known_refs = {
            (ref.kind, ref.source_id) for ref in references
        }
        scenes = {
            (scene.findtext("ID") or "").strip(): scene
            for scene in root.iterfind("SCENES/SCENE")
        }

        chapters: list[ChapterDraft] = []
        links: list[ParsedSceneReference] = []
        for element in sorted(root.iterfind("CHAPTERS/CHAPTER"), key=_sort_key):
            chapter_type = (element.findtext("Type") or "0").strip()
            if chapter_type != "0":
                logger.debug("Skipping chapter of type %s", chapter_type)
                continue
            chapter_id = (element.findtext("ID") or "").strip()
            chapter = ChapterDraft(
                title=_text(element, "Title") or f"Chapter {len(chapters) + 1}",
                source_id=chapter_id or None,
                is_part=element.find("SectionStart") is not None,
            )
            for scene_id in _id_list(element.find("Scenes"), "ScID"):
                scene_el = scenes.get(scene_id)
                if scene_el is None:
                    logger.debug("Chapter %s lists unknown scene %s", chapter_id, scene_id)
                    continue
                if _flag(scene_el, "Unused"):
                    logger.debug("Skipping unused scene %s", scene_id)
                    continue
                chapter.scenes.append(self._scene(scene_id, scene_el))
                links.extend(self._scene_links(scene_id, scene_el, known_refs))
            chapters.append(chapter)

        return ParsedProject(
            name=_text(project, "Title") or path.stem,
            source_format=self.source_format,
            author=_text(project, "AuthorName") or _text(project, "Author"),
            description=self._description(project, root),
            word_target=self._word_target(project),
            chapters=[chapter.freeze() for chapter in chapters],
            references=references,
            scene_references=links,
        )

    # ------------------------------------------------------------------
    # Project metadata
    # ------------------------------------------------------------------

    @staticmethod
    def _description(project: ET.Element, root: ET.Element) -> str | None:
        parts = []
        if desc := _text(project, "Desc"):
            parts.append(desc)

        notes = []
        for note in sorted(root.iterfind("PROJECTNOTES/PROJECTNOTE"), key=_sort_key):
            block = "\n".join(
                text for text in (_text(note, "Title"), _text(note, "Desc")) if text
            )
            if block:
                notes.append(block)
        if notes:
            parts.append("Project Notes:")
            parts.extend(notes)
        return "\n\n".join(parts) or None

    @staticmethod
    def _word_target(project: ET.Element) -> int | None:
        raw = (project.findtext("WordTarget") or "").strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.debug("Ignoring non-numeric word target %r", raw)
            return None

    # ------------------------------------------------------------------
    # Scenes
    # ------------------------------------------------------------------

    @staticmethod
    def _scene(scene_id: str, element: ET.Element) -> SceneDraft:
        synopsis = _text(element, "Desc")
        scene = SceneDraft(
            title=_text(element, "Title") or "Untitled scene",
            source_id=scene_id,
            synopsis=synopsis,
        )
        if synopsis:
            scene.add_beat(synopsis, source_id=f"{scene_id}-desc")

        labels = _REACTION_LABELS if _flag(element, "ReactionScene") else _ACTION_LABELS
        for tag, label in zip(("Goal", "Conflict", "Outcome"), labels):
            value = _text(element, tag)
            if value:
                scene.add_beat(
                    f"{label}: {value}", source_id=f"{scene_id}-{tag.lower()}"
                )
        return scene

    @staticmethod
    def _scene_links(
        scene_id: str,
        element: ET.Element,
        known: set[tuple[ReferenceKind, str | None]],
    ) -> list[ParsedSceneReference]:
        links = []
        for tag, item_tag, kind in (
            ("Characters", "CharID", ReferenceKind.CHARACTER),
            ("Locations", "LocID", ReferenceKind.LOCATION),
        ):
            for ref_id in _id_list(element.find(tag), item_tag):
                if (kind, ref_id) in known:
                    links.append(
                        ParsedSceneReference(
                            scene_source_id=scene_id,
                            reference_source_id=ref_id,
                            kind=kind,
                        )
                    )
        return links

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    @staticmethod
    def _references(root: ET.Element) -> list[ParsedReference]:
        references = []
        for element in root.iterfind("CHARACTERS/CHARACTER"):
            attributes = {
                key: value
                for key, tag in (
                    ("description", "Desc"),
                    ("bio", "Bio"),
                    ("goals", "Goals"),
                    ("notes", "Notes"),
                )
                if (value := _text(element, tag))
            }
            references.append(
                ParsedReference(
                    kind=ReferenceKind.CHARACTER,
                    name=_text(element, "FullName") or _text(element, "Title") or "Unnamed",
                    attributes=attributes,
                    source_id=(element.findtext("ID") or "").strip() or None,
                )
            )
        for element in root.iterfind("LOCATIONS/LOCATION"):
            attributes = {
                key: value
                for key, tag in (("description", "Desc"), ("aka", "Aka"))
                if (value := _text(element, tag))
            }
            references.append(
                ParsedReference(
                    kind=ReferenceKind.LOCATION,
                    name=_text(element, "Title") or "Unnamed",
                    attributes=attributes,
                    source_id=(element.findtext("ID") or "").strip() or None,
                )
            )
        return references
