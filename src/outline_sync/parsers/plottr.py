"""Structured outline parser for Plottr ``.pltr`` JSON files.

Mapping:

* timeline beats of each book (``beats[<bookId>].index``) -> chapters,
  ordered by ``position``;
* cards -> scenes of the chapter named by their ``beatId``, ordered by
  ``(positionWithinLine, position)``; the card description is both the
  scene synopsis and its first beat;
* characters and places -> references; card ``characters``/``places``
  lists -> scene references.

Native ids are carried into every ``source_id``, so reimports match by id
and a renamed chapter shows up as a title change rather than a new chapter.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any

from ..converters.richtext import attribute_text, flatten_rich_text
from ..errors import InvalidStructureError, UnsupportedVersionError
from ..file_handler import decode_text, read_source_bytes
from ..models import (
    ParsedProject,
    ParsedReference,
    ParsedSceneReference,
    ReferenceKind,
    SourceFormat,
)
from .builder import ChapterDraft, SceneDraft

logger = logging.getLogger(__name__)

# Keys on character/place objects that are not custom attributes.
_KNOWN_REFERENCE_KEYS = frozenset(
    {
        "id",
        "name",
        "description",
        "notes",
        "color",
        "cards",
        "noteIds",
        "templates",
        "tags",
        "categoryId",
        "imageId",
        "bookIds",
    }
)

_AUTO_TITLES = ("", "auto")


def _id(value: Any) -> str:
    """Plottr ids are numbers or strings; normalise to text."""
    return str(value)


def _position(value: Any) -> float:
    return value if isinstance(value, (int, float)) else 0


class PlottrParser:
    """Parse Plottr project files."""

    source_format = SourceFormat.PLOTTR

    def parse(self, path: Path) -> ParsedProject:
        text = decode_text(read_source_bytes(path), path)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidStructureError(
                f"Malformed JSON at line {exc.lineno} column {exc.colno}", path
            ) from exc
        if not isinstance(data, dict):
            raise InvalidStructureError("Plottr root must be a JSON object", path)

        file_meta = data.get("file") if isinstance(data.get("file"), dict) else {}
        if "beats" not in data and "chapters" in data:
            raise UnsupportedVersionError(
                "Legacy Plottr file stores chapters instead of beats",
                file_meta.get("version"),
                path,
            )

        try:
            return self._build(data, path)
        except (AttributeError, KeyError, TypeError) as exc:
            raise InvalidStructureError(
                f"Unexpected Plottr structure: {exc}", path
            ) from exc

    # ------------------------------------------------------------------
    # Document construction
    # ------------------------------------------------------------------

    def _build(self, data: dict, path: Path) -> ParsedProject:
        series = data.get("series") if isinstance(data.get("series"), dict) else {}
        name = (series.get("name") or "").strip() or path.stem

        chapters = self._chapters(data.get("beats") or {}, path)
        by_beat = {chapter.source_id: chapter for chapter in chapters}

        cards = data.get("cards") or []
        if not isinstance(cards, list):
            raise InvalidStructureError("'cards' must be a list", path)

        grouped: dict[str, list[dict]] = defaultdict(list)
        for card in cards:
            grouped[_id(card.get("beatId"))].append(card)

        character_ids = {_id(c["id"]) for c in data.get("characters") or []}
        place_ids = {_id(p["id"]) for p in data.get("places") or []}
        links: list[ParsedSceneReference] = []

        for beat_id, beat_cards in grouped.items():
            chapter = by_beat.get(beat_id)
            if chapter is None:
                logger.debug(
                    "Dropping %d card(s) of unknown beat %s", len(beat_cards), beat_id
                )
                continue
            beat_cards.sort(
                key=lambda c: (
                    _position(c.get("positionWithinLine")),
                    _position(c.get("position")),
                )
            )
            for card in beat_cards:
                card_id = _id(card["id"])
                synopsis = flatten_rich_text(card.get("description"))
                scene = SceneDraft(
                    title=str(card.get("title") or "").strip() or "Untitled scene",
                    source_id=card_id,
                    synopsis=synopsis,
                )
                if synopsis:
                    scene.add_beat(synopsis, source_id=f"{card_id}-description")
                chapter.scenes.append(scene)

                links.extend(
                    ParsedSceneReference(
                        scene_source_id=card_id,
                        reference_source_id=_id(ref),
                        kind=ReferenceKind.CHARACTER,
                    )
                    for ref in card.get("characters") or []
                    if _id(ref) in character_ids
                )
                links.extend(
                    ParsedSceneReference(
                        scene_source_id=card_id,
                        reference_source_id=_id(ref),
                        kind=ReferenceKind.LOCATION,
                    )
                    for ref in card.get("places") or []
                    if _id(ref) in place_ids
                )

        references = [
            self._reference(item, ReferenceKind.CHARACTER)
            for item in data.get("characters") or []
        ] + [
            self._reference(item, ReferenceKind.LOCATION)
            for item in data.get("places") or []
        ]

        return ParsedProject(
            name=name,
            source_format=self.source_format,
            description=flatten_rich_text(series.get("premise")),
            chapters=[chapter.freeze() for chapter in chapters],
            references=references,
            scene_references=links,
        )

    def _chapters(self, beats: Any, path: Path) -> list[ChapterDraft]:
        """Collect timeline beats of every book as ordered chapters."""
        if not isinstance(beats, dict):
            raise InvalidStructureError("'beats' must be an object", path)

        timeline: list[dict] = []
        for book_id, book in beats.items():
            if book_id == "series" or not isinstance(book, dict):
                continue
            index = book.get("index")
            if not isinstance(index, dict):
                raise InvalidStructureError(
                    f"Beats of book {book_id} have no index", path
                )
            timeline.extend(index.values())

        timeline.sort(key=lambda b: _position(b.get("position")))
        chapters = []
        for number, beat in enumerate(timeline, start=1):
            title = str(beat.get("title") or "").strip()
            if title in _AUTO_TITLES:
                title = f"Chapter {number}"
            chapters.append(ChapterDraft(title=title, source_id=_id(beat["id"])))
        return chapters

    @staticmethod
    def _reference(item: dict, kind: ReferenceKind) -> ParsedReference:
        attributes: dict[str, str] = {}
        description = attribute_text(item.get("description"))
        if description:
            attributes["description"] = description
        notes = flatten_rich_text(item.get("notes"))
        if notes:
            attributes["notes"] = notes
        for key, value in item.items():
            if key in _KNOWN_REFERENCE_KEYS:
                continue
            text = attribute_text(value)
            if text is not None:
                attributes[key] = text
        return ParsedReference(
            kind=kind,
            name=str(item.get("name") or "").strip() or "Unnamed",
            attributes=attributes,
            source_id=_id(item["id"]),
        )
