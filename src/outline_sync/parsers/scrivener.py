"""Folder manuscript parser for Scrivener ``.scriv`` packages.

A package is a directory holding one ``*.scrivx`` binder index plus a
``Files/`` tree of per-document data.  Mapping:

* folders directly under the draft root -> chapters;
* text documents at any depth below a chapter folder -> scenes, in
  depth-first binder order (deeper folders are flattened);
* a text document directly under the draft root -> a chapter of its own
  holding that single scene;
* each scene's synopsis -> the scene synopsis and its sole beat (manuscript
  text is prose and is never read);
* character and location sheets outside the draft and trash -> references.

Scrivener 3 stores document data in ``Files/Data/<UUID>/``; Scrivener 2
packages use ``Files/Docs/<ID>_synopsis.txt``.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import InvalidStructureError, UnsupportedVersionError
from ..file_handler import decode_text, parse_xml_text, read_source_bytes
from ..models import ParsedProject, ParsedReference, ReferenceKind, SourceFormat
from .builder import ChapterDraft, SceneDraft

logger = logging.getLogger(__name__)

MAX_SUPPORTED_MAJOR_VERSION = 2

_SHEET_KINDS = {
    "CharacterSheet": ReferenceKind.CHARACTER,
    "LocationSheet": ReferenceKind.LOCATION,
}


@dataclass
class BinderItem:
    """One node of the Scrivener binder."""

    uuid: str
    item_type: str
    title: str
    legacy: bool = False
    children: list[BinderItem] = field(default_factory=list)

    def walk(self) -> Iterator[BinderItem]:
        """Yield this item's descendants depth-first (excluding itself)."""
        for child in self.children:
            yield child
            yield from child.walk()


def _binder_item(element: ET.Element) -> BinderItem:
    uuid = element.get("UUID")
    legacy = uuid is None
    if legacy:
        uuid = element.get("ID")
    if not uuid:
        raise InvalidStructureError("Binder item without UUID or ID")
    children_el = element.find("Children")
    children = (
        [_binder_item(child) for child in children_el.findall("BinderItem")]
        if children_el is not None
        else []
    )
    return BinderItem(
        uuid=uuid,
        item_type=element.get("Type", ""),
        title=(element.findtext("Title") or "").strip(),
        legacy=legacy,
        children=children,
    )


class ScrivenerParser:
    """Parse Scrivener project packages."""

    source_format = SourceFormat.SCRIVENER

    def parse(self, path: Path) -> ParsedProject:
        package = path.parent if path.suffix.lower() == ".scrivx" else path
        index = path if path.is_file() else self._find_index(package)

        root = self._load_binder(index)
        binder = root.find("Binder")
        if binder is None:
            raise InvalidStructureError("Project index has no Binder", index)
        try:
            items = [_binder_item(el) for el in binder.findall("BinderItem")]
        except InvalidStructureError as exc:
            raise InvalidStructureError(exc.message, index) from exc

        draft = next((i for i in items if i.item_type == "DraftFolder"), None)
        if draft is None:
            raise InvalidStructureError("Binder has no draft folder", index)

        chapters = [
            chapter
            for child in draft.children
            if (chapter := self._chapter(package, child)) is not None
        ]
        references = [
            self._reference(package, item, _SHEET_KINDS[item.item_type])
            for top in items
            if top.item_type not in ("DraftFolder", "TrashFolder")
            for item in [top, *top.walk()]
            if item.item_type in _SHEET_KINDS
        ]

        name = package.name
        if name.lower().endswith(".scriv"):
            name = name[: -len(".scriv")]
        return ParsedProject(
            name=name or "Untitled",
            source_format=self.source_format,
            chapters=[chapter.freeze() for chapter in chapters],
            references=references,
        )

    # ------------------------------------------------------------------
    # Binder index
    # ------------------------------------------------------------------

    @staticmethod
    def _find_index(package: Path) -> Path:
        if not package.is_dir():
            raise InvalidStructureError("Scrivener project must be a directory", package)
        candidates = sorted(package.glob("*.scrivx"))
        if not candidates:
            raise InvalidStructureError("No .scrivx project index found", package)
        return candidates[0]

    @staticmethod
    def _load_binder(index: Path) -> ET.Element:
        root = parse_xml_text(decode_text(read_source_bytes(index), index), index)
        if root.tag != "ScrivenerProject":
            raise InvalidStructureError(
                f"Unexpected root element <{root.tag}>", index
            )
        version = root.get("Version")
        if version:
            try:
                major = int(version.split(".", 1)[0])
            except ValueError:
                raise UnsupportedVersionError(
                    "Unrecognised Scrivener project version", version, index
                ) from None
            if major > MAX_SUPPORTED_MAJOR_VERSION:
                raise UnsupportedVersionError(
                    "Scrivener project version is newer than supported",
                    version,
                    index,
                )
        return root

    # ------------------------------------------------------------------
    # Draft
    # ------------------------------------------------------------------

    def _chapter(self, package: Path, item: BinderItem) -> ChapterDraft | None:
        match item.item_type:
            case "Folder":
                chapter = ChapterDraft(title=item.title or "Untitled", source_id=item.uuid)
                chapter.scenes = [
                    self._scene(package, doc)
                    for doc in item.walk()
                    if doc.item_type == "Text"
                ]
                return chapter
            case "Text":
                chapter = ChapterDraft(
                    title=item.title or "Untitled", source_id=f"{item.uuid}:chapter"
                )
                chapter.scenes = [self._scene(package, item)] + [
                    self._scene(package, doc)
                    for doc in item.walk()
                    if doc.item_type == "Text"
                ]
                return chapter
            case _:
                logger.debug(
                    "Skipping draft item %s of type %s", item.uuid, item.item_type
                )
                return None

    def _scene(self, package: Path, item: BinderItem) -> SceneDraft:
        synopsis = self._read_synopsis(package, item)
        scene = SceneDraft(
            title=item.title or "Untitled",
            source_id=item.uuid,
            synopsis=synopsis,
        )
        if synopsis:
            scene.add_beat(synopsis, source_id=f"{item.uuid}-synopsis")
        return scene

    # ------------------------------------------------------------------
    # Document data
    # ------------------------------------------------------------------

    @staticmethod
    def _synopsis_file(package: Path, item: BinderItem) -> Path:
        if item.legacy:
            return package / "Files" / "Docs" / f"{item.uuid}_synopsis.txt"
        return package / "Files" / "Data" / item.uuid / "synopsis.txt"

    def _read_synopsis(self, package: Path, item: BinderItem) -> str | None:
        candidate = self._synopsis_file(package, item)
        if not candidate.is_file():
            return None
        text = decode_text(read_source_bytes(candidate), candidate, detect=True)
        return text.strip() or None

    def _reference(
        self, package: Path, item: BinderItem, kind: ReferenceKind
    ) -> ParsedReference:
        description = self._read_synopsis(package, item)
        return ParsedReference(
            kind=kind,
            name=item.title or "Unnamed",
            attributes={"description": description} if description else {},
            source_id=item.uuid,
        )
