"""Tests for the Scrivener package parser.

Covers:
- Draft folders -> chapters, nested text documents -> flattened scenes
- Loose draft documents -> single-scene chapters
- Synopsis as the sole beat; manuscript text (plain or RTF) is never a beat
- Character/location sheets -> references
- Scrivener 2 legacy ``Files/Docs`` layout
- Version and structure failures
"""

from __future__ import annotations

from pathlib import Path

import pytest

from outline_sync.errors import InvalidStructureError, UnsupportedVersionError
from outline_sync.models import ReferenceKind, SourceFormat
from outline_sync.parsers.scrivener import ScrivenerParser

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_BINDER = """<?xml version="1.0" encoding="UTF-8"?>
<ScrivenerProject Version="2.0" Identifier="TEST">
  <Binder>
    <BinderItem UUID="DRAFT" Type="DraftFolder">
      <Title>Manuscript</Title>
      <Children>
        <BinderItem UUID="CH1" Type="Folder">
          <Title>Act One</Title>
          <Children>
            <BinderItem UUID="SC1" Type="Text"><Title>Battlements</Title></BinderItem>
            <BinderItem UUID="SUB" Type="Folder">
              <Title>Subfolder</Title>
              <Children>
                <BinderItem UUID="SC2" Type="Text"><Title>Ghost</Title></BinderItem>
              </Children>
            </BinderItem>
          </Children>
        </BinderItem>
        <BinderItem UUID="LOOSE" Type="Text"><Title>Interlude</Title></BinderItem>
        <BinderItem UUID="IMG" Type="Image"><Title>Map</Title></BinderItem>
      </Children>
    </BinderItem>
    <BinderItem UUID="RESEARCH" Type="ResearchFolder">
      <Title>Research</Title>
      <Children>
        <BinderItem UUID="CHAR1" Type="CharacterSheet"><Title>Hamlet</Title></BinderItem>
        <BinderItem UUID="LOC1" Type="LocationSheet"><Title>Elsinore</Title></BinderItem>
      </Children>
    </BinderItem>
    <BinderItem UUID="TRASH" Type="TrashFolder">
      <Title>Trash</Title>
      <Children>
        <BinderItem UUID="CHAR2" Type="CharacterSheet"><Title>Deleted</Title></BinderItem>
      </Children>
    </BinderItem>
  </Binder>
</ScrivenerProject>
"""


def _make_package(root: Path, binder: str = _BINDER, name: str = "Hamlet.scriv") -> Path:
    """Create a .scriv package directory with a binder index."""
    package = root / name
    package.mkdir()
    (package / "Hamlet.scrivx").write_text(binder, encoding="utf-8")
    return package


def _write_data(package: Path, uuid: str, filename: str, content: str) -> None:
    folder = package / "Files" / "Data" / uuid
    folder.mkdir(parents=True, exist_ok=True)
    (folder / filename).write_text(content, encoding="utf-8")


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestStructure:
    @pytest.fixture
    def package(self, tmp_path):
        package = _make_package(tmp_path)
        _write_data(package, "SC1", "synopsis.txt", "Guards see the ghost.\n")
        _write_data(package, "SC1", "content.txt", "It is bitter cold.")
        _write_data(package, "SC2", "synopsis.txt", "The ghost speaks.")
        _write_data(
            package,
            "SC2",
            "content.txt",
            "Many sentences here. They are prose. Not an outline.",
        )
        _write_data(package, "CHAR1", "synopsis.txt", "Prince of Denmark")
        return package

    def test_project(self, package):
        parsed = ScrivenerParser().parse(package)
        assert parsed.name == "Hamlet"
        assert parsed.source_format == SourceFormat.SCRIVENER

    def test_chapters(self, package):
        parsed = ScrivenerParser().parse(package)
        assert [c.title for c in parsed.chapters] == ["Act One", "Interlude"]
        assert [c.source_id for c in parsed.chapters] == ["CH1", "LOOSE:chapter"]

    def test_nested_documents_flattened(self, package):
        parsed = ScrivenerParser().parse(package)
        assert [s.title for s in parsed.chapters[0].scenes] == ["Battlements", "Ghost"]
        assert [s.source_id for s in parsed.chapters[0].scenes] == ["SC1", "SC2"]

    def test_loose_document_is_own_chapter(self, package):
        parsed = ScrivenerParser().parse(package)
        interlude = parsed.chapters[1]
        assert [s.source_id for s in interlude.scenes] == ["LOOSE"]
        assert interlude.scenes[0].beats == []

    def test_synopsis_is_sole_beat(self, package):
        scene = ScrivenerParser().parse(package).chapters[0].scenes[0]
        assert scene.synopsis == "Guards see the ghost."
        assert [(b.content, b.source_id) for b in scene.beats] == [
            ("Guards see the ghost.", "SC1-synopsis"),
        ]

    def test_multi_sentence_content_is_not_a_beat(self, package):
        scene = ScrivenerParser().parse(package).chapters[0].scenes[1]
        assert [b.source_id for b in scene.beats] == ["SC2-synopsis"]

    def test_references_outside_trash(self, package):
        parsed = ScrivenerParser().parse(package)
        refs = {r.name: r for r in parsed.references}
        assert set(refs) == {"Hamlet", "Elsinore"}
        assert refs["Hamlet"].kind == ReferenceKind.CHARACTER
        assert refs["Hamlet"].attributes == {"description": "Prince of Denmark"}
        assert refs["Elsinore"].kind == ReferenceKind.LOCATION
        assert refs["Elsinore"].attributes == {}

    def test_scrivx_path_accepted(self, package):
        parsed = ScrivenerParser().parse(package / "Hamlet.scrivx")
        assert [c.title for c in parsed.chapters] == ["Act One", "Interlude"]


class TestContent:
    def test_single_sentence_text_is_not_a_beat(self, tmp_path):
        package = _make_package(tmp_path)
        _write_data(package, "SC1", "synopsis.txt", "Hamlet meets the ghost.")
        _write_data(
            package, "SC1", "content.txt", "The night was cold and the wind howled."
        )
        scene = ScrivenerParser().parse(package).chapters[0].scenes[0]
        assert [(b.content, b.source_id) for b in scene.beats] == [
            ("Hamlet meets the ghost.", "SC1-synopsis"),
        ]

    def test_rtf_text_without_synopsis_has_no_beats(self, tmp_path):
        package = _make_package(tmp_path)
        _write_data(
            package,
            "SC1",
            "content.rtf",
            r"{\rtf1\ansi{\fonttbl\f0 Helvetica;}\f0 The ghost appears\'85}",
        )
        scene = ScrivenerParser().parse(package).chapters[0].scenes[0]
        assert scene.synopsis is None
        assert scene.beats == []

    def test_legacy_docs_layout(self, tmp_path):
        binder = """<ScrivenerProject Version="1.0">
  <Binder>
    <BinderItem ID="0" Type="DraftFolder">
      <Title>Draft</Title>
      <Children>
        <BinderItem ID="3" Type="Folder">
          <Title>Chapter</Title>
          <Children>
            <BinderItem ID="4" Type="Text"><Title>Scene</Title></BinderItem>
          </Children>
        </BinderItem>
      </Children>
    </BinderItem>
  </Binder>
</ScrivenerProject>
"""
        package = _make_package(tmp_path, binder)
        docs = package / "Files" / "Docs"
        docs.mkdir(parents=True)
        (docs / "4_synopsis.txt").write_text("Legacy synopsis", encoding="utf-8")
        scene = ScrivenerParser().parse(package).chapters[0].scenes[0]
        assert scene.source_id == "4"
        assert scene.synopsis == "Legacy synopsis"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_newer_version_unsupported(self, tmp_path):
        package = _make_package(tmp_path, _BINDER.replace('Version="2.0"', 'Version="3.0"'))
        with pytest.raises(UnsupportedVersionError) as exc_info:
            ScrivenerParser().parse(package)
        assert exc_info.value.version == "3.0"

    def test_non_numeric_version_unsupported(self, tmp_path):
        package = _make_package(tmp_path, _BINDER.replace('Version="2.0"', 'Version="beta"'))
        with pytest.raises(UnsupportedVersionError):
            ScrivenerParser().parse(package)

    def test_missing_draft_folder(self, tmp_path):
        binder = '<ScrivenerProject Version="2.0"><Binder></Binder></ScrivenerProject>'
        package = _make_package(tmp_path, binder)
        with pytest.raises(InvalidStructureError, match="draft folder"):
            ScrivenerParser().parse(package)

    def test_missing_binder(self, tmp_path):
        package = _make_package(tmp_path, '<ScrivenerProject Version="2.0"/>')
        with pytest.raises(InvalidStructureError, match="no Binder"):
            ScrivenerParser().parse(package)

    def test_wrong_root(self, tmp_path):
        package = _make_package(tmp_path, "<Other/>")
        with pytest.raises(InvalidStructureError, match="root element"):
            ScrivenerParser().parse(package)

    def test_malformed_xml(self, tmp_path):
        package = _make_package(tmp_path, "<ScrivenerProject><Binder>")
        with pytest.raises(InvalidStructureError, match="Malformed XML"):
            ScrivenerParser().parse(package)

    def test_no_index(self, tmp_path):
        package = tmp_path / "Empty.scriv"
        package.mkdir()
        with pytest.raises(InvalidStructureError, match="scrivx"):
            ScrivenerParser().parse(package)

    def test_item_without_uuid(self, tmp_path):
        binder = (
            '<ScrivenerProject Version="2.0"><Binder>'
            '<BinderItem Type="DraftFolder"><Title>Draft</Title></BinderItem>'
            "</Binder></ScrivenerProject>"
        )
        package = _make_package(tmp_path, binder)
        with pytest.raises(InvalidStructureError) as exc_info:
            ScrivenerParser().parse(package)
        assert exc_info.value.path is not None
