"""Tests for preview and summary formatting functions.

Covers:
- format_sync_preview sections, item ids, the empty case and inline diffs
  of multi-line changes
- format_reimport_summary counts and skipped additions
- format_change_diff with and without textual differences
- preview_to_json / preview_from_json and summary_to_json structure
"""

from __future__ import annotations

import json

from outline_sync.models import ItemKind, SourceFormat
from outline_sync.sync.models import (
    ChangeField,
    IdentityAmbiguity,
    ReimportSummary,
    SyncAddition,
    SyncChange,
    SyncPreview,
)
from outline_sync.sync.reporter import (
    format_change_diff,
    format_reimport_summary,
    format_sync_preview,
    preview_from_json,
    preview_to_json,
    summary_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_preview(
    additions: list[SyncAddition] | None = None,
    changes: list[SyncChange] | None = None,
    ambiguities: list[IdentityAmbiguity] | None = None,
) -> SyncPreview:
    """Build a SyncPreview with sensible defaults."""
    return SyncPreview(
        project_id="p1",
        source_path="/novels/hamlet.pltr",
        source_format=SourceFormat.PLOTTR,
        source_hash="abc123",
        generated_at="2026-02-07T10:00:00Z",
        additions=additions or [],
        changes=changes or [],
        ambiguities=ambiguities or [],
    )


def _change(current: str | None = "Act 2", new: str | None = "Act 2 - UPDATED TITLE") -> SyncChange:
    return SyncChange(
        id="chapter-title-c2",
        kind=ItemKind.CHAPTER,
        field=ChangeField.TITLE,
        item_title="Act 2",
        current_value=current,
        new_value=new,
        target_id="c2",
    )


_ADDITIONS = [
    SyncAddition(id="chapter-13", kind=ItemKind.CHAPTER, title="Act 4", source_id="13"),
    SyncAddition(
        id="scene-105",
        kind=ItemKind.SCENE,
        title="Ophelia's Madness",
        parent_title="Act 4",
        parent_addition_id="chapter-13",
        source_id="105",
    ),
]

_AMBIGUITY = IdentityAmbiguity(
    kind=ItemKind.SCENE,
    title="Interlude",
    parent_title="Act 1",
    position=2,
    candidate_ids=["s1", "s2"],
    matched_id="s1",
    reason="2 scenes share this title",
)


# ---------------------------------------------------------------------------
# format_sync_preview
# ---------------------------------------------------------------------------


class TestFormatSyncPreview:
    def test_header(self):
        text = format_sync_preview(_make_preview())
        assert text.startswith("Reimport preview for project p1")
        assert "Source: /novels/hamlet.pltr (plottr)" in text

    def test_empty(self):
        text = format_sync_preview(_make_preview())
        assert "No changes detected." in text
        assert "Changes:" not in text

    def test_additions_grouped_by_kind(self):
        text = format_sync_preview(_make_preview(additions=_ADDITIONS))
        assert "New chapters:" in text
        assert "New scenes:" in text
        assert "New beats:" not in text
        assert "[chapter-13] + Act 4" in text
        assert "[scene-105] + Ophelia's Madness (in Act 4)" in text
        assert text.index("New chapters:") < text.index("New scenes:")

    def test_changes(self):
        text = format_sync_preview(_make_preview(changes=[_change()]))
        assert "Changes:" in text
        assert '[chapter-title-c2] chapter \'Act 2\' title: "Act 2" -> "Act 2 - UPDATED TITLE"' in text

    def test_removed_value_shown_as_none(self):
        text = format_sync_preview(_make_preview(changes=[_change(current="Old synopsis", new=None)]))
        assert '"Old synopsis" -> (none)' in text

    def test_long_values_truncated(self):
        text = format_sync_preview(_make_preview(changes=[_change(new="x" * 100)]))
        assert '"' + "x" * 40 + '..."' in text

    def test_multiline_change_shows_diff(self):
        change = _change(current="Guards watch.\nA ghost walks.", new="Guards watch.\nThe ghost speaks.")
        lines = format_sync_preview(_make_preview(changes=[change])).splitlines()
        at = lines.index(
            '  [chapter-title-c2] chapter \'Act 2\' title: "Guards watch. A ghost walks." -> '
            '"Guards watch. The ghost speaks."'
        )
        assert lines[at + 1] == "      --- current: c2"
        assert "      -A ghost walks." in lines
        assert "      +The ghost speaks." in lines
        assert "       Guards watch." in lines

    def test_single_line_change_has_no_diff(self):
        text = format_sync_preview(_make_preview(changes=[_change()]))
        assert "--- current:" not in text

    def test_ambiguities_only(self):
        text = format_sync_preview(_make_preview(ambiguities=[_AMBIGUITY]))
        assert "No changes detected." not in text
        assert "Needs review (matched by title only):" in text
        assert "scene 'Interlude' at position 2 -> s1: 2 scenes share this title" in text

    def test_counts_line(self):
        text = format_sync_preview(_make_preview(additions=_ADDITIONS, changes=[_change()]))
        assert "2 addition(s), 1 change(s), 0 ambiguity(ies)" in text


# ---------------------------------------------------------------------------
# format_reimport_summary
# ---------------------------------------------------------------------------


class TestFormatReimportSummary:
    def test_counts(self):
        summary = ReimportSummary(
            chapters_added=1, scenes_added=1, beats_added=1, chapters_updated=1, prose_preserved=2
        )
        text = format_reimport_summary(summary)
        assert "Added: 1 chapter(s), 1 scene(s), 1 beat(s)" in text
        assert "Updated: 1 chapter(s), 0 scene(s), 0 beat(s)" in text
        assert "Prose preserved: 2 beat(s)" in text

    def test_empty(self):
        assert format_reimport_summary(ReimportSummary()) == "No changes detected."

    def test_skipped(self):
        text = format_reimport_summary(ReimportSummary(additions_skipped=3))
        assert text.splitlines() == [
            "No changes detected.",
            "Skipped: 3 addition(s) whose parent was not approved",
        ]


# ---------------------------------------------------------------------------
# format_change_diff
# ---------------------------------------------------------------------------


class TestFormatChangeDiff:
    def test_unified_diff(self):
        text = format_change_diff(_change())
        assert text.startswith("chapter 'Act 2' (title)")
        assert "--- current: c2" in text
        assert "+++ source" in text
        assert "-Act 2" in text.splitlines()
        assert "+Act 2 - UPDATED TITLE" in text.splitlines()

    def test_no_textual_difference(self):
        text = format_change_diff(_change(current=None, new=""))
        assert "(no textual differences)" in text


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestJson:
    def test_preview_structure(self):
        data = preview_to_json(_make_preview(additions=_ADDITIONS, changes=[_change()]))
        assert data["project_id"] == "p1"
        assert data["source_format"] == "plottr"
        assert data["counts"] == {"additions": 2, "changes": 1, "ambiguities": 0}
        assert data["changes"][0]["field"] == "title"
        json.dumps(data)

    def test_preview_rebuilt(self):
        preview = _make_preview(additions=_ADDITIONS, changes=[_change()], ambiguities=[_AMBIGUITY])
        rebuilt = preview_from_json(json.loads(json.dumps(preview_to_json(preview))))
        assert rebuilt == preview

    def test_summary(self):
        data = summary_to_json(ReimportSummary(beats_updated=2))
        assert data["beats_updated"] == 2
        assert data["is_empty"] is False
        assert summary_to_json(ReimportSummary())["is_empty"] is True
