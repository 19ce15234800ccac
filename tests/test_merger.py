"""Tests for applying an approved preview.

Covers:
- Full approval: additions created at the end of their parent, changes written
- Partial approval and skipped children of unapproved parents
- Prose untouched and counted in prose_preserved
- All-or-nothing rollback as ApplyError
- Approval helpers
- A re-diff after apply is empty
"""

from __future__ import annotations

import pytest

from outline_sync.errors import ApplyError
from outline_sync.models import (
    ItemKind,
    ParsedBeat,
    ParsedChapter,
    ParsedProject,
    ParsedScene,
    SourceFormat,
)
from outline_sync.store import MemoryRepository
from outline_sync.sync.differ import diff
from outline_sync.sync.merger import apply_preview
from outline_sync.sync.models import Approval, ChangeField, SyncChange

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_source(act2_title: str = "Act 2", extra: bool = False, beat: str = "Hamlet waits") -> ParsedProject:
    chapters = [
        ParsedChapter(
            title="Act 1",
            source_id="c1",
            scenes=[
                ParsedScene(
                    title="Battlements",
                    source_id="s1",
                    beats=[ParsedBeat(content=beat, source_id="b1")],
                )
            ],
        ),
        ParsedChapter(
            title=act2_title,
            source_id="c2",
            scenes=[
                ParsedScene(
                    title="Players",
                    source_id="s2",
                    beats=[ParsedBeat(content="The players arrive", source_id="b2")],
                )
            ],
        ),
    ]
    if extra:
        chapters.append(
            ParsedChapter(
                title="Act 3",
                source_id="c3",
                scenes=[
                    ParsedScene(
                        title="Mousetrap",
                        source_id="s3",
                        beats=[ParsedBeat(content="The play", source_id="b3")],
                    )
                ],
            )
        )
    return ParsedProject(name="Hamlet", source_format=SourceFormat.PLOTTR, chapters=chapters)


def _seed(repo: MemoryRepository) -> str:
    """Persist the base source and return the project id."""
    project = repo.create_project("Hamlet", SourceFormat.PLOTTR)
    preview = diff(_make_source(), repo.get_project_tree(project.id))
    apply_preview(repo, preview, Approval.all(preview))
    return project.id


def _preview(repo, project_id, **kwargs):
    return diff(_make_source(**kwargs), repo.get_project_tree(project_id))


# ---------------------------------------------------------------------------
# Full approval
# ---------------------------------------------------------------------------


class TestApplyAll:
    def test_first_apply_creates_everything(self):
        repo = MemoryRepository()
        project = repo.create_project("Hamlet", SourceFormat.PLOTTR)
        preview = diff(_make_source(), repo.get_project_tree(project.id))
        summary = apply_preview(repo, preview, Approval.all(preview))

        assert (summary.chapters_added, summary.scenes_added, summary.beats_added) == (2, 2, 2)
        tree = repo.get_project_tree(project.id)
        assert [c.title for c in tree.chapters] == ["Act 1", "Act 2"]
        assert [c.source_id for c in tree.chapters] == ["c1", "c2"]

    def test_changes_and_additions(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, act2_title="Act Two", extra=True)
        summary = apply_preview(repo, preview, Approval.all(preview))

        assert summary.chapters_updated == 1
        assert (summary.chapters_added, summary.scenes_added, summary.beats_added) == (1, 1, 1)
        tree = repo.get_project_tree(project_id)
        assert [c.title for c in tree.chapters] == ["Act 1", "Act Two", "Act 3"]
        mousetrap = tree.scenes_of(tree.chapters[2].id)[0]
        assert [b.content for b in tree.beats_of(mousetrap.id)] == ["The play"]

    def test_rediff_after_apply_is_empty(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, act2_title="Act Two", extra=True, beat="Changed")
        apply_preview(repo, preview, Approval.all(preview))
        assert _preview(repo, project_id, act2_title="Act Two", extra=True, beat="Changed").is_empty

    def test_additions_appended_after_writer_content(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        repo.create_chapter(project_id, "Writer's own chapter")

        preview = _preview(repo, project_id, extra=True)
        apply_preview(repo, preview, Approval.all(preview))

        titles = [c.title for c in repo.get_project_tree(project_id).chapters]
        assert titles == ["Act 1", "Act 2", "Writer's own chapter", "Act 3"]

    def test_empty_approval_writes_nothing(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        before = repo.get_project_tree(project_id)
        preview = _preview(repo, project_id, act2_title="Act Two", extra=True)
        summary = apply_preview(repo, preview, Approval())
        assert summary.is_empty
        assert repo.get_project_tree(project_id) == before


# ---------------------------------------------------------------------------
# Partial approval
# ---------------------------------------------------------------------------


class TestPartialApproval:
    def test_only_selected_items(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, act2_title="Act Two", extra=True)
        approved = Approval.select(preview, preview.change_ids)
        summary = apply_preview(repo, preview, approved)

        assert summary.chapters_updated == 1
        assert summary.chapters_added == 0
        assert [c.title for c in repo.get_project_tree(project_id).chapters] == ["Act 1", "Act Two"]

    def test_child_of_unapproved_parent_skipped(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, extra=True)
        approved = Approval.select(preview, ["scene-s3", "beat-b3"])
        summary = apply_preview(repo, preview, approved)

        assert summary.additions_skipped == 2
        assert summary.is_empty
        assert len(repo.get_project_tree(project_id).chapters) == 2

    def test_select_unknown_id(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, extra=True)
        with pytest.raises(ValueError, match="Unknown preview item"):
            Approval.select(preview, ["chapter-nope"])

    def test_all_covers_every_item(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, act2_title="Act Two", extra=True)
        approved = Approval.all(preview)
        assert approved.change_ids == frozenset(preview.change_ids)
        assert approved.addition_ids == frozenset(preview.addition_ids)


# ---------------------------------------------------------------------------
# Prose
# ---------------------------------------------------------------------------


class TestProsePreserved:
    def test_beat_content_change_keeps_prose(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        tree = repo.get_project_tree(project_id)
        scene = tree.scenes_of(tree.chapters[0].id)[0]
        beat = tree.beats_of(scene.id)[0]
        repo.set_beat_prose(beat.id, "He paced the battlements for an hour.")
        repo.set_scene_prose(scene.id, "Scene prose.")

        preview = _preview(repo, project_id, beat="Hamlet waits, cold")
        summary = apply_preview(repo, preview, Approval.all(preview))

        assert summary.beats_updated == 1
        assert summary.prose_preserved == 1
        updated = repo.beats[beat.id]
        assert updated.content == "Hamlet waits, cold"
        assert updated.prose == "He paced the battlements for an hour."
        assert repo.scenes[scene.id].prose == "Scene prose."

    def test_chapter_change_counts_beats_below(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        tree = repo.get_project_tree(project_id)
        act2 = tree.chapters[1]
        players = tree.scenes_of(act2.id)[0]
        repo.set_beat_prose(tree.beats_of(players.id)[0].id, "They bow.")

        preview = _preview(repo, project_id, act2_title="Act 2 - UPDATED TITLE")
        summary = apply_preview(repo, preview, Approval.all(preview))

        assert summary.chapters_updated == 1
        assert summary.prose_preserved == 1

    def test_beats_without_prose_not_counted(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, act2_title="Act Two")
        summary = apply_preview(repo, preview, Approval.all(preview))
        assert summary.prose_preserved == 0


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


class TestRollback:
    def test_failure_rolls_back_everything(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        preview = _preview(repo, project_id, extra=True)
        bad_change = SyncChange(
            id="chapter-title-missing",
            kind=ItemKind.CHAPTER,
            field=ChangeField.TITLE,
            item_title="Ghost chapter",
            current_value="a",
            new_value="b",
            target_id="missing",
        )
        broken = preview.model_copy(update={"changes": [bad_change]})
        before = repo.get_project_tree(project_id)

        with pytest.raises(ApplyError, match="rolled back"):
            apply_preview(repo, broken, Approval.all(broken))

        assert repo.get_project_tree(project_id) == before

    def test_unsupported_change_field(self):
        repo = MemoryRepository()
        project_id = _seed(repo)
        tree = repo.get_project_tree(project_id)
        preview = _preview(repo, project_id)
        bad_change = SyncChange(
            id="chapter-content-x",
            kind=ItemKind.CHAPTER,
            field=ChangeField.CONTENT,
            item_title="Act 1",
            new_value="x",
            target_id=tree.chapters[0].id,
        )
        broken = preview.model_copy(update={"changes": [bad_change]})
        with pytest.raises(ApplyError, match="Unsupported change"):
            apply_preview(repo, broken, Approval.all(broken))
