"""Apply an approved subset of a ``SyncPreview`` to the repository.

Key design choices:

* **All or nothing** -- every write happens inside one repository
  transaction.  Any failure rolls the whole apply back and surfaces as
  ``ApplyError``.
* **Append at end** -- approved additions are created after their
  parent's current last child.  The parsed position is not reconcilable
  with reordering the writer may have done since the last import.
* **Prose is never written** -- changes carry only ``title``,
  ``synopsis`` or ``content``; the repository rejects ``prose`` in a
  structural update anyway.
"""

from __future__ import annotations

import logging

from ..errors import ApplyError
from ..models import ItemKind, ProjectTree
from ..store.repository import ProjectRepository
from .models import (
    Approval,
    ChangeField,
    ReimportSummary,
    SyncAddition,
    SyncChange,
    SyncPreview,
)

logger = logging.getLogger(__name__)


def _beats_below(tree: ProjectTree, change: SyncChange) -> list[str]:
    """Ids of the persisted beats a change rewrites or sits above."""
    match change.kind:
        case ItemKind.BEAT:
            return [change.target_id]
        case ItemKind.SCENE:
            return [b.id for b in tree.beats_of(change.target_id)]
        case ItemKind.CHAPTER:
            return [
                b.id
                for s in tree.scenes_of(change.target_id)
                for b in tree.beats_of(s.id)
            ]
    return []


class _Apply:
    """One apply run: created ids and running counts."""

    def __init__(self, repository: ProjectRepository, preview: SyncPreview) -> None:
        self.repository = repository
        self.preview = preview
        self.created: dict[str, str] = {}
        self.added = {kind: 0 for kind in ItemKind}
        self.updated: dict[ItemKind, set[str]] = {kind: set() for kind in ItemKind}
        self.skipped = 0

    def addition(self, addition: SyncAddition) -> None:
        if addition.parent_addition_id is not None:
            parent_id = self.created.get(addition.parent_addition_id)
        else:
            parent_id = addition.parent_id
        if parent_id is None:
            logger.info(
                "Skipping %s '%s': its parent was not approved",
                addition.kind.value,
                addition.title,
            )
            self.skipped += 1
            return

        match addition.kind:
            case ItemKind.CHAPTER:
                entity = self.repository.create_chapter(
                    self.preview.project_id,
                    addition.title,
                    source_id=addition.source_id,
                    is_part=addition.is_part,
                )
            case ItemKind.SCENE:
                entity = self.repository.create_scene(
                    parent_id,
                    addition.title,
                    synopsis=addition.synopsis,
                    source_id=addition.source_id,
                )
            case ItemKind.BEAT:
                entity = self.repository.create_beat(
                    parent_id,
                    addition.content or addition.title,
                    source_id=addition.source_id,
                )
        self.created[addition.id] = entity.id
        self.added[addition.kind] += 1

    def change(self, change: SyncChange) -> None:
        update = {change.field.value: change.new_value}
        match change.kind, change.field:
            case ItemKind.CHAPTER, ChangeField.TITLE:
                self.repository.update_chapter(change.target_id, update)
            case ItemKind.SCENE, ChangeField.TITLE | ChangeField.SYNOPSIS:
                self.repository.update_scene(change.target_id, update)
            case ItemKind.BEAT, ChangeField.CONTENT:
                self.repository.update_beat(change.target_id, update)
            case _:
                raise ValueError(
                    f"Unsupported change: {change.kind.value}.{change.field.value}"
                )
        self.updated[change.kind].add(change.target_id)


def apply_preview(
    repository: ProjectRepository,
    preview: SyncPreview,
    approved: Approval,
) -> ReimportSummary:
    """Write the approved additions and changes of *preview*.

    Args:
        repository: Target repository.
        preview: Preview produced by the differ.
        approved: Ids of the additions and changes to write.

    Returns:
        Counts of what was written.

    Raises:
        ApplyError: If any write fails; nothing is committed.
    """
    run = _Apply(repository, preview)
    touched_beats: set[str] = set()
    try:
        with repository.transaction():
            tree = repository.get_project_tree(preview.project_id)
            for addition in preview.additions:
                if addition.id in approved.addition_ids:
                    run.addition(addition)
            for change in preview.changes:
                if change.id in approved.change_ids:
                    run.change(change)
                    touched_beats.update(_beats_below(tree, change))
    except Exception as exc:
        logger.error(
            "Apply for project %s rolled back: %s", preview.project_id, exc
        )
        raise ApplyError(
            f"Apply for project {preview.project_id} failed and was rolled back: {exc}"
        ) from exc

    with_prose = {
        beat.id
        for beats in tree.beats.values()
        for beat in beats
        if beat.prose is not None
    }
    return ReimportSummary(
        chapters_added=run.added[ItemKind.CHAPTER],
        scenes_added=run.added[ItemKind.SCENE],
        beats_added=run.added[ItemKind.BEAT],
        chapters_updated=len(run.updated[ItemKind.CHAPTER]),
        scenes_updated=len(run.updated[ItemKind.SCENE]),
        beats_updated=len(run.updated[ItemKind.BEAT]),
        prose_preserved=len(touched_beats & with_prose),
        additions_skipped=run.skipped,
    )
