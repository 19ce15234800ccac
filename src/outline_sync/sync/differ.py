"""Diff a freshly parsed outline against the persisted project tree.

The walk is depth-first and fixed-depth: chapters, then the scenes of each
chapter, then the beats of each scene.  At every level the parsed siblings
are matched against the persisted siblings of the same parent by the
``IdentityResolver``.

* A matched node yields one ``SyncChange`` per differing field (title for
  chapters and scenes, synopsis for scenes, content for beats).  Prose is
  never compared.
* An unmatched node yields a ``SyncAddition`` and its whole parsed subtree
  becomes additions too.
* Locked or archived chapters and scenes freeze their subtree: no changes
  and no additions are proposed below them.
* Persisted nodes without a parsed counterpart are left out entirely.

The differ is a pure function of its inputs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from ..models import (
    Beat,
    Chapter,
    ParsedBeat,
    ParsedChapter,
    ParsedProject,
    ParsedScene,
    ProjectTree,
    Scene,
)
from .identity import IdentityResolver, Match, ParsedNode, PersistedNode, node_key
from .models import (
    ChangeField,
    IdentityAmbiguity,
    ItemKind,
    SyncAddition,
    SyncChange,
    SyncPreview,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE_WIDTH = 50


def display_title(text: str, width: int = DEFAULT_TITLE_WIDTH) -> str:
    """Truncate *text* to *width* characters, marking the cut with ``...``."""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    return text[:width] + "..."


def _norm(value: str | None) -> str:
    return value or ""


class _DiffWalk:
    """State of one diff: the resolver and the accumulated preview items."""

    def __init__(self, tree: ProjectTree, title_width: int) -> None:
        self.tree = tree
        self.title_width = title_width
        self.resolver = IdentityResolver()
        self.additions: list[SyncAddition] = []
        self.changes: list[SyncChange] = []
        self.ambiguities: list[IdentityAmbiguity] = []

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _match(
        self,
        kind: ItemKind,
        parsed_nodes: Sequence[ParsedNode],
        candidates: Sequence[PersistedNode],
        parent_title: str | None,
    ) -> list[Match | None]:
        matches = self.resolver.resolve_siblings(parsed_nodes, candidates)
        for position, (node, match) in enumerate(zip(parsed_nodes, matches)):
            title = self._title(kind, node_key(node))
            if match is not None and match.ambiguous:
                self.ambiguities.append(
                    IdentityAmbiguity(
                        kind=kind,
                        title=title,
                        parent_title=parent_title,
                        position=position,
                        candidate_ids=list(match.candidate_ids),
                        matched_id=match.persisted_id,
                        reason=(
                            f"{len(match.candidate_ids)} existing {kind.value}s share "
                            f"this title; matched the first one"
                        ),
                    )
                )
            elif match is None:
                conflict = self.resolver.position_conflict(node, position, candidates)
                if conflict is not None:
                    self.ambiguities.append(
                        IdentityAmbiguity(
                            kind=kind,
                            title=title,
                            parent_title=parent_title,
                            position=position,
                            candidate_ids=[conflict.id],
                            matched_id=None,
                            reason=(
                                f"Existing {kind.value} at the same position was not "
                                f"matched; it may have been renamed. Added as new"
                            ),
                        )
                    )
        return matches

    def _title(self, kind: ItemKind, text: str) -> str:
        if kind is ItemKind.BEAT:
            return display_title(text, self.title_width)
        return text

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    def chapters(self, parsed: Sequence[ParsedChapter]) -> None:
        persisted = {c.id: c for c in self.tree.chapters}
        matches = self._match(ItemKind.CHAPTER, parsed, self.tree.chapters, None)
        for position, (node, match) in enumerate(zip(parsed, matches)):
            path = f"{position}"
            if match is None:
                self._add_chapter(node, path)
                continue
            chapter = persisted[match.persisted_id]
            if chapter.locked or chapter.archived:
                logger.debug("Chapter %s is frozen; skipping its subtree", chapter.id)
                continue
            if node.title != chapter.title:
                self._change(ItemKind.CHAPTER, ChangeField.TITLE, chapter, chapter.title, node.title)
            self.scenes(node.scenes, chapter, path)

    def scenes(self, parsed: Sequence[ParsedScene], chapter: Chapter, path: str) -> None:
        candidates = self.tree.scenes_of(chapter.id)
        persisted = {s.id: s for s in candidates}
        matches = self._match(ItemKind.SCENE, parsed, candidates, chapter.title)
        for position, (node, match) in enumerate(zip(parsed, matches)):
            scene_path = f"{path}.{position}"
            if match is None:
                self._add_scene(node, scene_path, chapter.title, parent_id=chapter.id)
                continue
            scene = persisted[match.persisted_id]
            if scene.locked or scene.archived:
                logger.debug("Scene %s is frozen; skipping its beats", scene.id)
                continue
            if node.title != scene.title:
                self._change(ItemKind.SCENE, ChangeField.TITLE, scene, scene.title, node.title)
            if _norm(node.synopsis) != _norm(scene.synopsis):
                self._change(
                    ItemKind.SCENE, ChangeField.SYNOPSIS, scene, scene.synopsis, node.synopsis
                )
            self.beats(node.beats, scene, scene_path)

    def beats(self, parsed: Sequence[ParsedBeat], scene: Scene, path: str) -> None:
        candidates = self.tree.beats_of(scene.id)
        persisted = {b.id: b for b in candidates}
        matches = self._match(ItemKind.BEAT, parsed, candidates, scene.title)
        for position, (node, match) in enumerate(zip(parsed, matches)):
            if match is None:
                self._add_beat(node, f"{path}.{position}", scene.title, parent_id=scene.id)
                continue
            beat = persisted[match.persisted_id]
            if node.content != beat.content:
                self._change(ItemKind.BEAT, ChangeField.CONTENT, beat, beat.content, node.content)

    # ------------------------------------------------------------------
    # Preview items
    # ------------------------------------------------------------------

    def _change(
        self,
        kind: ItemKind,
        field: ChangeField,
        target: Chapter | Scene | Beat,
        current: str | None,
        new: str | None,
    ) -> None:
        title = target.content if isinstance(target, Beat) else target.title
        self.changes.append(
            SyncChange(
                id=f"{kind.value}-{field.value}-{target.id}",
                kind=kind,
                field=field,
                item_title=self._title(kind, title),
                current_value=current,
                new_value=new,
                target_id=target.id,
            )
        )

    @staticmethod
    def _addition_id(kind: ItemKind, source_id: str | None, path: str) -> str:
        if source_id is not None:
            return f"{kind.value}-{source_id}"
        return f"{kind.value}@{path}"

    def _add_chapter(self, node: ParsedChapter, path: str) -> None:
        addition = SyncAddition(
            id=self._addition_id(ItemKind.CHAPTER, node.source_id, path),
            kind=ItemKind.CHAPTER,
            title=node.title,
            parent_title=self.tree.project.name,
            parent_id=self.tree.project.id,
            source_id=node.source_id,
            is_part=node.is_part,
        )
        self.additions.append(addition)
        for position, scene in enumerate(node.scenes):
            self._add_scene(
                scene, f"{path}.{position}", node.title, parent_addition_id=addition.id
            )

    def _add_scene(
        self,
        node: ParsedScene,
        path: str,
        parent_title: str,
        parent_id: str | None = None,
        parent_addition_id: str | None = None,
    ) -> None:
        addition = SyncAddition(
            id=self._addition_id(ItemKind.SCENE, node.source_id, path),
            kind=ItemKind.SCENE,
            title=node.title,
            parent_title=parent_title,
            parent_id=parent_id,
            parent_addition_id=parent_addition_id,
            source_id=node.source_id,
            synopsis=node.synopsis,
        )
        self.additions.append(addition)
        for position, beat in enumerate(node.beats):
            self._add_beat(
                beat, f"{path}.{position}", node.title, parent_addition_id=addition.id
            )

    def _add_beat(
        self,
        node: ParsedBeat,
        path: str,
        parent_title: str,
        parent_id: str | None = None,
        parent_addition_id: str | None = None,
    ) -> None:
        self.additions.append(
            SyncAddition(
                id=self._addition_id(ItemKind.BEAT, node.source_id, path),
                kind=ItemKind.BEAT,
                title=display_title(node.content, self.title_width),
                parent_title=parent_title,
                parent_id=parent_id,
                parent_addition_id=parent_addition_id,
                source_id=node.source_id,
                content=node.content,
            )
        )


def diff(
    parsed: ParsedProject,
    tree: ProjectTree,
    source_path: str | None = None,
    source_hash: str | None = None,
    title_width: int = DEFAULT_TITLE_WIDTH,
) -> SyncPreview:
    """Compare *parsed* with the persisted *tree*.

    Args:
        parsed: Freshly parsed canonical document.
        tree: Persisted project snapshot.
        source_path: Path the document was parsed from, for the preview.
        source_hash: Fingerprint of the source, recorded on apply.
        title_width: Truncation width of beat display titles.

    Returns:
        A ``SyncPreview``; empty when source and store agree.
    """
    walk = _DiffWalk(tree, title_width)
    walk.chapters(parsed.chapters)
    preview = SyncPreview(
        project_id=tree.project.id,
        base_revision=tree.revision,
        source_path=source_path or tree.project.source_path,
        source_format=parsed.source_format,
        source_hash=source_hash,
        generated_at=datetime.now(timezone.utc).isoformat(),
        additions=walk.additions,
        changes=walk.changes,
        ambiguities=walk.ambiguities,
    )
    logger.debug(
        "Diff for project %s: %d addition(s), %d change(s), %d ambiguity(ies)",
        tree.project.id,
        len(preview.additions),
        len(preview.changes),
        len(preview.ambiguities),
    )
    return preview
