"""In-memory ``ProjectRepository`` with snapshot rollback.

Tables are plain dicts of frozen pydantic models.  Updates replace whole
rows via ``model_copy(update=...)``, so a transaction snapshot only needs
to copy the table dicts: the rows themselves are immutable and therefore
safe to share with the snapshot.

All access is serialised by one re-entrant lock, held for the whole of a
transaction so a rollback can never discard another caller's writes.

Every committed transaction that touches a project bumps its revision
counter by one.  A preview records the revision it was computed against so
an apply can tell that the project has changed since.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from ..errors import ProjectNotFoundError
from ..models import (
    Beat,
    Chapter,
    ItemKind,
    Project,
    ProjectTree,
    Reference,
    ReferenceKind,
    Scene,
    SourceFormat,
)
from .repository import (
    BEAT_FIELDS,
    CHAPTER_FIELDS,
    PROJECT_FIELDS,
    SCENE_FIELDS,
    check_field_updates,
)

logger = logging.getLogger(__name__)

_TABLES = ("projects", "chapters", "scenes", "beats", "references", "revisions")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryRepository:
    """Dict-backed repository used in tests and as the JSON store's core."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty: set[str] = set()
        self.projects: dict[str, Project] = {}
        self.chapters: dict[str, Chapter] = {}
        self.scenes: dict[str, Scene] = {}
        self.beats: dict[str, Beat] = {}
        self.references: dict[str, Reference] = {}
        self.scene_references: set[tuple[str, str]] = set()
        self.revisions: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[MemoryRepository]:
        """Run a block of writes atomically.

        Nested transactions join the outermost one.  On any exception the
        tables are restored from the snapshot taken on entry and the
        exception propagates.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
                self._bump_revisions(self._dirty)
                self._commit(set(self._dirty))
            except BaseException:
                self._restore(snapshot)
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._depth = 0
                self._dirty.clear()

    def _snapshot(self) -> dict[str, Any]:
        state: dict[str, Any] = {name: dict(getattr(self, name)) for name in _TABLES}
        state["scene_references"] = set(self.scene_references)
        return state

    def _restore(self, snapshot: dict[str, Any]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    def _commit(self, project_ids: set[str]) -> None:
        """Hook for durable subclasses; called with the touched project ids."""

    def _touch(self, project_id: str) -> None:
        self._dirty.add(project_id)

    def _bump_revisions(self, project_ids: set[str]) -> None:
        for project_id in project_ids:
            if project_id in self.projects:
                self.revisions[project_id] = self.revisions.get(project_id, 0) + 1

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _chapter(self, chapter_id: str) -> Chapter:
        try:
            return self.chapters[chapter_id]
        except KeyError:
            raise KeyError(f"Unknown chapter: {chapter_id}") from None

    def _scene(self, scene_id: str) -> Scene:
        try:
            return self.scenes[scene_id]
        except KeyError:
            raise KeyError(f"Unknown scene: {scene_id}") from None

    def _beat(self, beat_id: str) -> Beat:
        try:
            return self.beats[beat_id]
        except KeyError:
            raise KeyError(f"Unknown beat: {beat_id}") from None

    def _project_of_scene(self, scene: Scene) -> str:
        return self._chapter(scene.chapter_id).project_id

    def _project_of_beat(self, beat: Beat) -> str:
        return self._project_of_scene(self._scene(beat.scene_id))

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        name: str,
        source_format: SourceFormat,
        source_path: str | None = None,
        author: str | None = None,
        description: str | None = None,
        word_target: int | None = None,
        source_hash: str | None = None,
    ) -> Project:
        now = _now()
        project = Project(
            id=_new_id(),
            name=name,
            source_format=source_format,
            source_path=source_path,
            author=author,
            description=description,
            word_target=word_target,
            source_hash=source_hash,
            created_at=now,
            modified_at=now,
            last_synced=now if source_hash else None,
        )
        with self.transaction():
            self.projects[project.id] = project
            self._touch(project.id)
        return project

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def get_revision(self, project_id: str) -> int:
        with self._lock:
            if project_id not in self.projects:
                raise ProjectNotFoundError(project_id)
            return self.revisions.get(project_id, 0)

    def list_projects(self) -> list[Project]:
        with self._lock:
            return sorted(self.projects.values(), key=lambda p: p.created_at)

    def update_project(self, project_id: str, field_updates: dict[str, Any]) -> Project:
        check_field_updates("project", field_updates, PROJECT_FIELDS)
        with self.transaction():
            project = self.get_project(project_id).model_copy(
                update={**field_updates, "modified_at": _now()}
            )
            self.projects[project_id] = project
            self._touch(project_id)
        return project

    def get_project_tree(self, project_id: str) -> ProjectTree:
        with self._lock:
            project = self.get_project(project_id)
            chapters = sorted(
                (c for c in self.chapters.values() if c.project_id == project_id),
                key=lambda c: c.position,
            )
            chapter_ids = {c.id for c in chapters}
            scenes: dict[str, list[Scene]] = {c.id: [] for c in chapters}
            for scene in self.scenes.values():
                if scene.chapter_id in chapter_ids:
                    scenes[scene.chapter_id].append(scene)
            beats: dict[str, list[Beat]] = {}
            for chapter_scenes in scenes.values():
                chapter_scenes.sort(key=lambda s: s.position)
                for scene in chapter_scenes:
                    beats[scene.id] = []
            for beat in self.beats.values():
                if beat.scene_id in beats:
                    beats[beat.scene_id].append(beat)
            for scene_beats in beats.values():
                scene_beats.sort(key=lambda b: b.position)
            revision = self.revisions.get(project_id, 0)
        return ProjectTree(
            project=project, chapters=chapters, scenes=scenes, beats=beats, revision=revision
        )

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    @staticmethod
    def _place(table: dict[str, Any], siblings: list[Any], position: int | None) -> int:
        """Return the insert position, shifting later siblings to keep it dense."""
        count = len(siblings)
        if position is None or position >= count:
            return count
        if position < 0:
            raise ValueError(f"Position must be non-negative, got {position}")
        for sibling in siblings:
            if sibling.position >= position:
                table[sibling.id] = sibling.model_copy(
                    update={"position": sibling.position + 1}
                )
        return position

    # ------------------------------------------------------------------
    # Outline
    # ------------------------------------------------------------------

    def create_chapter(
        self,
        project_id: str,
        title: str,
        source_id: str | None = None,
        position: int | None = None,
        is_part: bool = False,
    ) -> Chapter:
        with self.transaction():
            self.get_project(project_id)
            siblings = [c for c in self.chapters.values() if c.project_id == project_id]
            chapter = Chapter(
                id=_new_id(),
                project_id=project_id,
                title=title,
                position=self._place(self.chapters, siblings, position),
                source_id=source_id,
                is_part=is_part,
            )
            self.chapters[chapter.id] = chapter
            self._touch(project_id)
        return chapter

    def create_scene(
        self,
        chapter_id: str,
        title: str,
        synopsis: str | None = None,
        source_id: str | None = None,
        position: int | None = None,
    ) -> Scene:
        with self.transaction():
            chapter = self._chapter(chapter_id)
            siblings = [s for s in self.scenes.values() if s.chapter_id == chapter_id]
            scene = Scene(
                id=_new_id(),
                chapter_id=chapter_id,
                title=title,
                synopsis=synopsis,
                position=self._place(self.scenes, siblings, position),
                source_id=source_id,
            )
            self.scenes[scene.id] = scene
            self._touch(chapter.project_id)
        return scene

    def create_beat(
        self,
        scene_id: str,
        content: str,
        source_id: str | None = None,
        position: int | None = None,
    ) -> Beat:
        with self.transaction():
            scene = self._scene(scene_id)
            siblings = [b for b in self.beats.values() if b.scene_id == scene_id]
            beat = Beat(
                id=_new_id(),
                scene_id=scene_id,
                content=content,
                position=self._place(self.beats, siblings, position),
                source_id=source_id,
            )
            self.beats[beat.id] = beat
            self._touch(self._project_of_scene(scene))
        return beat

    def update_chapter(self, chapter_id: str, field_updates: dict[str, Any]) -> Chapter:
        check_field_updates("chapter", field_updates, CHAPTER_FIELDS)
        with self.transaction():
            chapter = self._chapter(chapter_id).model_copy(update=field_updates)
            self.chapters[chapter_id] = chapter
            self._touch(chapter.project_id)
        return chapter

    def update_scene(self, scene_id: str, field_updates: dict[str, Any]) -> Scene:
        check_field_updates("scene", field_updates, SCENE_FIELDS)
        with self.transaction():
            scene = self._scene(scene_id).model_copy(update=field_updates)
            self.scenes[scene_id] = scene
            self._touch(self._project_of_scene(scene))
        return scene

    def update_beat(self, beat_id: str, field_updates: dict[str, Any]) -> Beat:
        check_field_updates("beat", field_updates, BEAT_FIELDS)
        with self.transaction():
            beat = self._beat(beat_id).model_copy(update=field_updates)
            self.beats[beat_id] = beat
            self._touch(self._project_of_beat(beat))
        return beat

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def create_reference(
        self,
        project_id: str,
        kind: ReferenceKind,
        name: str,
        attributes: dict[str, str] | None = None,
        source_id: str | None = None,
    ) -> Reference:
        with self.transaction():
            self.get_project(project_id)
            reference = Reference(
                id=_new_id(),
                project_id=project_id,
                kind=kind,
                name=name,
                attributes=dict(attributes or {}),
                source_id=source_id,
            )
            self.references[reference.id] = reference
            self._touch(project_id)
        return reference

    def list_references(self, project_id: str) -> list[Reference]:
        with self._lock:
            return [r for r in self.references.values() if r.project_id == project_id]

    def link_scene_reference(self, scene_id: str, reference_id: str) -> None:
        with self.transaction():
            scene = self._scene(scene_id)
            if reference_id not in self.references:
                raise KeyError(f"Unknown reference: {reference_id}")
            self.scene_references.add((scene_id, reference_id))
            self._touch(self._project_of_scene(scene))

    def scene_reference_ids(self, scene_id: str) -> list[str]:
        with self._lock:
            return sorted(ref for scene, ref in self.scene_references if scene == scene_id)

    # ------------------------------------------------------------------
    # Writer path
    # ------------------------------------------------------------------

    def set_scene_prose(self, scene_id: str, prose: str | None) -> Scene:
        with self.transaction():
            scene = self._scene(scene_id).model_copy(update={"prose": prose})
            self.scenes[scene_id] = scene
            self._touch(self._project_of_scene(scene))
        return scene

    def set_beat_prose(self, beat_id: str, prose: str | None) -> Beat:
        with self.transaction():
            beat = self._beat(beat_id).model_copy(update={"prose": prose})
            self.beats[beat_id] = beat
            self._touch(self._project_of_beat(beat))
        return beat

    def _set_flag(self, kind: ItemKind, item_id: str, flag: str, value: bool) -> None:
        with self.transaction():
            match kind:
                case ItemKind.CHAPTER:
                    chapter = self._chapter(item_id).model_copy(update={flag: value})
                    self.chapters[item_id] = chapter
                    self._touch(chapter.project_id)
                case ItemKind.SCENE:
                    scene = self._scene(item_id).model_copy(update={flag: value})
                    self.scenes[item_id] = scene
                    self._touch(self._project_of_scene(scene))
                case _:
                    raise ValueError(f"Only chapters and scenes can be {flag}")

    def set_locked(self, kind: ItemKind, item_id: str, locked: bool) -> None:
        self._set_flag(kind, item_id, "locked", locked)

    def set_archived(self, kind: ItemKind, item_id: str, archived: bool) -> None:
        self._set_flag(kind, item_id, "archived", archived)
