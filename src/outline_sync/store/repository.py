"""Repository protocol consumed by the sync core.

The core never touches storage directly; every read and write goes through
a ``ProjectRepository``.  Two rules are part of the contract:

* **Dense positions** -- the children of a parent always occupy positions
  ``0..n-1``.  ``position=None`` appends after the current last child.
* **Writer-owned prose** -- ``update_scene``/``update_beat`` refuse any
  field update naming ``prose``.  Prose is only ever written through
  ``set_scene_prose``/``set_beat_prose``, which the sync core never calls.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

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

# Fields each entity accepts through the structural update path.
PROJECT_FIELDS = frozenset(
    {
        "name",
        "source_path",
        "author",
        "description",
        "word_target",
        "source_hash",
        "last_synced",
    }
)
CHAPTER_FIELDS = frozenset({"title", "is_part"})
SCENE_FIELDS = frozenset({"title", "synopsis"})
BEAT_FIELDS = frozenset({"content"})


def check_field_updates(
    entity: str, field_updates: dict[str, Any], allowed: frozenset[str]
) -> None:
    """Validate a structural update.

    Raises:
        ValueError: If the update names ``prose`` or an unknown field.
    """
    if "prose" in field_updates:
        raise ValueError(f"Refusing to write prose of a {entity} outside the writer path")
    unknown = set(field_updates) - allowed
    if unknown:
        raise ValueError(
            f"Cannot update {entity} field(s) {sorted(unknown)}. Allowed: {sorted(allowed)}"
        )


class ProjectRepository(Protocol):
    """Storage operations the sync core relies on."""

    # Projects -------------------------------------------------------------

    def create_project(
        self,
        name: str,
        source_format: SourceFormat,
        source_path: str | None = None,
        author: str | None = None,
        description: str | None = None,
        word_target: int | None = None,
        source_hash: str | None = None,
    ) -> Project: ...

    def get_project(self, project_id: str) -> Project:
        """Return a project.

        Raises:
            ProjectNotFoundError: If no such project exists.
        """
        ...

    def get_revision(self, project_id: str) -> int:
        """Return the number of committed transactions that touched the project.

        Raises:
            ProjectNotFoundError: If no such project exists.
        """
        ...

    def list_projects(self) -> list[Project]: ...

    def update_project(self, project_id: str, field_updates: dict[str, Any]) -> Project: ...

    def get_project_tree(self, project_id: str) -> ProjectTree:
        """Return a position-ordered snapshot of the project's outline.

        Raises:
            ProjectNotFoundError: If no such project exists.
        """
        ...

    # Outline --------------------------------------------------------------

    def create_chapter(
        self,
        project_id: str,
        title: str,
        source_id: str | None = None,
        position: int | None = None,
        is_part: bool = False,
    ) -> Chapter: ...

    def create_scene(
        self,
        chapter_id: str,
        title: str,
        synopsis: str | None = None,
        source_id: str | None = None,
        position: int | None = None,
    ) -> Scene: ...

    def create_beat(
        self,
        scene_id: str,
        content: str,
        source_id: str | None = None,
        position: int | None = None,
    ) -> Beat: ...

    def update_chapter(self, chapter_id: str, field_updates: dict[str, Any]) -> Chapter: ...

    def update_scene(self, scene_id: str, field_updates: dict[str, Any]) -> Scene: ...

    def update_beat(self, beat_id: str, field_updates: dict[str, Any]) -> Beat: ...

    # References -----------------------------------------------------------

    def create_reference(
        self,
        project_id: str,
        kind: ReferenceKind,
        name: str,
        attributes: dict[str, str] | None = None,
        source_id: str | None = None,
    ) -> Reference: ...

    def list_references(self, project_id: str) -> list[Reference]: ...

    def link_scene_reference(self, scene_id: str, reference_id: str) -> None: ...

    def scene_reference_ids(self, scene_id: str) -> list[str]: ...

    # Writer path ----------------------------------------------------------

    def set_scene_prose(self, scene_id: str, prose: str | None) -> Scene: ...

    def set_beat_prose(self, beat_id: str, prose: str | None) -> Beat: ...

    def set_locked(self, kind: ItemKind, item_id: str, locked: bool) -> None: ...

    def set_archived(self, kind: ItemKind, item_id: str, archived: bool) -> None: ...

    # Transactions ---------------------------------------------------------

    def transaction(self) -> AbstractContextManager[Any]:
        """All writes inside the block commit together or not at all."""
        ...
