"""Pydantic models for the canonical import document and persisted outline.

Two families live here:

- The **canonical import document** (``ParsedProject`` and friends) is what
  every format parser produces.  It is transient: built fresh on each parse
  and never stored.
- The **persisted entities** (``Project``, ``Chapter``, ``Scene``,
  ``Beat``, ``Reference``) are the repository's rows.  ``prose`` on scenes
  and beats is owned by the writer; nothing in the sync path writes it.

``source_id`` is an explicit optional everywhere.  Formats without native
identifiers (the plain Markdown outline) leave it ``None`` and the identity
resolver falls back to title and position matching.

All models are frozen; repositories hand out updated copies via
``model_copy(update=...)``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SourceFormat(str, Enum):
    """Supported external outline formats."""

    PLOTTR = "plottr"
    MARKDOWN = "markdown"
    SCRIVENER = "scrivener"
    YWRITER = "ywriter"
    LONGFORM = "longform"


class ItemKind(str, Enum):
    """Outline levels below a project."""

    CHAPTER = "chapter"
    SCENE = "scene"
    BEAT = "beat"


class ReferenceKind(str, Enum):
    """Kinds of flat reference entities attached to a project."""

    CHARACTER = "character"
    LOCATION = "location"


# ---------------------------------------------------------------------------
# Canonical import document
# ---------------------------------------------------------------------------


class ParsedBeat(BaseModel):
    """Smallest outline unit: outline text only, never prose."""

    content: str
    source_id: str | None = None

    model_config = {"frozen": True}


class ParsedScene(BaseModel):
    """A scene with its optional synopsis and ordered beats."""

    title: str
    synopsis: str | None = None
    source_id: str | None = None
    beats: list[ParsedBeat] = Field(default_factory=list)

    model_config = {"frozen": True}


class ParsedChapter(BaseModel):
    """A chapter (or part, for formats that mark parts) with ordered scenes."""

    title: str
    source_id: str | None = None
    is_part: bool = False
    scenes: list[ParsedScene] = Field(default_factory=list)

    model_config = {"frozen": True}


class ParsedReference(BaseModel):
    """A flat reference entity such as a character or a location.

    Attributes:
        kind: Character or location.
        name: Display name.
        attributes: Free-form attribute map (description, notes, custom
            fields), values flattened to plain text.
        source_id: Native identifier in the source file, if any.
    """

    kind: ReferenceKind
    name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    source_id: str | None = None

    model_config = {"frozen": True}


class ParsedSceneReference(BaseModel):
    """Link from a scene to a reference entity, both by native id."""

    scene_source_id: str
    reference_source_id: str
    kind: ReferenceKind

    model_config = {"frozen": True}


class ParsedProject(BaseModel):
    """Root of the canonical import document."""

    name: str
    source_format: SourceFormat
    author: str | None = None
    description: str | None = None
    word_target: int | None = None
    chapters: list[ParsedChapter] = Field(default_factory=list)
    references: list[ParsedReference] = Field(default_factory=list)
    scene_references: list[ParsedSceneReference] = Field(
        default_factory=list
    )

    model_config = {"frozen": True}

    def counts(self) -> dict[str, int]:
        """Return chapter, scene and beat totals."""
        scenes = [s for c in self.chapters for s in c.scenes]
        return {
            "chapters": len(self.chapters),
            "scenes": len(scenes),
            "beats": sum(len(s.beats) for s in scenes),
        }


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


class Project(BaseModel):
    """A project imported from an external source file.

    Attributes:
        source_hash: Normalised SHA-256 of the source at the last import or
            applied reimport.
        last_synced: ISO 8601 timestamp of the last import or apply.
    """

    id: str
    name: str
    source_format: SourceFormat
    source_path: str | None = None
    author: str | None = None
    description: str | None = None
    word_target: int | None = None
    source_hash: str | None = None
    created_at: str
    modified_at: str
    last_synced: str | None = None

    model_config = {"frozen": True}


class Chapter(BaseModel):
    id: str
    project_id: str
    title: str
    position: int
    source_id: str | None = None
    archived: bool = False
    locked: bool = False
    is_part: bool = False

    model_config = {"frozen": True}


class Scene(BaseModel):
    id: str
    chapter_id: str
    title: str
    synopsis: str | None = None
    prose: str | None = None
    position: int
    source_id: str | None = None
    archived: bool = False
    locked: bool = False

    model_config = {"frozen": True}


class Beat(BaseModel):
    id: str
    scene_id: str
    content: str
    prose: str | None = None
    position: int
    source_id: str | None = None

    model_config = {"frozen": True}


class Reference(BaseModel):
    id: str
    project_id: str
    kind: ReferenceKind
    name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    source_id: str | None = None

    model_config = {"frozen": True}


class ProjectTree(BaseModel):
    """Read snapshot of a persisted project, children ordered by position.

    Attributes:
        project: The project row.
        chapters: Chapters sorted by position.
        scenes: Scenes keyed by chapter id, each list sorted by position.
        beats: Beats keyed by scene id, each list sorted by position.
        revision: Committed transactions that touched the project so far.
    """

    project: Project
    chapters: list[Chapter] = Field(default_factory=list)
    scenes: dict[str, list[Scene]] = Field(default_factory=dict)
    beats: dict[str, list[Beat]] = Field(default_factory=dict)
    revision: int = 0

    model_config = {"frozen": True}

    def scenes_of(self, chapter_id: str) -> list[Scene]:
        """Scenes of *chapter_id* in position order."""
        return self.scenes.get(chapter_id, [])

    def beats_of(self, scene_id: str) -> list[Beat]:
        """Beats of *scene_id* in position order."""
        return self.beats.get(scene_id, [])

    def find_beat(self, beat_id: str) -> Beat | None:
        for beats in self.beats.values():
            for beat in beats:
                if beat.id == beat_id:
                    return beat
        return None
