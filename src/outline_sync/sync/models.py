"""Pydantic models for the reimport sync engine.

Defines the data contracts shared by the differ, merger, engine and
reporter:

- ``ItemKind`` / ``ChangeField``: Enums of outline levels and diffable fields.
- ``SyncAddition``: A parsed node with no persisted counterpart.
- ``SyncChange``: One differing field of a matched node.
- ``IdentityAmbiguity``: A fallback match the resolver refused to guess.
- ``SyncPreview``: Everything one reimport would write.
- ``Approval``: The subset of a preview the writer accepted.
- ``ReimportSummary``: What an apply actually wrote.
- ``ImportResult``: Outcome of a first import.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from ..models import ItemKind, Project, SourceFormat


class ChangeField(str, Enum):
    """Fields a reimport may rewrite.  Prose is deliberately absent."""

    TITLE = "title"
    SYNOPSIS = "synopsis"
    CONTENT = "content"


class SyncAddition(BaseModel):
    """A parsed node that will be created on apply.

    Exactly one of ``parent_id`` (an existing persisted parent) and
    ``parent_addition_id`` (another addition of the same preview) is set,
    except for chapters, whose parent is the project itself.

    Attributes:
        id: Stable addition id, ``<kind>-<source_id>`` or a path key.
        kind: Outline level of the new node.
        title: Display title (beat content truncated for beats).
        parent_title: Display title of the parent, for review.
        parent_id: Persisted parent id.
        parent_addition_id: Id of the parent addition.
        source_id: Native id from the source, if any.
        synopsis: Scene synopsis payload.
        content: Beat content payload.
        is_part: Chapter part flag payload.
    """

    id: str
    kind: ItemKind
    title: str
    parent_title: str | None = None
    parent_id: str | None = None
    parent_addition_id: str | None = None
    source_id: str | None = None
    synopsis: str | None = None
    content: str | None = None
    is_part: bool = False

    model_config = {"frozen": True}


class SyncChange(BaseModel):
    """One field of a matched persisted node whose value differs.

    Attributes:
        id: Stable change id, ``<kind>-<field>-<target_id>``.
        kind: Outline level of the target.
        field: The differing field.
        item_title: Display title of the target.
        current_value: Persisted value.
        new_value: Value from the fresh parse.
        target_id: Persisted id the change writes to.
    """

    id: str
    kind: ItemKind
    field: ChangeField
    item_title: str
    current_value: str | None = None
    new_value: str | None = None
    target_id: str

    model_config = {"frozen": True}


class IdentityAmbiguity(BaseModel):
    """A fallback identity decision that the writer should look at.

    Attributes:
        kind: Outline level.
        title: Title (or beat content) of the parsed node.
        parent_title: Display title of the scope the node was matched in.
        position: Ordinal position of the parsed node in its scope.
        candidate_ids: Persisted ids that could be the same node.
        matched_id: The id that was matched, or ``None`` when the node was
            treated as new.
        reason: Human-readable explanation.
    """

    kind: ItemKind
    title: str
    parent_title: str | None = None
    position: int
    candidate_ids: list[str] = Field(default_factory=list)
    matched_id: str | None = None
    reason: str

    model_config = {"frozen": True}


class SyncPreview(BaseModel):
    """The proposed additions and changes of one reimport attempt.

    Attributes:
        base_revision: Project revision the diff was computed against.  An
            apply is refused once the project has moved past it.
    """

    project_id: str
    base_revision: int | None = None
    source_path: str | None = None
    source_format: SourceFormat
    source_hash: str | None = None
    generated_at: str
    additions: list[SyncAddition] = Field(default_factory=list)
    changes: list[SyncChange] = Field(default_factory=list)
    ambiguities: list[IdentityAmbiguity] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        """True when nothing would be written."""
        return not self.additions and not self.changes

    @property
    def addition_ids(self) -> list[str]:
        return [a.id for a in self.additions]

    @property
    def change_ids(self) -> list[str]:
        return [c.id for c in self.changes]


class Approval(BaseModel):
    """The subset of a preview the writer accepted."""

    change_ids: frozenset[str] = frozenset()
    addition_ids: frozenset[str] = frozenset()

    model_config = {"frozen": True}

    @classmethod
    def all(cls, preview: SyncPreview) -> Approval:
        """Approve every addition and change of *preview*."""
        return cls(
            change_ids=frozenset(preview.change_ids),
            addition_ids=frozenset(preview.addition_ids),
        )

    @classmethod
    def select(cls, preview: SyncPreview, ids: list[str]) -> Approval:
        """Approve the preview items whose id is in *ids*.

        Raises:
            ValueError: If an id names nothing in the preview.
        """
        wanted = set(ids)
        unknown = wanted - set(preview.change_ids) - set(preview.addition_ids)
        if unknown:
            raise ValueError(
                f"Unknown preview item id(s): {sorted(unknown)}"
            )
        return cls(
            change_ids=frozenset(wanted & set(preview.change_ids)),
            addition_ids=frozenset(wanted & set(preview.addition_ids)),
        )


class ReimportSummary(BaseModel):
    """Counts of what an apply wrote.

    Attributes:
        prose_preserved: Distinct beats with existing prose that the apply
            touched (their content, or their scene or chapter) while leaving
            the prose as it was.
        additions_skipped: Approved additions whose parent was neither
            persisted nor approved.
    """

    chapters_added: int = 0
    scenes_added: int = 0
    beats_added: int = 0
    chapters_updated: int = 0
    scenes_updated: int = 0
    beats_updated: int = 0
    prose_preserved: int = 0
    additions_skipped: int = 0

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        """True when the apply wrote nothing."""
        return not (
            self.chapters_added
            or self.scenes_added
            or self.beats_added
            or self.chapters_updated
            or self.scenes_updated
            or self.beats_updated
        )


class ImportResult(BaseModel):
    """Outcome of a first import."""

    project: Project
    chapters: int = 0
    scenes: int = 0
    beats: int = 0
    references: int = 0
    scene_references: int = 0

    model_config = {"frozen": True}
