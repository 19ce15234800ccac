"""Import and reimport service tying parsers, differ and merger together.

``OutlineSync`` is the one entry point the CLI and the MCP tools use.  It:

1. Imports a source file once, materialising it one-to-one as a project.
2. Re-parses the project's source and diffs it into a ``SyncPreview``.
3. Applies an approved subset of a preview and records the source
   fingerprint on the project.

Key design choices:

* **Explicit project** -- every operation takes the project id as an
  argument; there is no ambient "current project".
* **Per-project lock** -- preview and apply each hold the project's lock
  from ``ProjectLocks``.  A second operation on the same project waits up to
  ``lock_timeout`` seconds and then fails with ``ProjectBusyError``.
  Different projects never contend.
* **Source check first** -- a reimport whose source file is gone fails
  with ``SourceMissingError`` before any parsing starts.
* **One apply per preview** -- a preview carries the project revision it
  was diffed against.  Apply checks it under the lock and raises
  ``StalePreviewError`` if anything was committed to the project since,
  so a preview applied twice cannot duplicate its additions.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from ..core.async_utils import run_sync_limited, run_sync_shielded
from ..errors import ApplyError, SourceMissingError, StalePreviewError
from ..file_handler import source_fingerprint, validate_source_path
from ..models import ParsedProject, Project, SourceFormat
from ..parsers import parse_source
from ..store.locks import ProjectLocks
from ..store.repository import ProjectRepository
from . import merger
from .differ import DEFAULT_TITLE_WIDTH, diff
from .models import Approval, ImportResult, ReimportSummary, SyncPreview

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 30.0


class OutlineSync:
    """Import, preview and apply outline syncs against one repository.

    Args:
        repository: Storage for projects and their outlines.
        locks: Per-project lock registry; a private one is created when
            omitted.  Share one registry between services that write the
            same repository.
        lock_timeout: Seconds to wait for a project's lock.
        title_width: Truncation width of beat titles in previews.
    """

    def __init__(
        self,
        repository: ProjectRepository,
        locks: ProjectLocks | None = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        title_width: int = DEFAULT_TITLE_WIDTH,
    ) -> None:
        self.repository = repository
        self.locks = locks if locks is not None else ProjectLocks()
        self.lock_timeout = lock_timeout
        self.title_width = title_width

    # ------------------------------------------------------------------
    # First import
    # ------------------------------------------------------------------

    def import_project(
        self,
        path: str | os.PathLike,
        fmt: SourceFormat | str | None = None,
    ) -> ImportResult:
        """Parse *path* and create a new project from it.

        Every chapter, scene, beat, reference and scene reference of the
        source is created with its native ``source_id``, in source order, in
        one transaction.

        Args:
            path: Source file or package directory.
            fmt: Explicit source format; detected from the path when omitted.

        Returns:
            The new project and the number of entities created.

        Raises:
            ParseError: If the source cannot be parsed.  Nothing is created.
        """
        resolved = validate_source_path(path)
        parsed = parse_source(resolved, fmt)
        fingerprint = source_fingerprint(resolved)
        result = self._materialise(parsed, str(resolved), fingerprint)
        logger.info(
            "Imported %s as project %s: %d chapter(s), %d scene(s), %d beat(s)",
            resolved,
            result.project.id,
            result.chapters,
            result.scenes,
            result.beats,
        )
        return result

    def _materialise(
        self, parsed: ParsedProject, source_path: str, fingerprint: str
    ) -> ImportResult:
        repo = self.repository
        counts = {"chapters": 0, "scenes": 0, "beats": 0, "links": 0}
        scene_ids: dict[str, str] = {}
        reference_ids: dict[str, str] = {}

        with repo.transaction():
            project = repo.create_project(
                parsed.name,
                parsed.source_format,
                source_path=source_path,
                author=parsed.author,
                description=parsed.description,
                word_target=parsed.word_target,
                source_hash=fingerprint,
            )
            for chapter_node in parsed.chapters:
                chapter = repo.create_chapter(
                    project.id,
                    chapter_node.title,
                    source_id=chapter_node.source_id,
                    is_part=chapter_node.is_part,
                )
                counts["chapters"] += 1
                for scene_node in chapter_node.scenes:
                    scene = repo.create_scene(
                        chapter.id,
                        scene_node.title,
                        synopsis=scene_node.synopsis,
                        source_id=scene_node.source_id,
                    )
                    counts["scenes"] += 1
                    if scene_node.source_id is not None:
                        scene_ids[scene_node.source_id] = scene.id
                    for beat_node in scene_node.beats:
                        repo.create_beat(
                            scene.id,
                            beat_node.content,
                            source_id=beat_node.source_id,
                        )
                        counts["beats"] += 1

            for ref_node in parsed.references:
                reference = repo.create_reference(
                    project.id,
                    ref_node.kind,
                    ref_node.name,
                    attributes=ref_node.attributes,
                    source_id=ref_node.source_id,
                )
                if ref_node.source_id is not None:
                    reference_ids[ref_node.source_id] = reference.id

            for link in parsed.scene_references:
                scene_id = scene_ids.get(link.scene_source_id)
                reference_id = reference_ids.get(link.reference_source_id)
                if scene_id is None or reference_id is None:
                    logger.debug(
                        "Dropping scene reference %s -> %s: endpoint not imported",
                        link.scene_source_id,
                        link.reference_source_id,
                    )
                    continue
                repo.link_scene_reference(scene_id, reference_id)
                counts["links"] += 1

        return ImportResult(
            project=project,
            chapters=counts["chapters"],
            scenes=counts["scenes"],
            beats=counts["beats"],
            references=len(parsed.references),
            scene_references=counts["links"],
        )

    # ------------------------------------------------------------------
    # Reimport
    # ------------------------------------------------------------------

    def _source_path(self, project: Project, path: str | os.PathLike | None) -> Path:
        """Return the path to reimport from, checking that it still exists."""
        project_id = project.id
        source = str(path) if path is not None else project.source_path
        if not source:
            raise SourceMissingError(project_id, None)
        resolved = Path(source).expanduser()
        if not resolved.exists():
            logger.warning("Source of project %s is gone: %s", project_id, source)
            raise SourceMissingError(project_id, source)
        return resolved

    def parse_and_preview(
        self, project_id: str, path: str | os.PathLike | None = None
    ) -> SyncPreview:
        """Re-parse a project's source and diff it against the store.

        Nothing is written.

        Args:
            project_id: Project to reimport.
            path: Source to read instead of the project's recorded one
                (for a moved file).

        Returns:
            The proposed additions, changes and ambiguities.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            SourceMissingError: If the source file no longer exists.
            ParseError: If the source cannot be parsed.
            ProjectBusyError: If the project's lock is not free in time.
        """
        with self.locks.hold(project_id, self.lock_timeout):
            project = self.repository.get_project(project_id)
            source = self._source_path(project, path)
            parsed = parse_source(source, project.source_format)
            fingerprint = source_fingerprint(source.resolve())
            tree = self.repository.get_project_tree(project_id)
            preview = diff(
                parsed,
                tree,
                source_path=str(source.resolve()),
                source_hash=fingerprint,
                title_width=self.title_width,
            )
        logger.info(
            "Preview for project %s: %d addition(s), %d change(s), %d ambiguity(ies)",
            project_id,
            len(preview.additions),
            len(preview.changes),
            len(preview.ambiguities),
        )
        return preview

    def apply_preview(
        self, preview: SyncPreview, approved: Approval | None = None
    ) -> ReimportSummary:
        """Write the approved part of *preview* and record the sync.

        The project's ``source_hash``, ``source_path`` and ``last_synced``
        are updated in the same transaction as the outline writes.

        Args:
            preview: Preview returned by ``parse_and_preview``.
            approved: Accepted subset; everything when omitted.

        Returns:
            Counts of what was written.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            ApplyError: If any write fails; nothing is committed.
            StalePreviewError: If the project was written to after the preview
                was computed, for example by an earlier apply of the same
                preview.  Nothing is written.
            ProjectBusyError: If the project's lock is not free in time.
        """
        if approved is None:
            approved = Approval.all(preview)
        project_id = preview.project_id

        with self.locks.hold(project_id, self.lock_timeout):
            revision = self.repository.get_revision(project_id)
            if preview.base_revision != revision:
                logger.warning(
                    "Refusing stale preview for project %s (revision %s, now %d)",
                    project_id,
                    preview.base_revision,
                    revision,
                )
                raise StalePreviewError(project_id, preview.base_revision, revision)
            try:
                with self.repository.transaction():
                    summary = merger.apply_preview(self.repository, preview, approved)
                    update: dict[str, str | None] = {
                        "last_synced": datetime.now(timezone.utc).isoformat(),
                    }
                    if preview.source_hash is not None:
                        update["source_hash"] = preview.source_hash
                    if preview.source_path is not None:
                        update["source_path"] = preview.source_path
                    self.repository.update_project(project_id, update)
            except ApplyError:
                raise
            except Exception as exc:
                logger.error("Recording sync of project %s failed: %s", project_id, exc)
                raise ApplyError(
                    f"Apply for project {project_id} failed and was rolled back: {exc}"
                ) from exc

        logger.info(
            "Applied preview to project %s: %s",
            project_id,
            summary.model_dump(),
        )
        return summary

    def reimport(
        self, project_id: str, path: str | os.PathLike | None = None
    ) -> tuple[SyncPreview, ReimportSummary]:
        """Preview and apply every proposed addition and change."""
        preview = self.parse_and_preview(project_id, path)
        return preview, self.apply_preview(preview)

    # ------------------------------------------------------------------
    # Async wrappers
    # ------------------------------------------------------------------

    async def import_project_async(
        self, path: str | os.PathLike, fmt: SourceFormat | str | None = None
    ) -> ImportResult:
        """``import_project`` in a worker thread; not cancellable mid-write."""
        return await run_sync_shielded(self.import_project, path, fmt)

    async def parse_and_preview_async(
        self, project_id: str, path: str | os.PathLike | None = None
    ) -> SyncPreview:
        """``parse_and_preview`` in a worker thread, bounded by the parse semaphore.

        Cancelling the caller abandons the preview; nothing was written.
        """
        return await run_sync_limited(self.parse_and_preview, project_id, path)

    async def apply_preview_async(
        self, preview: SyncPreview, approved: Approval | None = None
    ) -> ReimportSummary:
        """``apply_preview`` in a worker thread.

        A cancellation arriving mid-apply is deferred until the transaction
        has committed or rolled back.
        """
        return await run_sync_shielded(self.apply_preview, preview, approved)
