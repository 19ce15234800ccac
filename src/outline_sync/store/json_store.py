"""Durable repository: the in-memory store persisted as JSON documents.

Each project lives in its own ``<state_dir>/<project_id>.json`` file holding
the project row and every chapter, scene, beat, reference and scene
reference below it.

Key design choices:

* **Atomic writes** -- documents are written to a temp file in the same
  directory and moved into place with ``os.replace()``, so readers never
  see partial data.
* **Commit-time persistence** -- only projects touched by a transaction are
  written, once, when the outermost transaction commits.  A failed write
  rolls the in-memory tables back like any other failure.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..models import Beat, Chapter, Project, Reference, Scene
from .memory import MemoryRepository

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


class JsonRepository(MemoryRepository):
    """Repository persisted as one JSON document per project.

    Args:
        state_dir: Directory holding the project documents.  Created on
            first write if missing.
    """

    def __init__(self, state_dir: Path | str) -> None:
        super().__init__()
        self._state_dir = Path(state_dir).expanduser()
        self._load_all()

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_all(self) -> None:
        if not self._state_dir.is_dir():
            return
        for path in sorted(self._state_dir.glob("*.json")):
            with open(path, encoding="utf-8") as fh:
                document = json.load(fh)
            self._load_document(document)
            logger.debug("Loaded project document %s", path.name)

    def _load_document(self, document: dict[str, Any]) -> None:
        project = Project.model_validate(document["project"])
        self.projects[project.id] = project
        self.revisions[project.id] = document.get("revision", 0)
        for row in document.get("chapters", []):
            chapter = Chapter.model_validate(row)
            self.chapters[chapter.id] = chapter
        for row in document.get("scenes", []):
            scene = Scene.model_validate(row)
            self.scenes[scene.id] = scene
        for row in document.get("beats", []):
            beat = Beat.model_validate(row)
            self.beats[beat.id] = beat
        for row in document.get("references", []):
            reference = Reference.model_validate(row)
            self.references[reference.id] = reference
        for scene_id, reference_id in document.get("scene_references", []):
            self.scene_references.add((scene_id, reference_id))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _document(self, project_id: str) -> dict[str, Any]:
        chapters = [c for c in self.chapters.values() if c.project_id == project_id]
        chapter_ids = {c.id for c in chapters}
        scenes = [s for s in self.scenes.values() if s.chapter_id in chapter_ids]
        scene_ids = {s.id for s in scenes}
        beats = [b for b in self.beats.values() if b.scene_id in scene_ids]
        return {
            "version": DOCUMENT_VERSION,
            "revision": self.revisions.get(project_id, 0),
            "project": self.projects[project_id].model_dump(mode="json"),
            "chapters": [c.model_dump(mode="json") for c in chapters],
            "scenes": [s.model_dump(mode="json") for s in scenes],
            "beats": [b.model_dump(mode="json") for b in beats],
            "references": [
                r.model_dump(mode="json")
                for r in self.references.values()
                if r.project_id == project_id
            ],
            "scene_references": sorted(
                [scene_id, ref_id]
                for scene_id, ref_id in self.scene_references
                if scene_id in scene_ids
            ),
        }

    def _commit(self, project_ids: set[str]) -> None:
        for project_id in sorted(project_ids):
            if project_id in self.projects:
                self._save(project_id, self._document(project_id))

    def _save(self, project_id: str, document: dict[str, Any]) -> None:
        """Write one project document atomically."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        target = self._state_dir / f"{project_id}.json"
        fd, tmp_path = tempfile.mkstemp(dir=str(self._state_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, target)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
