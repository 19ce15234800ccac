"""Per-project locks serialising imports and reimports.

One ``threading.Lock`` per project id, created on first use.  Operations on
different projects never contend; a second operation on the same project
waits up to its timeout and then fails with ``ProjectBusyError``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ..errors import ProjectBusyError

logger = logging.getLogger(__name__)


class ProjectLocks:
    """Registry of per-project locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, project_id: str) -> threading.Lock:
        """Return the lock of *project_id*, creating it on demand."""
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = self._locks[project_id] = threading.Lock()
            return lock

    def is_locked(self, project_id: str) -> bool:
        return self.get(project_id).locked()

    @contextmanager
    def hold(self, project_id: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the project's lock for the duration of the block.

        Args:
            project_id: Project to lock.
            timeout: Seconds to wait; ``None`` waits forever.

        Raises:
            ProjectBusyError: If the lock was not acquired in time.
        """
        lock = self.get(project_id)
        acquired = lock.acquire() if timeout is None else lock.acquire(timeout=timeout)
        if not acquired:
            logger.warning("Project %s busy after %ss", project_id, timeout)
            raise ProjectBusyError(project_id, timeout or 0.0)
        try:
            yield
        finally:
            lock.release()
