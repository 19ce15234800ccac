"""Persistence behind the ``ProjectRepository`` interface."""

from __future__ import annotations

from typing import Any

from .json_store import JsonRepository
from .locks import ProjectLocks
from .memory import MemoryRepository
from .repository import ProjectRepository

_BACKEND_MAP: dict[str, type] = {
    "memory": MemoryRepository,
    "json": JsonRepository,
}


def create_repository(store_config: Any) -> ProjectRepository:
    """Create the repository selected by a ``StoreConfig``.

    Args:
        store_config: Object with ``backend`` and ``state_dir`` attributes.

    Returns:
        A ``ProjectRepository`` implementation instance.

    Raises:
        ValueError: If the backend name is not recognised.
    """
    backend = store_config.backend
    cls = _BACKEND_MAP.get(backend)
    if cls is None:
        raise ValueError(
            f"Unknown store backend: '{backend}'. Valid backends: {sorted(_BACKEND_MAP.keys())}"
        )
    if cls is JsonRepository:
        return JsonRepository(store_config.state_dir)
    return cls()  # type: ignore[return-value]


__all__ = [
    "JsonRepository",
    "MemoryRepository",
    "ProjectLocks",
    "ProjectRepository",
    "create_repository",
]
