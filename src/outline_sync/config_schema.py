"""Unified configuration schema for outline_sync.

Pydantic models for the YAML config structure, with one section each for
storage, reimport behaviour and logging.

Usage:
    from outline_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".outline_sync/projects"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Where imported projects are kept.

    Attributes:
        backend: ``json`` persists one document per project under
            *state_dir*; ``memory`` keeps everything in-process.
        state_dir: Directory of the JSON documents.
    """

    backend: Literal["json", "memory"] = Field(
        default="json", description="Repository backend"
    )
    state_dir: str = Field(
        default=DEFAULT_STATE_DIR,
        description="Directory holding project documents",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Reimport behaviour."""

    lock_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a project busy with another import",
    )
    max_parallel_imports: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Maximum concurrent parses in the MCP server (1-32)",
    )
    preview_title_width: int = Field(
        default=50,
        ge=10,
        le=500,
        description="Truncation width of beat titles in previews",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; null sections are treated as missing.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.

    Raises:
        pydantic.ValidationError: If a section holds invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    sections = {k: v for k, v in raw_data.items() if v is not None}
    return UnifiedConfig(**sections)
