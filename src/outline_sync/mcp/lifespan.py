"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import StoreConfig, build_config
from ..core.async_utils import init_semaphore
from ..store import ProjectLocks, create_repository
from ..sync.engine import OutlineSync

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def build_service(config: Config) -> OutlineSync:
    """Create the repository and the ``OutlineSync`` service for *config*."""
    repository = create_repository(
        StoreConfig(backend=config.backend, state_dir=config.state_dir)  # type: ignore[arg-type]
    )
    return OutlineSync(
        repository,
        locks=ProjectLocks(),
        lock_timeout=config.lock_timeout,
        title_width=config.preview_title_width,
    )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Open the project store and build the OutlineSync service
    - Fail fast if the store cannot be opened

    On shutdown:
    - Log shutdown message

    Args:
        config_overrides: Optional dict with config values from CLI (state_dir, backend, debug)

    Yields:
        Dict with 'service' key containing the OutlineSync service

    Raises:
        RuntimeError: If configuration is invalid or the store cannot be opened.
    """
    logger.info("MCP server starting...")
    _stderr_print("Outline Sync MCP Server starting...")

    try:
        # .env first, so ${VAR} interpolation in YAML can use .env values
        load_dotenv()

        unified = None
        sources = []
        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            state_dir=overrides.get("state_dir"),
            backend=overrides.get("backend"),
            debug=overrides.get("debug", False),
            yaml_config=unified,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        service = build_service(config)
    except (OSError, KeyError, ValueError) as e:
        logger.error("Failed to open project store: %s", e)
        raise RuntimeError(f"Failed to open project store: {e}") from e

    project_count = len(service.repository.list_projects())
    logger.info(
        "Store ready: backend=%s state_dir=%s projects=%d",
        config.backend,
        config.state_dir,
        project_count,
    )
    _stderr_print(f"  Store: {config.backend} ({config.state_dir}), {project_count} project(s)")
    init_semaphore(config.max_parallel_imports)
    _stderr_print(f"  Parallel imports: {config.max_parallel_imports}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"service": service}

    logger.info("MCP server shutting down")
    _stderr_print("Outline Sync MCP Server shutting down.")
