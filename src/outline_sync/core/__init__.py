"""Core helpers shared between the CLI and the MCP server."""

from .async_utils import init_semaphore, run_sync, run_sync_limited, run_sync_shielded

__all__ = ["init_semaphore", "run_sync", "run_sync_limited", "run_sync_shielded"]
