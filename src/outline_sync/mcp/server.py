"""MCP server for outline import and reimport using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents import outlines from planning tools and keep them in sync.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from ..version import check_version_consistency
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolContext, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("outline-sync")

# Global handler context (initialized in lifespan)
_context: ToolContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(ctx: ToolContext, args: dict) -> types.CallToolResult:
    """Handle ping tool -- report version and store status."""
    projects = ctx.service.repository.list_projects()
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    f"Outline Sync MCP server {__version__} ready. "
                    f"{len(projects)} project(s) in store."
                ),
            )
        ],
        structuredContent={"version": __version__, "projects": len(projects)},
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test Outline Sync MCP server availability and return its version",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    writes=False,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ToolContext:
    """Get the global ToolContext instance.

    Raises:
        RuntimeError: If context is not initialized
    """
    if _context is None:
        raise RuntimeError("ToolContext not initialized. Server lifespan not started.")
    return _context


def set_context(context: ToolContext | None) -> None:
    """Set the global ToolContext instance, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available outline tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(name: str, arguments: dict | None) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(read_only: bool = False) -> ToolRegistry:
    """Build the registry of every tool, hiding write tools when *read_only*."""
    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)%s",
        registry.tool_count(),
        len(all_specs),
        " in read-only mode" if read_only else "",
    )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), opens the store
    via the lifespan manager, and serves over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (state_dir, backend, debug, log_file, read_only)
    """
    overrides = config_overrides or {}

    # Must run BEFORE stdio_server so nothing reaches stdout during negotiation
    setup_logging(mode="mcp", debug=overrides.get("debug", False), log_file=overrides.get("log_file"))

    is_consistent, message = check_version_consistency()
    if not is_consistent:
        logger.warning(message)
        sys.stderr.write(f"Warning: {message}\n")
    else:
        logger.info(message)

    read_only = bool(overrides.get("read_only", False))
    registry = build_registry(read_only)
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # The context is installed here rather than in the lifespan so that
    # running as ``python -m outline_sync.mcp.server`` sets the globals of
    # __main__ and not of a second import of this module.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ToolContext(service=ctx["service"]))
        try:
            async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
                init_options = InitializationOptions(
                    server_name="outline-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Outline Sync MCP Server - import and reimport story outlines over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .outline_sync/config.yml)
  outline-sync-mcp

  # Keep projects in a specific directory
  outline-sync-mcp --state-dir ~/novels/.outline_sync

  # Expose only the read-only tools
  outline-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--state-dir",
        help="Directory of project documents (overrides OUTLINE_SYNC_STATE_DIR and config files)",
    )
    parser.add_argument(
        "--backend",
        choices=["json", "memory"],
        help="Project store backend (overrides OUTLINE_SYNC_BACKEND and config files)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_MCP_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_MCP_LOG_FILE})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Hide tools that write to the project store",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"outline-sync-mcp version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Build the config overrides dict from parsed CLI args."""
    config_overrides: dict = {}
    if args.state_dir:
        config_overrides["state_dir"] = args.state_dir
    if args.backend:
        config_overrides["backend"] = args.backend
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.debug:
        config_overrides["debug"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    return config_overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    config_overrides = overrides_from_args(args)

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
