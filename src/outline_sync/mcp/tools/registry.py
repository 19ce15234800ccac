"""ToolSpec and ToolRegistry for read-only filtering and dispatch.

This module provides a centralized registry for MCP tools.  An operator can
start the server read-only, which hides every tool that writes to the
project store.

Key concepts:
- ToolContext: What every handler receives: the ``OutlineSync`` service and
  the cache of previews awaiting approval.
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  writes, and an async handler with signature (context, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import mcp.types as types

from ...errors import OutlineSyncError
from ...sync.engine import OutlineSync
from ...sync.models import SyncPreview

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Shared state handed to tool handlers.

    Attributes:
        service: The import/reimport service.
        previews: Last preview per project id, kept until it is applied.
    """

    service: OutlineSync
    previews: dict[str, SyncPreview] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable definition of a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        writes: True when the tool writes to the project store.
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    writes: bool
    handler: Callable[[ToolContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs, optionally restricted to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if not (read_only and spec.writes):
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: ToolContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Package errors, validation errors and unexpected exceptions are
        translated into structured CallToolResult responses with corrective
        actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            context: Shared handler context.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_outline_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(context, args)
        except OutlineSyncError as e:
            logger.warning("%s failed: %s", name, e)
            return translate_outline_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Retry later or check the server log.",
            )
