"""MCP tool handlers for outline import and reimport.

This package wraps the ``OutlineSync`` service with async handlers and
structured error responses.
"""

from .errors import build_error_response, translate_outline_error
from .outline import OUTLINE_SPECS, OUTLINE_TOOLS
from .registry import ToolContext, ToolRegistry, ToolSpec

ALL_SPECS: list[ToolSpec] = list(OUTLINE_SPECS)

__all__ = [
    "build_error_response",
    "translate_outline_error",
    # Registry
    "ToolContext",
    "ToolSpec",
    "ToolRegistry",
    # Tool lists
    "ALL_SPECS",
    "OUTLINE_SPECS",
    "OUTLINE_TOOLS",
]
