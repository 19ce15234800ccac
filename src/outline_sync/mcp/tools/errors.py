"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an AI agent can
recover without human intervention.  ``translate_outline_error`` maps the
package's exception taxonomy onto those responses.
"""

import mcp.types as types

from ...errors import (
    ApplyError,
    OutlineSyncError,
    ParseError,
    ProjectBusyError,
    ProjectNotFoundError,
    SourceMissingError,
    StalePreviewError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, parse_error, source_missing,
            busy, stale_preview, apply_failed, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Project not found: p1", "Use outline_projects to list projects.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_outline_error(error: OutlineSyncError) -> types.CallToolResult:
    """Translate a package exception to a structured error response.

    Args:
        error: Any ``OutlineSyncError``.

    Returns:
        CallToolResult with isError=True and corrective action
    """
    match error:
        case ProjectNotFoundError():
            return build_error_response(
                "not_found",
                str(error),
                "Use outline_projects to list imported projects.",
            )
        case SourceMissingError():
            return build_error_response(
                "source_missing",
                str(error),
                "Pass the file's new location as 'path', or restore the file.",
            )
        case ParseError():
            return build_error_response(
                "parse_error",
                f"{error} [{error.kind.value}]",
                "Fix the source file or pass the correct 'format', then retry.",
            )
        case ProjectBusyError():
            return build_error_response(
                "busy",
                str(error),
                "Another import of this project is running. Retry shortly.",
            )
        case StalePreviewError():
            return build_error_response(
                "stale_preview",
                str(error),
                "The project changed since this preview. Run outline_preview again.",
            )
        case ApplyError():
            return build_error_response(
                "apply_failed",
                str(error),
                "Nothing was written. Run outline_preview again, then retry the apply.",
            )
        case _:
            return build_error_response(
                "server_error", str(error), "Retry later or check the server log."
            )
