"""MCP tool handlers for outline import and reimport.

Defines five tools:

- ``outline_import`` -- import a source file as a new project.
- ``outline_preview`` -- re-parse a project's source and propose changes.
- ``outline_apply`` -- apply the pending preview, or an accepted subset.
- ``outline_reimport`` -- preview and apply everything in one call.
- ``outline_projects`` -- list imported projects.

A preview is kept per project until it is applied or replaced by a newer
one, so ``outline_apply`` only needs the project id and the accepted ids.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...errors import ProjectBusyError
from ...file_handler import validate_source_path
from ...models import SourceFormat
from ...sync.models import Approval
from ...sync.reporter import (
    format_reimport_summary,
    format_sync_preview,
    preview_to_json,
    summary_to_json,
)
from .errors import build_error_response
from .registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

_FORMATS = [f.value for f in SourceFormat]
_PROJECT_SUMMARY_FIELDS = {"id", "name", "source_format", "source_path", "last_synced"}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


_PROJECT_ID = {
    "type": "string",
    "description": "Project id returned by outline_import or outline_projects",
}
_SOURCE_PATH = {
    "type": "string",
    "description": (
        "Absolute path to the source file to read instead of the recorded one "
        "(use when the file moved)"
    ),
}

OUTLINE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="outline_import",
        description=(
            "Import an outline file (Plottr, Markdown, Scrivener, yWriter or "
            "Longform) as a new project with chapters, scenes and beats."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute path to the source file or .scriv package",
                },
                "format": {
                    "type": "string",
                    "enum": _FORMATS,
                    "description": "Source format; detected from the path when omitted",
                },
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="outline_preview",
        description=(
            "Re-parse a project's source file and list the additions and changes "
            "a reimport would make. Nothing is written. Prose is never touched."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "path": _SOURCE_PATH,
            },
            "required": ["project_id"],
        },
    ),
    types.Tool(
        name="outline_apply",
        description=(
            "Apply the pending preview of a project. Pass 'accept' with the ids "
            "of the additions and changes to write; everything is applied when "
            "omitted. Existing prose is preserved and nothing is deleted."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "accept": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Ids from outline_preview to apply",
                },
            },
            "required": ["project_id"],
        },
    ),
    types.Tool(
        name="outline_reimport",
        description=(
            "Re-parse a project's source file and apply every addition and change "
            "in one step. Existing prose is preserved and nothing is deleted."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "path": _SOURCE_PATH,
            },
            "required": ["project_id"],
        },
    ),
    types.Tool(
        name="outline_projects",
        description="List imported projects with their source file and last sync time.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not value or not isinstance(value, str):
        raise ValueError(f"{key} is required")
    return value


def _optional_path(args: dict[str, Any]) -> str | None:
    path = args.get("path")
    if path is None:
        return None
    return str(validate_source_path(path, require_absolute=True))


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_import(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    """Handle the ``outline_import`` tool."""
    path = validate_source_path(_require(args, "path"), require_absolute=True)
    fmt = args.get("format")

    result = await ctx.service.import_project_async(path, fmt)

    project = result.project
    text = (
        f"Imported '{project.name}' as project {project.id}\n"
        f"  Format:     {project.source_format.value}\n"
        f"  Chapters:   {result.chapters}\n"
        f"  Scenes:     {result.scenes}\n"
        f"  Beats:      {result.beats}\n"
        f"  References: {result.references}"
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result.model_dump(mode="json"),
    )


async def _handle_preview(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    """Handle the ``outline_preview`` tool."""
    project_id = _require(args, "project_id")
    preview = await ctx.service.parse_and_preview_async(project_id, _optional_path(args))
    ctx.previews[project_id] = preview

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_preview(preview))],
        structuredContent=preview_to_json(preview),
    )


async def _handle_apply(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    """Handle the ``outline_apply`` tool."""
    project_id = _require(args, "project_id")
    preview = ctx.previews.get(project_id)
    if preview is None:
        return build_error_response(
            "validation_error",
            f"No pending preview for project {project_id}",
            "Run outline_preview for this project first.",
        )

    accept = args.get("accept")
    if accept is None:
        approved = Approval.all(preview)
    else:
        if not isinstance(accept, list):
            raise ValueError("accept must be a list of preview item ids")
        approved = Approval.select(preview, [str(i) for i in accept])

    # Claimed before awaiting so a concurrent call finds no preview to apply
    del ctx.previews[project_id]
    try:
        summary = await ctx.service.apply_preview_async(preview, approved)
    except ProjectBusyError:
        ctx.previews.setdefault(project_id, preview)
        raise

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_reimport_summary(summary))],
        structuredContent=summary_to_json(summary),
    )


async def _handle_reimport(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    """Handle the ``outline_reimport`` tool."""
    project_id = _require(args, "project_id")
    preview = await ctx.service.parse_and_preview_async(project_id, _optional_path(args))
    summary = await ctx.service.apply_preview_async(preview)
    ctx.previews.pop(project_id, None)

    text = format_reimport_summary(summary)
    if preview.ambiguities:
        text += (
            f"\n\n{len(preview.ambiguities)} item(s) were matched by title only; "
            "run outline_preview to review them."
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "preview": preview_to_json(preview),
            "summary": summary_to_json(summary),
        },
    )


async def _handle_projects(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    """Handle the ``outline_projects`` tool."""
    projects = ctx.service.repository.list_projects()
    if not projects:
        text = "No projects imported yet."
    else:
        lines = [f"{len(projects)} project(s):"]
        for p in projects:
            lines.append(
                f"  {p.id}  {p.name} ({p.source_format.value})  "
                f"last synced: {p.last_synced or 'never'}"
            )
        text = "\n".join(lines)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "projects": [
                p.model_dump(mode="json", include=_PROJECT_SUMMARY_FIELDS)
                for p in projects
            ]
        },
    )


OUTLINE_SPECS: list[ToolSpec] = [
    ToolSpec(tool=OUTLINE_TOOLS[0], writes=True, handler=_handle_import),
    ToolSpec(tool=OUTLINE_TOOLS[1], writes=False, handler=_handle_preview),
    ToolSpec(tool=OUTLINE_TOOLS[2], writes=True, handler=_handle_apply),
    ToolSpec(tool=OUTLINE_TOOLS[3], writes=True, handler=_handle_reimport),
    ToolSpec(tool=OUTLINE_TOOLS[4], writes=False, handler=_handle_projects),
]
