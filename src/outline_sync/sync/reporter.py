"""Preview and summary formatting functions.

Provides human-readable and machine-readable output for reimports:

- ``format_sync_preview`` -- review listing of a preview, grouped by kind.
- ``format_reimport_summary`` -- post-apply counts.
- ``format_change_diff`` -- unified diff of one proposed change.
- ``preview_to_json`` / ``summary_to_json`` -- structured dicts for MCP
  tool output and ``--json`` CLI output.
- ``preview_from_json`` -- rebuild a preview saved with ``preview_to_json``.
"""

from __future__ import annotations

import difflib
from typing import Any

from ..models import ItemKind
from .models import ReimportSummary, SyncChange, SyncPreview

_KIND_ORDER = (ItemKind.CHAPTER, ItemKind.SCENE, ItemKind.BEAT)

# ------------------------------------------------------------------
# Human-readable preview
# ------------------------------------------------------------------


def format_sync_preview(preview: SyncPreview) -> str:
    """Format a preview for review before approval.

    Each item is shown with its id so it can be passed back to
    ``apply --accept``.  Changes to multi-line values (usually synopses) are
    followed by a unified diff.  Sections are only included when non-empty.

    Args:
        preview: The preview to show.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Reimport preview for project {preview.project_id}")
    if preview.source_path:
        lines.append(f"Source: {preview.source_path} ({preview.source_format.value})")
    lines.append(f"Generated: {preview.generated_at}")
    lines.append("")

    if preview.is_empty and not preview.ambiguities:
        lines.append("No changes detected.")
        return "\n".join(lines)

    lines.append(
        f"{len(preview.additions)} addition(s), {len(preview.changes)} change(s), "
        f"{len(preview.ambiguities)} ambiguity(ies)"
    )
    lines.append("")

    for kind in _KIND_ORDER:
        additions = [a for a in preview.additions if a.kind == kind]
        if not additions:
            continue
        lines.append(f"New {kind.value}s:")
        for a in additions:
            where = f" (in {a.parent_title})" if a.parent_title else ""
            lines.append(f"  [{a.id}] + {a.title}{where}")
        lines.append("")

    if preview.changes:
        lines.append("Changes:")
        for c in preview.changes:
            lines.append(
                f"  [{c.id}] {c.kind.value} '{c.item_title}' {c.field.value}: "
                f"{_quote(c.current_value)} -> {_quote(c.new_value)}"
            )
            if _is_multiline(c):
                lines.extend(f"      {line}" for line in _diff_lines(c))
        lines.append("")

    if preview.ambiguities:
        lines.append("Needs review (matched by title only):")
        for amb in preview.ambiguities:
            target = amb.matched_id or "new"
            lines.append(
                f"  {amb.kind.value} '{amb.title}' at position {amb.position} -> "
                f"{target}: {amb.reason}"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


def _quote(value: str | None, width: int = 40) -> str:
    if value is None:
        return "(none)"
    text = " ".join(value.split())
    if len(text) > width:
        text = text[:width] + "..."
    return f'"{text}"'


# ------------------------------------------------------------------
# Apply summary
# ------------------------------------------------------------------


def format_reimport_summary(summary: ReimportSummary) -> str:
    """Format the counts of an apply.

    Args:
        summary: The summary returned by the apply.

    Returns:
        Multi-line formatted string, or ``"No changes detected."`` when the
        apply wrote nothing.
    """
    if summary.is_empty:
        lines = ["No changes detected."]
    else:
        lines = [
            f"Added: {summary.chapters_added} chapter(s), "
            f"{summary.scenes_added} scene(s), {summary.beats_added} beat(s)",
            f"Updated: {summary.chapters_updated} chapter(s), "
            f"{summary.scenes_updated} scene(s), {summary.beats_updated} beat(s)",
            f"Prose preserved: {summary.prose_preserved} beat(s)",
        ]
    if summary.additions_skipped:
        lines.append(
            f"Skipped: {summary.additions_skipped} addition(s) whose parent was not approved"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# Change diff
# ------------------------------------------------------------------


def _is_multiline(change: SyncChange) -> bool:
    return any("\n" in (value or "") for value in (change.current_value, change.new_value))


def _diff_lines(change: SyncChange) -> list[str]:
    diff = difflib.unified_diff(
        (change.current_value or "").splitlines(),
        (change.new_value or "").splitlines(),
        fromfile=f"current: {change.target_id}",
        tofile="source",
        lineterm="",
    )
    return [line.rstrip() for line in diff]


def format_change_diff(change: SyncChange) -> str:
    """Format a single change as a unified diff of its old and new value.

    ``format_sync_preview`` shows the same diff under changes whose values
    span several lines.

    Args:
        change: The change to show.

    Returns:
        Multi-line formatted string with the diff.
    """
    lines: list[str] = []
    lines.append(f"{change.kind.value} '{change.item_title}' ({change.field.value})")
    lines.append("")
    lines.extend(_diff_lines(change) or ["(no textual differences)"])
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def preview_to_json(preview: SyncPreview) -> dict[str, Any]:
    """Convert a preview to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output and for saving a preview
    to review and apply later.

    Args:
        preview: The preview.

    Returns:
        Dict with the preview fields plus item counts.
    """
    data = preview.model_dump(mode="json")
    data["counts"] = {
        "additions": len(preview.additions),
        "changes": len(preview.changes),
        "ambiguities": len(preview.ambiguities),
    }
    return data


def preview_from_json(data: dict[str, Any]) -> SyncPreview:
    """Rebuild a preview from ``preview_to_json`` output.

    Raises:
        pydantic.ValidationError: If *data* is not a preview.
    """
    fields = {k: v for k, v in data.items() if k != "counts"}
    return SyncPreview.model_validate(fields)


def summary_to_json(summary: ReimportSummary) -> dict[str, Any]:
    """Convert an apply summary to a structured dict."""
    data = summary.model_dump(mode="json")
    data["is_empty"] = summary.is_empty
    return data
