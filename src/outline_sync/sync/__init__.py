"""Outline reimport engine.

Public API for keeping an imported project in step with its external
source file without ever touching prose the writer composed.

Architecture
------------
A reimport is **parse, diff, selective apply**.  The source is re-parsed
into a canonical document, each parsed node is matched to a persisted node
by its native ``source_id`` (falling back to title and position), and the
differences are proposed as a ``SyncPreview``.  The writer approves a
subset, which is applied in one transaction.  Nodes missing from the source
are never deleted.

Modules:

- ``engine``    -- ``OutlineSync``: import, preview and apply.
- ``identity``  -- ``IdentityResolver``: parsed-to-persisted matching.
- ``differ``    -- ``diff``: builds the preview.
- ``merger``    -- ``apply_preview``: writes an approved preview.
- ``models``    -- ``SyncPreview``, ``SyncAddition``, ``SyncChange``,
  ``IdentityAmbiguity``, ``Approval``, ``ReimportSummary``,
  ``ImportResult``: core data contracts.
- ``reporter``  -- Human-readable and JSON formatting.

Usage example
-------------
::

    from outline_sync.store import MemoryRepository
    from outline_sync.sync import Approval, OutlineSync, format_sync_preview

    service = OutlineSync(MemoryRepository())
    result = service.import_project("/path/to/novel.pltr")

    # Later, after the source file changed
    preview = service.parse_and_preview(result.project.id)
    print(format_sync_preview(preview))

    summary = service.apply_preview(preview, Approval.select(preview, ids))
"""

from .differ import diff, display_title
from .engine import OutlineSync
from .identity import IdentityResolver, Match, MatchRule
from .merger import apply_preview
from .models import (
    Approval,
    ChangeField,
    IdentityAmbiguity,
    ImportResult,
    ReimportSummary,
    SyncAddition,
    SyncChange,
    SyncPreview,
)
from .reporter import (
    format_change_diff,
    format_reimport_summary,
    format_sync_preview,
    preview_from_json,
    preview_to_json,
    summary_to_json,
)

__all__ = [
    "Approval",
    "ChangeField",
    "IdentityAmbiguity",
    "IdentityResolver",
    "ImportResult",
    "Match",
    "MatchRule",
    "OutlineSync",
    "ReimportSummary",
    "SyncAddition",
    "SyncChange",
    "SyncPreview",
    "apply_preview",
    "diff",
    "display_title",
    "format_change_diff",
    "format_reimport_summary",
    "format_sync_preview",
    "preview_from_json",
    "preview_to_json",
    "summary_to_json",
]
