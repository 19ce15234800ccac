"""Command line interface for outline import and reimport.

Subcommands:

- ``import PATH`` -- import a source file as a new project.
- ``preview PROJECT_ID`` -- show what a reimport would change.
- ``apply PROJECT_ID`` -- reimport, writing all or only ``--accept`` ids.
- ``projects`` -- list imported projects.
- ``serve`` -- run the MCP server over stdio.

Every command prints human-readable text, or JSON with ``--json``.  Errors
are printed to stderr as ``Error: ...`` and exit with status 1.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, ensure_config, load_hierarchical_config
from .config_schema import build_config
from .errors import OutlineSyncError
from .logger import setup_logging
from .mcp.lifespan import build_service
from .models import SourceFormat
from .sync.engine import OutlineSync
from .sync.models import Approval
from .sync.reporter import (
    format_reimport_summary,
    format_sync_preview,
    preview_from_json,
    preview_to_json,
    summary_to_json,
)

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_import(service: OutlineSync, args: argparse.Namespace) -> int:
    result = service.import_project(args.path, args.format)
    if args.json:
        _print_json(result.model_dump(mode="json"))
    else:
        print(f"Imported '{result.project.name}' as project {result.project.id}")
        print(
            f"  {result.chapters} chapter(s), {result.scenes} scene(s), "
            f"{result.beats} beat(s), {result.references} reference(s)"
        )
    return 0


def cmd_preview(service: OutlineSync, args: argparse.Namespace) -> int:
    preview = service.parse_and_preview(args.project_id, args.path)
    if args.save:
        Path(args.save).write_text(
            json.dumps(preview_to_json(preview), indent=2), encoding="utf-8"
        )
        logger.info("Saved preview to %s", args.save)
    if args.json:
        _print_json(preview_to_json(preview))
    else:
        print(format_sync_preview(preview))
    return 0


def cmd_apply(service: OutlineSync, args: argparse.Namespace) -> int:
    if args.preview:
        with open(args.preview, encoding="utf-8") as fh:
            preview = preview_from_json(json.load(fh))
        if preview.project_id != args.project_id:
            raise ValueError(
                f"Preview {args.preview} belongs to project {preview.project_id}, "
                f"not {args.project_id}"
            )
    else:
        preview = service.parse_and_preview(args.project_id, args.path)

    if args.accept is None:
        approved = Approval.all(preview)
    else:
        approved = Approval.select(preview, args.accept)

    summary = service.apply_preview(preview, approved)
    if args.json:
        _print_json(summary_to_json(summary))
    else:
        print(format_reimport_summary(summary))
    return 0


def cmd_projects(service: OutlineSync, args: argparse.Namespace) -> int:
    projects = service.repository.list_projects()
    if args.json:
        _print_json([p.model_dump(mode="json") for p in projects])
        return 0
    if not projects:
        print("No projects imported yet.")
        return 0
    for p in projects:
        print(f"{p.id}  {p.name} ({p.source_format.value})")
        print(f"    source: {p.source_path or '-'}")
        print(f"    last synced: {p.last_synced or 'never'}")
    return 0


_COMMANDS = {
    "import": cmd_import,
    "preview": cmd_preview,
    "apply": cmd_apply,
    "projects": cmd_projects,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--state-dir", help="Directory of project documents")
    common.add_argument(
        "--backend", choices=["json", "memory"], help="Project store backend"
    )
    common.add_argument("--debug", action="store_true", help="Enable debug logging")
    common.add_argument("--log-file", help="Also write logs to this file")
    common.add_argument("--json", action="store_true", help="Print JSON output")

    parser = argparse.ArgumentParser(
        prog="outline-sync",
        description="Import story outlines from planning tools and keep them in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  outline-sync import ~/novels/hamlet.pltr
  outline-sync preview 3f2b... --save preview.json
  outline-sync apply 3f2b... --preview preview.json --accept chapter-title-9c1d...
        """,
    )
    parser.add_argument(
        "--version", action="version", version=f"outline-sync version {__version__}"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", parents=[common], help="Import a source file")
    p_import.add_argument("path", help="Source file or .scriv package")
    p_import.add_argument(
        "--format",
        choices=[f.value for f in SourceFormat],
        help="Source format (detected from the path when omitted)",
    )

    p_preview = sub.add_parser("preview", parents=[common], help="Preview a reimport")
    p_preview.add_argument("project_id")
    p_preview.add_argument("--path", help="Read this source instead of the recorded one")
    p_preview.add_argument("--save", help="Write the preview as JSON to this file")

    p_apply = sub.add_parser("apply", parents=[common], help="Apply a reimport")
    p_apply.add_argument("project_id")
    p_apply.add_argument("--path", help="Read this source instead of the recorded one")
    p_apply.add_argument("--preview", help="Apply a preview saved with 'preview --save'")
    p_apply.add_argument(
        "--accept",
        action="append",
        metavar="ID",
        help="Preview item id to apply (repeatable); everything when omitted",
    )

    sub.add_parser("projects", parents=[common], help="List imported projects")

    p_serve = sub.add_parser("serve", parents=[common], help="Run the MCP server")
    p_serve.add_argument(
        "--read-only", action="store_true", help="Hide tools that write to the store"
    )

    sub.add_parser("init", help="Write a starter config file if none exists")
    return parser


def _load_runtime_config(args: argparse.Namespace) -> Config:
    load_dotenv()
    unified = build_config(load_hierarchical_config()) if discover_config_files() else None
    return load_config(
        state_dir=args.state_dir,
        backend=args.backend,
        debug=args.debug,
        yaml_config=unified,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init":
        print(f"Config: {ensure_config()}")
        return 0

    if args.command == "serve":
        from .mcp.server import main as serve_main

        overrides = {
            k: v
            for k, v in {
                "state_dir": args.state_dir,
                "backend": args.backend,
                "debug": args.debug,
                "log_file": args.log_file,
                "read_only": args.read_only,
            }.items()
            if v
        }
        try:
            asyncio.run(serve_main(config_overrides=overrides or None))
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    try:
        config = _load_runtime_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    setup_logging(mode="cli", debug=config.debug, log_file=args.log_file)

    try:
        service = build_service(config)
        return _COMMANDS[args.command](service, args)
    except (OutlineSyncError, ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
