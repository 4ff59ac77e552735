"""
Remote Text CLI — Local management of the document store.

Commands:
- remote-text init          — Write remote_text.yaml and create storage roots
- remote-text list          — List documents
- remote-text create        — Create a document
- remote-text get           — Print a document at a revision (default: HEAD)
- remote-text save          — Save new content on top of a parent commit
- remote-text delete        — Delete a document and its repository
- remote-text history       — Commits and branches (--lineage REF for a chain)
- remote-text preview       — Compile a revision (optionally write the artifact)
- remote-text logs-cleanup  — Compress / expire JSONL logs

Every command prints JSON on stdout and returns 0 on success, 1 on error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

logger = logging.getLogger("remote_text.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="remote-text",
        description="Remote Text — versioned documents, one git repository each",
    )
    parser.add_argument("--config", help="Path to remote_text.yaml (default: auto-discover)")
    parser.add_argument("--log-level", help="Override logging.level from the config")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # remote-text init
    init_parser = subparsers.add_parser("init", help="Write default config and create roots")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")

    # remote-text list
    subparsers.add_parser("list", help="List documents")

    # remote-text create
    create_parser = subparsers.add_parser("create", help="Create a document")
    create_parser.add_argument("name", help="Working file name (e.g., notes.md)")
    _add_content_args(create_parser)

    # remote-text get
    get_parser = subparsers.add_parser("get", help="Print a document at a revision")
    get_parser.add_argument("id", type=UUID, help="Document id")
    get_parser.add_argument("--hash", help="Commit hash (default: HEAD)")

    # remote-text save
    save_parser = subparsers.add_parser("save", help="Save new content on a parent commit")
    save_parser.add_argument("id", type=UUID, help="Document id")
    save_parser.add_argument("name", help="Working file name")
    save_parser.add_argument("parent", help="Commit hash the edit is based on")
    save_parser.add_argument("--branch", help="Branch to move (default: repository.default_branch)")
    _add_content_args(save_parser)

    # remote-text delete
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("id", type=UUID, help="Document id")

    # remote-text history
    history_parser = subparsers.add_parser("history", help="Commits and branches")
    history_parser.add_argument("id", type=UUID, help="Document id")
    history_parser.add_argument(
        "--lineage", metavar="REF", help="Print the root → REF chain (branch name or commit hash)"
    )

    # remote-text preview
    preview_parser = subparsers.add_parser("preview", help="Compile a revision")
    preview_parser.add_argument("id", type=UUID, help="Document id")
    preview_parser.add_argument("hash", help="Commit hash")
    preview_parser.add_argument("--output", "-o", help="Write the compiled artifact to this path")

    # remote-text logs-cleanup
    subparsers.add_parser("logs-cleanup", help="Compress and expire JSONL logs")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "list":
        return _with_runtime(args, cmd_list)
    elif args.command == "create":
        return _with_runtime(args, cmd_create)
    elif args.command == "get":
        return _with_runtime(args, cmd_get)
    elif args.command == "save":
        return _with_runtime(args, cmd_save)
    elif args.command == "delete":
        return _with_runtime(args, cmd_delete)
    elif args.command == "history":
        return _with_runtime(args, cmd_history)
    elif args.command == "preview":
        return _with_runtime(args, cmd_preview)
    elif args.command == "logs-cleanup":
        return _with_runtime(args, cmd_logs_cleanup)
    else:
        parser.print_help()
        return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _add_content_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--content", help="Content as a literal string")
    group.add_argument("--from-file", help="Read content from this file ('-' for stdin)")


def _read_content(args: argparse.Namespace) -> Optional[str]:
    if args.from_file == "-":
        return sys.stdin.read()
    if args.from_file:
        return Path(args.from_file).read_bytes().decode("utf-8")
    return args.content


def _print_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    elif isinstance(data, list):
        data = [d.model_dump(mode="json", by_alias=True) if isinstance(d, BaseModel) else d for d in data]
    print(json.dumps(data, indent=2))


def _load(args: argparse.Namespace):
    from remote_text.engine.config import CONFIG_FILENAME, get_project_root, load_config
    from remote_text.engine.logging import configure_logging

    config = load_config(args.config)
    configure_logging(args.log_level or config.logging.level)
    if args.config:
        base_dir = Path(args.config).resolve().parent
    else:
        base_dir = get_project_root()
    logger.debug(f"Using {base_dir / CONFIG_FILENAME}")
    return config, base_dir


def _with_runtime(args: argparse.Namespace, command) -> int:
    """Load config, start the runtime, run command, always shut down."""
    from remote_text.engine.errors import RemoteTextError
    from remote_text.engine.runtime import RemoteTextRuntime

    try:
        config, base_dir = _load(args)
    except RemoteTextError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1

    runtime = RemoteTextRuntime(config, base_dir=base_dir)
    try:
        runtime.startup()
        return command(args, runtime)
    except RemoteTextError as e:
        print(f"[ERROR] {e.error_type}: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    finally:
        runtime.shutdown()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(args: argparse.Namespace) -> int:
    """Write remote_text.yaml (unless present) and create the storage roots."""
    from remote_text.engine.config import CONFIG_FILENAME, default_config_yaml, load_config
    from remote_text.engine.errors import ConfigError

    path = Path(args.config) if args.config else Path.cwd() / CONFIG_FILENAME
    if path.exists() and not args.force:
        print(f"[SKIP] {path} already exists (use --force to overwrite)")
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_yaml(), encoding="utf-8")
        print(f"[OK] Wrote {path}")

    try:
        config = load_config(str(path))
    except ConfigError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1

    base_dir = path.resolve().parent
    for root in (config.files_root(base_dir), config.previews_root(base_dir), config.log_root(base_dir)):
        root.mkdir(parents=True, exist_ok=True)
        print(f"[OK] {root}")
    return 0


def cmd_list(args: argparse.Namespace, runtime) -> int:
    _print_json(runtime.documents.list_files())
    return 0


def cmd_create(args: argparse.Namespace, runtime) -> int:
    created = runtime.documents.create_file(args.name, _read_content(args))
    _print_json(created)
    return 0


def cmd_get(args: argparse.Namespace, runtime) -> int:
    _print_json(runtime.documents.get_file(args.id, args.hash))
    return 0


def cmd_save(args: argparse.Namespace, runtime) -> int:
    content = _read_content(args)
    commit = runtime.documents.save_file(
        args.id, args.name, content or "", args.parent, args.branch,
    )
    _print_json(commit)
    return 0


def cmd_delete(args: argparse.Namespace, runtime) -> int:
    runtime.documents.delete_file(args.id)
    _print_json({"deleted": str(args.id)})
    return 0


def cmd_history(args: argparse.Namespace, runtime) -> int:
    history = runtime.documents.get_history(args.id)
    if not args.lineage:
        _print_json(history)
        return 0

    from remote_text.repository.graph import CommitGraph

    graph = CommitGraph.from_history(history)
    ref = history.ref(args.lineage)
    target = ref.hash if ref is not None else args.lineage.lower()
    chain = graph.lineage(target)
    if not chain:
        print(f"[ERROR] Unknown branch or commit: {args.lineage}", file=sys.stderr)
        return 1
    _print_json({
        "ref": args.lineage,
        "lineage": chain,
        "linear": graph.is_linear(target),
        "branches": {h: graph.branches_at(h) for h in chain if graph.branches_at(h)},
    })
    return 0


def cmd_preview(args: argparse.Namespace, runtime) -> int:
    output = runtime.documents.preview_file(args.id, args.hash)
    if args.output and output.state.value == "SUCCESS":
        data, content_type = runtime.documents.get_preview(args.id, args.hash)
        Path(args.output).write_bytes(data)
        print(f"[OK] Wrote {len(data)} bytes ({content_type}) to {args.output}", file=sys.stderr)
    _print_json(output)
    return 0 if output.state.value == "SUCCESS" else 1


def cmd_logs_cleanup(args: argparse.Namespace, runtime) -> int:
    _print_json(runtime.cleanup_logs())
    return 0


if __name__ == "__main__":
    sys.exit(main())
