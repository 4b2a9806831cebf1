"""
draftstore/cli.py -- Admin command line for the draft store.

Usage::

    draftstore --root ./drafts list solution
    draftstore create skill "Order lookup"
    draftstore update skill skill_1a2b3c4d '{"tools_push": [{"name": "get_order"}]}'
    draftstore validate skill skill_1a2b3c4d --json
    draftstore import solution exported.yaml --link skill_aaaa1111 --link skill_bbbb2222

Exit status is 0 on success, 1 when the command failed or (for
``validate``) the draft has blocking errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import yaml

from draftstore.config import StoreConfig
from draftstore.errors import DraftStoreError, InvalidMutation
from draftstore.kinds import KINDS
from draftstore.manager import StoreManager

logger = logging.getLogger("draftstore")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _read_document(text_or_path: str):
    """Parse inline JSON, or ``@file`` / a path holding JSON or YAML."""
    source = text_or_path[1:] if text_or_path.startswith("@") else text_or_path
    path = Path(source)
    if text_or_path.startswith("@") or os.path.isfile(source):
        text = path.read_text(encoding="utf-8")
    else:
        text = text_or_path
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidMutation("document", f"cannot parse input: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="draftstore", description="Manage skill and solution drafts")
    parser.add_argument("--root", help="Storage root (default: $DRAFTSTORE_ROOT or the user data dir)")
    parser.add_argument("--backend", choices=["file", "sqlite"], help="Storage backend")
    parser.add_argument("--log-level", help="Logging level (default: WARNING)")

    sub = parser.add_subparsers(dest="command", required=True)
    kinds = sorted(KINDS)

    p = sub.add_parser("list", help="List drafts, newest first")
    p.add_argument("kind", choices=kinds)

    p = sub.add_parser("create", help="Create an empty draft")
    p.add_argument("kind", choices=kinds)
    p.add_argument("name")
    p.add_argument("--template", help="JSON/YAML file with initial fields")

    p = sub.add_parser("show", help="Print a draft as JSON")
    p.add_argument("kind", choices=kinds)
    p.add_argument("id")

    p = sub.add_parser("update", help="Apply an update-description")
    p.add_argument("kind", choices=kinds)
    p.add_argument("id")
    p.add_argument("updates", help="Inline JSON, or @file")

    p = sub.add_parser("message", help="Append a conversation message")
    p.add_argument("kind", choices=kinds)
    p.add_argument("id")
    p.add_argument("role", choices=["user", "assistant", "system"])
    p.add_argument("content")

    p = sub.add_parser("validate", help="Run the validation pipeline")
    p.add_argument("kind", choices=kinds)
    p.add_argument("id")
    p.add_argument("--focus", help="Section hint for consistency checkers")
    p.add_argument("--json", action="store_true", help="Print the full report as JSON")

    p = sub.add_parser("import", help="Import an exported JSON/YAML document")
    p.add_argument("kind", choices=kinds)
    p.add_argument("file")
    p.add_argument("--link", action="append", default=[], help="Related draft id (repeatable)")

    p = sub.add_parser("delete", help="Remove a draft (no error if absent)")
    p.add_argument("kind", choices=kinds)
    p.add_argument("id")

    return parser


def run(args, store: StoreManager) -> int:
    repo = store.repository(args.kind)

    if args.command == "list":
        for row in repo.list():
            print(f"{row['id']:<20} {row.get('phase', ''):<22} {row.get('progress', 0):>3}%  {row.get('name', '')}")
        return 0

    if args.command == "create":
        initial = _read_document(args.template) if args.template else None
        _print_json(repo.create(args.name, initial))
        return 0

    if args.command == "show":
        _print_json(repo.load(args.id))
        return 0

    if args.command == "update":
        report = repo.update_state(args.id, _read_document(args.updates))
        for exc in report.rejected:
            print(f"rejected: {exc}", file=sys.stderr)
        for note in report.skipped:
            print(f"skipped: {note}", file=sys.stderr)
        _print_json(report.entity)
        return 0 if report.ok else 1

    if args.command == "message":
        _print_json(repo.append_message(args.id, {"role": args.role, "content": args.content}))
        return 0

    if args.command == "validate":
        report = store.validate(args.kind, args.id, focus=args.focus)
        if args.json:
            _print_json(report.to_dict())
        else:
            print(report.format_summary())
        return 0 if report.valid else 1

    if args.command == "import":
        text = Path(args.file).read_text(encoding="utf-8")
        _print_json(repo.import_document(text, args.link))
        return 0

    if args.command == "delete":
        removed = repo.remove(args.id)
        print("removed" if removed else "not present")
        return 0

    raise ValueError(f"Unknown command {args.command!r}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = StoreConfig.from_env(root=args.root, backend=args.backend, log_level=args.log_level)
    _setup_logging(config.log_level)

    try:
        with StoreManager(config) as store:
            return run(args, store)
    except (DraftStoreError, OSError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
