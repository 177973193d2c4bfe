from __future__ import annotations

import argparse
from datetime import datetime, timezone

from config.defaults import DEFAULT_BACKUPS_TO_KEEP
from safety.rollback import RollbackError
from safety.rollback import cleanup_old_backups
from safety.rollback import create_snapshot
from safety.rollback import find_backup
from safety.rollback import latest_backup
from safety.rollback import list_backups
from safety.rollback import perform_rollback
from safety.state import SafetyPaths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage FMDB source backups")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List available backups")
    create = sub.add_parser("create", help="Create a new snapshot")
    create.add_argument("description", nargs="*")
    rollback = sub.add_parser("rollback", help="Roll back to a backup (latest if no name)")
    rollback.add_argument("name", nargs="?")
    cleanup = sub.add_parser("cleanup", help="Remove old backups")
    cleanup.add_argument("keep", nargs="?", type=int, default=DEFAULT_BACKUPS_TO_KEEP)
    return parser


def run(argv=None, paths: SafetyPaths | None = None) -> int:
    args = build_parser().parse_args(argv)
    paths = paths or SafetyPaths.from_env()

    if args.command == "list":
        backups = list_backups(paths.backups_dir)
        if not backups:
            print("No backups available")
            return 0
        print("Available backups:")
        for backup in backups:
            when = datetime.fromtimestamp(int(backup["timestamp"]) / 1000, tz=timezone.utc).isoformat()
            print(f"  {backup['name']} - v{backup.get('version')} ({when}) {backup.get('description') or ''}".rstrip())
        return 0

    if args.command == "create":
        create_snapshot(paths.backups_dir, paths.source_dir, " ".join(args.description) or "Manual snapshot")
        return 0

    if args.command == "rollback":
        backup = find_backup(paths.backups_dir, args.name) if args.name else latest_backup(paths.backups_dir)
        if backup is None:
            print(f"Backup not found: {args.name}" if args.name else "No backups available for rollback")
            return 1
        try:
            perform_rollback(backup, paths.source_dir)
        except RollbackError as e:
            print(f"[Rollback] Rollback failed: {e}")
            return 1
        return 0

    cleanup_old_backups(paths.backups_dir, max(0, args.keep))
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
