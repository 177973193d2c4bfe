from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any

from config.defaults import DEFAULT_BACKUPS_TO_KEEP
from safety.state import now_ms


BACKUP_PREFIX = "backup-"
BACKUP_SOURCE_DIRNAME = "bot-source"
METADATA_FILENAME = "metadata.json"
VERSION_FILENAME = "VERSION"

_COPY_IGNORE = shutil.ignore_patterns("__pycache__", "*.pyc", ".rollback-test", ".write-test")


class RollbackError(RuntimeError):
    pass


def copy_directory(src: Path, dest: Path) -> None:
    src, dest = Path(src), Path(dest)
    if not src.is_dir():
        raise FileNotFoundError(f"Source directory does not exist: {src}")
    shutil.copytree(src, dest, ignore=_COPY_IGNORE, dirs_exist_ok=True)


def empty_directory(path: Path) -> None:
    """Remove everything inside `path` but keep the directory (it may be a mount point)."""
    path = Path(path)
    if not path.exists():
        return
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def ensure_writable(directory: Path, marker: str) -> None:
    test_file = Path(directory) / marker
    test_file.write_text("test", encoding="utf-8")
    test_file.unlink()


def read_version(source_dir: Path) -> str:
    try:
        version = (Path(source_dir) / VERSION_FILENAME).read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"
    return version or "unknown"


def _read_metadata(backup_path: Path) -> dict[str, Any]:
    metadata_path = backup_path / METADATA_FILENAME
    if not metadata_path.is_file():
        return {}
    try:
        data = json.loads(metadata_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"[Rollback] Unreadable metadata in {backup_path.name}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _timestamp_from_name(name: str) -> int:
    try:
        return int(name[len(BACKUP_PREFIX):])
    except ValueError:
        return 0


def perform_rollback(snapshot: dict[str, Any], source_dir: Path) -> bool:
    if not snapshot or not snapshot.get("path"):
        raise RollbackError("Invalid snapshot: missing path")

    backup_path = Path(snapshot["path"])
    backup_source = backup_path / BACKUP_SOURCE_DIRNAME
    source_dir = Path(source_dir)

    print(f"[Rollback] Starting rollback to: {snapshot.get('version') or 'previous version'}")
    print(f"[Rollback] Backup path: {backup_path}")

    if not backup_path.exists():
        raise RollbackError(f"Backup not found: {backup_path}")
    if not backup_source.is_dir():
        raise RollbackError(f"Backup source not found: {backup_source}")

    try:
        ensure_writable(source_dir, ".rollback-test")
    except OSError as e:
        raise RollbackError(f"Cannot write to source dir: {e}") from e

    print("[Rollback] Clearing current source...")
    empty_directory(source_dir)
    print("[Rollback] Restoring from backup...")
    copy_directory(backup_source, source_dir)

    metadata = _read_metadata(backup_path)
    if metadata:
        metadata["usedForRollback"] = True
        metadata["rollbackTime"] = now_ms()
        try:
            (backup_path / METADATA_FILENAME).write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except OSError as e:
            print(f"[Rollback] Failed to update backup metadata: {e}")

    print("[Rollback] Rollback completed successfully")
    return True


def list_backups(backups_dir: Path) -> list[dict[str, Any]]:
    """Backups that still hold a source copy, newest first."""
    backups_dir = Path(backups_dir)
    if not backups_dir.is_dir():
        return []

    backups: list[dict[str, Any]] = []
    for entry in backups_dir.iterdir():
        if not entry.is_dir() or not entry.name.startswith(BACKUP_PREFIX):
            continue
        if not (entry / BACKUP_SOURCE_DIRNAME).is_dir():
            continue
        metadata = {
            "timestamp": _timestamp_from_name(entry.name),
            "version": "unknown",
            "description": "Backup",
        }
        metadata.update(_read_metadata(entry))
        backups.append({"name": entry.name, "path": str(entry), **metadata})

    backups.sort(key=lambda b: int(b.get("timestamp") or 0), reverse=True)
    return backups


def latest_backup(backups_dir: Path) -> dict[str, Any] | None:
    backups = list_backups(backups_dir)
    return backups[0] if backups else None


def find_backup(backups_dir: Path, name: str) -> dict[str, Any] | None:
    """Look a backup up by directory name or bare timestamp."""
    if not name.startswith(BACKUP_PREFIX):
        name = BACKUP_PREFIX + name
    for backup in list_backups(backups_dir):
        if backup["name"] == name:
            return backup
    return None


def create_snapshot(
    backups_dir: Path,
    source_dir: Path,
    description: str = "Manual snapshot",
    *,
    backup_type: str = "manual",
    update_mode: str | None = None,
) -> dict[str, Any]:
    timestamp = now_ms()
    backups_dir = Path(backups_dir)
    # timestamps name the directories; bump on a same-millisecond collision
    while (backups_dir / f"{BACKUP_PREFIX}{timestamp}").exists():
        timestamp += 1
    backup_path = backups_dir / f"{BACKUP_PREFIX}{timestamp}"
    print(f"[Rollback] Creating snapshot: {backup_path.name}")

    backup_path.mkdir(parents=True)
    copy_directory(Path(source_dir), backup_path / BACKUP_SOURCE_DIRNAME)

    metadata: dict[str, Any] = {
        "timestamp": timestamp,
        "version": read_version(source_dir),
        "description": description,
        "type": backup_type,
    }
    if update_mode is not None:
        metadata["updateMode"] = update_mode
        metadata["size"] = 0
    (backup_path / METADATA_FILENAME).write_text(json.dumps(metadata, indent=2), encoding="utf-8")

    print(f"[Rollback] Snapshot created: {backup_path.name}")
    return {"name": backup_path.name, "path": str(backup_path), **metadata}


def cleanup_old_backups(backups_dir: Path, keep: int = DEFAULT_BACKUPS_TO_KEEP) -> list[str]:
    removed: list[str] = []
    for backup in list_backups(backups_dir)[max(0, int(keep)):]:
        print(f"[Rollback] Removing old backup: {backup['name']}")
        try:
            shutil.rmtree(backup["path"])
        except OSError as e:
            print(f"[Rollback] Failed to remove backup {backup['name']}: {e}")
            continue
        removed.append(backup["name"])
    return removed
