from __future__ import annotations

import shutil
from pathlib import Path

from config.defaults import CORE_FILES
from config.defaults import CORE_FOLDERS
from safety.rollback import copy_directory
from safety.rollback import create_snapshot
from safety.rollback import empty_directory
from safety.rollback import ensure_writable
from safety.state import SafetyPaths
from safety.state import load_state
from safety.state import load_update_config
from safety.state import now_ms
from safety.state import save_state
from safety.state import save_update_config


def copy_missing_files(src: Path, dest: Path) -> list[str]:
    copied: list[str] = []
    src, dest = Path(src), Path(dest)
    if not src.is_dir():
        return copied
    dest.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        if entry.name == "__pycache__":
            continue
        target = dest / entry.name
        if entry.is_dir():
            copied.extend(copy_missing_files(entry, target))
        elif not target.exists():
            print(f"[PreUpdate] Copying missing file: {entry.name}")
            shutil.copy2(entry, target)
            copied.append(str(target))
    return copied


def update_core(original_dir: Path, source_dir: Path) -> None:
    for folder in CORE_FOLDERS:
        original_path = original_dir / folder
        if not original_path.is_dir():
            continue
        target_path = source_dir / folder
        if target_path.exists():
            print(f"[PreUpdate] Removing existing {folder} folder")
            shutil.rmtree(target_path)
        print(f"[PreUpdate] Copying new {folder} folder")
        copy_directory(original_path, target_path)
    for filename in CORE_FILES:
        original_file = original_dir / filename
        if original_file.is_file():
            shutil.copy2(original_file, source_dir / filename)


def _first_installation(paths: SafetyPaths) -> None:
    print("[PreUpdate] Performing first installation...")
    if paths.source_dir.exists() and any(paths.source_dir.iterdir()):
        print("[PreUpdate] Source dir already populated, skipping first installation")
        return
    copy_directory(paths.original_source_dir, paths.source_dir)


def _basic_update(paths: SafetyPaths) -> None:
    print("[PreUpdate] Performing basic update...")
    update_core(paths.original_source_dir, paths.source_dir)


def _relative_update(paths: SafetyPaths) -> None:
    print("[PreUpdate] Performing relative update...")
    update_core(paths.original_source_dir, paths.source_dir)
    copy_missing_files(paths.original_source_dir, paths.source_dir)


def _full_update(paths: SafetyPaths) -> None:
    print("[PreUpdate] Performing full update...")
    empty_directory(paths.source_dir)
    copy_directory(paths.original_source_dir, paths.source_dir)


MODE_HANDLERS = {
    "first": _first_installation,
    "basic": _basic_update,
    "relative": _relative_update,
    "full": _full_update,
}


def _backup_before_update(paths: SafetyPaths, mode: str) -> None:
    """Failures here are logged and the update continues without a backup."""
    try:
        backup = create_snapshot(
            paths.backups_dir,
            paths.source_dir,
            f"Pre-update backup ({mode} mode)",
            backup_type="automatic",
            update_mode=mode,
        )
    except OSError as e:
        print(f"[PreUpdate] Failed to create backup: {e}")
        return
    print(f"[PreUpdate] Backup saved to: {backup['path']}")

    state = load_state(paths.state_path)
    state["rollbackSnapshot"] = {
        "timestamp": backup["timestamp"],
        "version": backup["version"],
        "updateMode": mode,
        "path": backup["path"],
        "size": 0,
    }
    state["rollbackAvailable"] = True
    save_state(paths.state_path, state)


def run_pre_update(paths: SafetyPaths) -> int:
    """Apply a pending update before the bot starts. Returns a process exit code."""
    config = load_update_config(paths.update_config_path)
    mode = config.get("updateMode")
    print(f"[PreUpdate] Checking update mode: {mode}")

    if not config.get("updateInProgress"):
        print("[PreUpdate] No update in progress, skipping pre-update")
        return 0

    try:
        paths.source_dir.mkdir(parents=True, exist_ok=True)
        ensure_writable(paths.source_dir, ".write-test")
    except PermissionError:
        print(f"[PreUpdate] WARNING: cannot write to {paths.source_dir}, skipping update")
        return 0

    handler = MODE_HANDLERS.get(mode)
    if handler is None:
        print(f"[PreUpdate] Unknown update mode: {mode}")
        return 0

    if mode != "first":
        _backup_before_update(paths, mode)

    try:
        handler(paths)
    except OSError as e:
        print(f"[PreUpdate] Error during update process: {e}")
        return 1

    config["updateMode"] = "none"
    config["updateInProgress"] = False
    config["lastUpdateTime"] = now_ms()
    save_update_config(paths.update_config_path, config)
    print("[PreUpdate] Update process completed successfully")
    return 0
