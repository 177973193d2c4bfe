from __future__ import annotations

from pathlib import Path
from typing import Any

from config.defaults import USER_UPDATE_MODES
from safety.rollback import read_version
from safety.state import load_update_config
from safety.state import now_ms
from safety.state import save_update_config


def current_version(source_dir: Path) -> str:
    version = read_version(source_dir)
    return "0.0.0" if version == "unknown" else version


def trigger_update(update_config_path: Path, mode: str) -> dict[str, Any]:
    """Queue an update; the pre-update step applies it on the next start."""
    if mode not in USER_UPDATE_MODES:
        return {"success": False, "error": f"Invalid update mode. Must be {', '.join(USER_UPDATE_MODES)}."}
    config = load_update_config(update_config_path)
    config["updateMode"] = mode
    config["updateInProgress"] = True
    config["requestedAt"] = now_ms()
    if not save_update_config(update_config_path, config):
        return {"success": False, "error": "Failed to write update config"}
    print(f"[Updater] Update queued: mode={mode}")
    return {"success": True, "message": f"Update ({mode}) queued. Restart the container to apply it."}


def update_status(update_config_path: Path) -> dict[str, Any]:
    config = load_update_config(update_config_path)
    return {
        "inProgress": bool(config.get("updateInProgress")),
        "mode": None if config.get("updateMode") in (None, "none") else config.get("updateMode"),
        "lastUpdateTime": config.get("lastUpdateTime"),
        "requestedAt": config.get("requestedAt"),
    }
