from __future__ import annotations

import copy
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from config.defaults import CRASH_HISTORY_RETENTION_MS
from config.defaults import DEFAULT_CRASH_WINDOW_MS
from config.defaults import DEFAULT_MAX_CONSECUTIVE_CRASHES
from config.defaults import data_dir
from config.defaults import original_source_dir
from config.defaults import source_dir


SAFETY_STATE_FILENAME = "update-safety.json"
UPDATE_CONFIG_FILENAME = "update-config.json"

DEFAULT_STATE: dict[str, Any] = {
    "safeMode": False,
    "maxConsecutiveCrashes": DEFAULT_MAX_CONSECUTIVE_CRASHES,
    "crashWindowMs": DEFAULT_CRASH_WINDOW_MS,
    "crashCount": 0,
    "crashHistory": [],
    "lastSuccessfulStart": None,
    "currentVersion": None,
    "rollbackAvailable": False,
    "rollbackSnapshot": None,
}

DEFAULT_UPDATE_CONFIG: dict[str, Any] = {
    "updateMode": "none",
    "updateInProgress": False,
}


@dataclass(frozen=True)
class SafetyPaths:
    data_dir: Path
    source_dir: Path
    original_source_dir: Path

    @classmethod
    def from_env(cls) -> "SafetyPaths":
        return cls(data_dir=data_dir(), source_dir=source_dir(), original_source_dir=original_source_dir())

    @property
    def state_path(self) -> Path:
        return self.data_dir / SAFETY_STATE_FILENAME

    @property
    def update_config_path(self) -> Path:
        return self.data_dir / UPDATE_CONFIG_FILENAME

    @property
    def crash_logs_dir(self) -> Path:
        return self.data_dir / "crash-logs"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def recovery_dir(self) -> Path:
        return self.data_dir / "recovery"


def now_ms() -> int:
    return int(time.time() * 1000)


def default_state() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_STATE)


def _load_json_over(path: Path, defaults: dict[str, Any], tag: str) -> dict[str, Any]:
    merged = copy.deepcopy(defaults)
    if not path.exists():
        return merged
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"[{tag}] Error loading {path.name}, using defaults: {e}")
        return merged
    if isinstance(data, dict):
        merged.update(data)
    return merged


def _save_json(path: Path, data: dict[str, Any], tag: str) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError as e:
        print(f"[{tag}] Error saving {path.name}: {e}")
        return False
    return True


def load_state(path: Path) -> dict[str, Any]:
    state = _load_json_over(Path(path), DEFAULT_STATE, "Safety")
    if not isinstance(state.get("crashHistory"), list):
        state["crashHistory"] = []
    return state


def save_state(path: Path, state: dict[str, Any]) -> bool:
    return _save_json(Path(path), state, "Safety")


def load_update_config(path: Path) -> dict[str, Any]:
    return _load_json_over(Path(path), DEFAULT_UPDATE_CONFIG, "Update")


def save_update_config(path: Path, config: dict[str, Any]) -> bool:
    return _save_json(Path(path), config, "Update")


def recent_crashes(state: dict[str, Any], now: int | None = None) -> list[dict[str, Any]]:
    now = now_ms() if now is None else now
    window_start = now - int(state.get("crashWindowMs") or DEFAULT_CRASH_WINDOW_MS)
    return [c for c in state.get("crashHistory", []) if int(c.get("timestamp") or 0) >= window_start]


def clean_crash_history(state: dict[str, Any], now: int | None = None) -> dict[str, Any]:
    now = now_ms() if now is None else now
    cutoff = now - CRASH_HISTORY_RETENTION_MS
    state["crashHistory"] = [c for c in state.get("crashHistory", []) if int(c.get("timestamp") or 0) >= cutoff]
    return state


def rollback_available(state: dict[str, Any]) -> bool:
    snapshot = state.get("rollbackSnapshot")
    if not snapshot or not snapshot.get("path"):
        return False
    return Path(snapshot["path"]).exists()
