from __future__ import annotations

import asyncio
import copy
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from typing import Callable

from config.defaults import CRASH_LOG_RETENTION_MS
from config.defaults import CRASH_LOG_TAIL_LINES
from config.defaults import DEFAULT_HEALTH_GRACE_SECONDS
from safety.check import ensure_directories
from safety.rollback import list_backups
from safety.state import SafetyPaths
from safety.state import clean_crash_history
from safety.state import load_state
from safety.state import now_ms
from safety.state import recent_crashes
from safety.state import save_state


CRASH_THRESHOLD_MARKER = "crash threshold"


class UpdateSafetyManager:
    """Runtime view of `update-safety.json` used by the manager process."""

    def __init__(self, paths: SafetyPaths) -> None:
        self.paths = paths
        ensure_directories(paths)
        self.state = load_state(paths.state_path)

    def _save(self) -> None:
        save_state(self.paths.state_path, self.state)

    def reload(self) -> dict[str, Any]:
        self.state = load_state(self.paths.state_path)
        return self.status()

    def record_crash(
        self,
        exit_code: int | None,
        signal: str | None,
        logs: list[str] | None = None,
        *,
        error_message: str | None = None,
    ) -> dict[str, Any]:
        now = now_ms()
        crash: dict[str, Any] = {"timestamp": now, "exitCode": exit_code, "signal": signal}
        if logs:
            crash["logSnippet"] = list(logs)[-CRASH_LOG_TAIL_LINES:]
        if error_message:
            crash["errorMessage"] = error_message
        if self.state.get("lastUpdateMode"):
            crash["updateMode"] = self.state["lastUpdateMode"]

        self.state["crashHistory"].append(crash)
        self.state["crashCount"] = int(self.state.get("crashCount") or 0) + 1
        clean_crash_history(self.state, now)
        self._write_crash_log(crash)

        recent = recent_crashes(self.state, now)
        threshold = int(self.state["maxConsecutiveCrashes"])
        if len(recent) >= threshold:
            self.enable_safe_mode(f"Exceeded crash threshold ({len(recent)}/{threshold})")
        self._save()

        print(f"[UpdateSafety] Recorded crash: exit_code={exit_code} signal={signal}")
        print(f"[UpdateSafety] Recent crashes: {len(recent)}/{threshold}")
        return crash

    def _write_crash_log(self, crash: dict[str, Any]) -> None:
        stamp = datetime.fromtimestamp(crash["timestamp"] / 1000, tz=timezone.utc).isoformat().replace(":", "-")
        try:
            self.paths.crash_logs_dir.mkdir(parents=True, exist_ok=True)
            (self.paths.crash_logs_dir / f"crash-{stamp}.json").write_text(json.dumps(crash, indent=2), encoding="utf-8")
        except OSError as e:
            print(f"[UpdateSafety] Error saving crash log: {e}")
            return
        self._prune_crash_logs()

    def _prune_crash_logs(self) -> None:
        cutoff = (now_ms() - CRASH_LOG_RETENTION_MS) / 1000
        for path in self.paths.crash_logs_dir.glob("crash-*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
            except OSError as e:
                print(f"[UpdateSafety] Error cleaning crash log {path.name}: {e}")

    def record_successful_start(self) -> None:
        self.state["lastSuccessfulStart"] = now_ms()
        self.state["crashCount"] = 0
        if self.state.get("safeMode") and CRASH_THRESHOLD_MARKER in str(self.state.get("safeModeReason") or ""):
            self.disable_safe_mode()
        self._save()
        print("[UpdateSafety] Recorded successful startup")

    def enable_safe_mode(self, reason: str) -> None:
        self.state["safeMode"] = True
        self.state["safeModeReason"] = reason
        self.state["safeModeTimestamp"] = now_ms()
        self._save()
        print(f"[UpdateSafety] Safe mode ENABLED: {reason}")

    def disable_safe_mode(self) -> None:
        self.state["safeMode"] = False
        self.state.pop("safeModeReason", None)
        self.state.pop("safeModeTimestamp", None)
        self._save()
        print("[UpdateSafety] Safe mode DISABLED")

    def is_in_safe_mode(self) -> bool:
        return bool(self.state.get("safeMode"))

    def status(self) -> dict[str, Any]:
        status = copy.deepcopy(self.state)
        status["recentCrashes"] = len(recent_crashes(self.state))
        return status

    def clear_crash_history(self) -> None:
        self.state["crashHistory"] = []
        self.state["crashCount"] = 0
        self._save()
        print("[UpdateSafety] Crash history cleared")

    def crash_logs(self, limit: int = 10) -> list[dict[str, Any]]:
        directory = self.paths.crash_logs_dir
        if not directory.is_dir():
            return []
        logs: list[dict[str, Any]] = []
        for path in sorted(directory.glob("crash-*.json"), reverse=True)[: max(0, int(limit))]:
            try:
                logs.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                print(f"[UpdateSafety] Error reading crash log {path.name}: {e}")
        return logs

    def create_rollback_snapshot(self, version: str, update_mode: str, backup_path: str | Path) -> dict[str, Any]:
        snapshot: dict[str, Any] = {
            "timestamp": now_ms(),
            "version": version,
            "updateMode": update_mode,
            "path": str(backup_path),
        }
        if Path(backup_path).exists():
            snapshot["size"] = Path(backup_path).stat().st_size
        self.state["rollbackSnapshot"] = snapshot
        self.state["rollbackAvailable"] = True
        self._save()
        print(f"[UpdateSafety] Created rollback snapshot: {version}")
        return snapshot

    def clear_rollback_snapshot(self) -> None:
        self.state["rollbackSnapshot"] = None
        self.state["rollbackAvailable"] = False
        self._save()
        print("[UpdateSafety] Rollback snapshot cleared")

    def backups(self) -> list[dict[str, Any]]:
        return list_backups(self.paths.backups_dir)

    async def validate_health(
        self,
        grace_seconds: float = DEFAULT_HEALTH_GRACE_SECONDS,
        *,
        is_running: Callable[[], bool] | None = None,
    ) -> bool:
        """Count the start as successful if the bot is still up after the grace period."""
        print(f"[UpdateSafety] Starting health validation ({grace_seconds:g}s grace period)")
        await asyncio.sleep(grace_seconds)
        if is_running is not None and not is_running():
            print("[UpdateSafety] Bot stopped during the grace period, start not recorded")
            return False
        self.record_successful_start()
        return True
