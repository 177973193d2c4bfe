from __future__ import annotations

from dataclasses import dataclass

from config.defaults import SAFE_MODE_EXIT_CODE
from safety.rollback import RollbackError
from safety.rollback import perform_rollback
from safety.state import SafetyPaths
from safety.state import clean_crash_history
from safety.state import load_state
from safety.state import load_update_config
from safety.state import now_ms
from safety.state import recent_crashes
from safety.state import rollback_available
from safety.state import save_state


@dataclass(frozen=True)
class SafetyCheckResult:
    exit_code: int
    safe_mode: bool
    recent_crash_count: int
    rolled_back: bool = False
    reason: str | None = None


def ensure_directories(paths: SafetyPaths) -> list[str]:
    """Create crash-logs, backups and recovery dirs. Permission problems are warned about, not fatal."""
    created: list[str] = []
    for directory in (paths.crash_logs_dir, paths.backups_dir, paths.recovery_dir):
        if directory.exists():
            continue
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            print(f"[Safety] Permission denied creating {directory}; some features may be limited")
            continue
        except OSError as e:
            print(f"[Safety] Failed to create directory {directory}: {e}")
            continue
        print(f"[Safety] Created directory: {directory}")
        created.append(str(directory))
    return created


def perform_safety_check(paths: SafetyPaths, now: int | None = None) -> SafetyCheckResult:
    now = now_ms() if now is None else now
    state = clean_crash_history(load_state(paths.state_path), now)
    recent = recent_crashes(state, now)
    threshold = int(state["maxConsecutiveCrashes"])
    window_minutes = int(state["crashWindowMs"]) / 60000

    print(f"[Safety] Recent crashes: {len(recent)} in last {window_minutes:g} minutes (threshold {threshold})")
    print(f"[Safety] Safe mode: {'ENABLED' if state['safeMode'] else 'disabled'}")

    if state["safeMode"]:
        print("[Safety] SAFE MODE ACTIVE: bot auto-start is disabled. Use the admin API to start, roll back or clear safe mode.")
        return SafetyCheckResult(
            exit_code=SAFE_MODE_EXIT_CODE,
            safe_mode=True,
            recent_crash_count=len(recent),
            reason=state.get("safeModeReason"),
        )

    if len(recent) >= threshold:
        print(f"[Safety] CRASH THRESHOLD EXCEEDED: {len(recent)} crashes in the last {window_minutes:g} minutes")
        rolled_back = False
        if rollback_available(state):
            snapshot = state["rollbackSnapshot"]
            print(f"[Safety] Rollback available: {snapshot.get('version') or 'previous version'}, rolling back")
            try:
                perform_rollback(snapshot, paths.source_dir)
            except (RollbackError, OSError) as e:
                print(f"[Safety] Rollback failed: {e}")
            else:
                rolled_back = True
                state["crashHistory"] = []
                state["crashCount"] = 0
        else:
            print("[Safety] No rollback available")

        reason = f"Exceeded crash threshold ({len(recent)}/{threshold})"
        state["safeMode"] = True
        state["safeModeReason"] = reason
        state["safeModeTimestamp"] = now
        save_state(paths.state_path, state)
        print("[Safety] Entering SAFE MODE to prevent further crashes")
        return SafetyCheckResult(
            exit_code=SAFE_MODE_EXIT_CODE,
            safe_mode=True,
            recent_crash_count=len(recent),
            rolled_back=rolled_back,
            reason=reason,
        )

    update_config = load_update_config(paths.update_config_path)
    if update_config.get("updateInProgress"):
        print(f"[Safety] Update in progress: {update_config.get('updateMode') or 'unknown'}")
        state["lastUpdateAttempt"] = now
        state["lastUpdateMode"] = update_config.get("updateMode")

    save_state(paths.state_path, state)
    print("[Safety] Safety check passed")
    return SafetyCheckResult(exit_code=0, safe_mode=False, recent_crash_count=len(recent))
