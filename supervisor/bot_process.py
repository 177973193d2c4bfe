from __future__ import annotations

import asyncio
import os
import signal as signal_module
import sys
import time
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from typing import Awaitable
from typing import Callable

from config.defaults import LOG_BUFFER_MAX_LINES
from config.defaults import READY_LOG_MARKER
from config.defaults import READY_WAIT_SECONDS
from config.defaults import RESTART_DELAY_SECONDS
from config.defaults import SHUTDOWN_GRACE_SECONDS
from config.env import CREDENTIAL_KEYS
from config.env import load_credentials
from config.env import validate_credentials


SENSITIVE_EVENT_FIELDS = {
    "token",
    "password",
    "secret",
    "apiKey",
    "api_key",
    "privateKey",
    "private_key",
    "credential",
    "auth",
    "authorization",
}


def sanitize_event_data(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    return {k: v for k, v in data.items() if k not in SENSITIVE_EVENT_FIELDS}


def _signal_name(returncode: int) -> str:
    try:
        return signal_module.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class BotProcessManager:
    """Runs `bot.py` as a child process and keeps a ring buffer of its output."""

    def __init__(
        self,
        *,
        safety,
        data_dir: Path,
        source_dir: Path,
        safe_mode: bool = False,
        command: list[str] | None = None,
        ready_wait_seconds: float = READY_WAIT_SECONDS,
        record_event: Callable[[str, dict[str, Any]], Awaitable[None]] | None = None,
    ) -> None:
        self.safety = safety
        self.data_dir = Path(data_dir)
        self.source_dir = Path(source_dir)
        self.safe_mode = safe_mode
        self.command = command or [sys.executable, "-u", str(self.source_dir / "bot.py")]
        self.ready_wait_seconds = ready_wait_seconds
        self.record_event = record_event

        self.logs: deque[str] = deque(maxlen=LOG_BUFFER_MAX_LINES)
        self.crash_logs: list[str] = []
        self.crashed = False
        self.process: asyncio.subprocess.Process | None = None
        self.started_at: float = 0.0
        self._operation_in_progress = False
        self._watch_task: asyncio.Task | None = None
        self._subscribers: set[asyncio.Queue] = set()
        self._ready = False

        if safe_mode:
            print("[BotManager] Initialized in SAFE MODE, bot auto-start disabled")

    # live log subscribers

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=1000)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def _emit(self, event_type: str, data: Any) -> None:
        event = {"type": event_type, "data": sanitize_event_data(data)}
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # slow consumer; drop its oldest event
                queue.get_nowait()
                queue.put_nowait(event)

    def _add_log(self, line: str) -> None:
        self.logs.append(line)
        self._emit("bot:log", {"line": line, "timestamp": datetime.now(timezone.utc).isoformat()})

    # lifecycle

    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    def is_in_safe_mode(self) -> bool:
        return self.safe_mode or self.safety.is_in_safe_mode()

    def disable_safe_mode(self) -> None:
        self.safe_mode = False
        self.safety.disable_safe_mode()

    def status(self) -> dict[str, Any]:
        running = self.is_running()
        return {
            "running": running,
            "uptime": int(time.time() - self.started_at) if running and self.started_at else 0,
            "processId": self.process.pid if running else None,
            "crashed": self.crashed,
            "safeMode": self.is_in_safe_mode(),
        }

    async def start(self) -> dict[str, Any]:
        if self._operation_in_progress:
            return {"success": False, "reason": "operation_in_progress", "error": "Another operation is in progress"}
        if self.is_running():
            return {"success": False, "reason": "already_running", "error": "Bot is already running"}

        self._operation_in_progress = True
        try:
            credentials = load_credentials(self.data_dir)
            ok, _missing, reason = validate_credentials(credentials)
            if not ok:
                print("[BotManager] Credentials not set, bot in standby")
                return {"success": False, "reason": "credentials_missing", "error": reason}

            env = dict(os.environ)
            env.update({k: str(credentials[k]) for k in CREDENTIAL_KEYS if credentials.get(k) is not None})
            env["PYTHONUNBUFFERED"] = "1"

            print(f"[BotManager] Starting bot: {' '.join(self.command)}")
            try:
                self.process = await asyncio.create_subprocess_exec(
                    *self.command,
                    cwd=str(self.source_dir),
                    env=env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                print(f"[BotManager] Error starting bot: {e}")
                return {"success": False, "reason": "exception", "error": str(e)}

            self.started_at = time.time()
            self.crashed = False
            self._ready = False
            self._watch_task = asyncio.create_task(self._watch(self.process))

            await self._wait_for_ready(self.ready_wait_seconds)
            if not self.is_running():
                return {"success": False, "reason": "startup_failed", "error": "Bot process failed to start"}

            print("[BotManager] Bot started successfully")
            self._emit("bot:startup", self.status())
            return {"success": True}
        finally:
            self._operation_in_progress = False

    async def _pump(self, stream: asyncio.StreamReader, is_stderr: bool) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\n")
            if is_stderr:
                line = f"[ERROR] {line}"
            if READY_LOG_MARKER in line:
                self._ready = True
            self._add_log(line)
            print(f"[Bot] {line}", file=sys.stderr if is_stderr else sys.stdout, flush=True)

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        await asyncio.gather(self._pump(process.stdout, False), self._pump(process.stderr, True))
        returncode = await process.wait()

        exit_code: int | None = returncode if returncode >= 0 else None
        signal_name = _signal_name(returncode) if returncode < 0 else None
        print(f"[BotManager] Bot exited with code: {exit_code}, signal: {signal_name}")

        if exit_code not in (0, None):
            self.crashed = True
            self.crash_logs = list(self.logs)
            self._add_log(f"[BotManager] BOT CRASHED - Exit code: {exit_code}")
            self.safety.record_crash(exit_code, signal_name, self.crash_logs)
            self._emit("bot:crash", {"code": exit_code, "signal": signal_name, "logs": self.crash_logs[-50:]})
            if self.record_event is not None:
                await self.record_event("crash", {"exitCode": exit_code, "signal": signal_name})
        else:
            self.crashed = False
            self.crash_logs = []

        if self.process is process:
            self.process = None
            self.started_at = 0.0
        self._emit("bot:status", self.status())

    async def _wait_for_ready(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if not self.is_running():
                # let the watcher finish recording the exit
                if self._watch_task is not None:
                    await asyncio.wait({self._watch_task}, timeout=1.0)
                return False
            if self._ready:
                return True
            await asyncio.sleep(0.1)
        return self.is_running()

    async def restart(self) -> dict[str, Any]:
        if self._operation_in_progress:
            return {"success": False, "reason": "operation_in_progress", "error": "Another operation is in progress"}
        print("[BotManager] Restarting bot...")
        if self.is_running():
            await self.shutdown(emergency=False)
            await asyncio.sleep(RESTART_DELAY_SECONDS)
        return await self.start()

    async def shutdown(self, emergency: bool = False, *, grace_seconds: float = SHUTDOWN_GRACE_SECONDS) -> bool:
        if not emergency and self._operation_in_progress:
            print("[BotManager] Another operation is in progress, shutdown blocked")
            return False
        process = self.process
        if process is None or process.returncode is not None:
            print("[BotManager] Bot is not running")
            return False

        if emergency:
            self._operation_in_progress = True
        try:
            sig = signal_module.SIGKILL if emergency else signal_module.SIGTERM
            print(f"[BotManager] Shutting down bot with {sig.name}...")
            process.send_signal(sig)
            self._add_log(f"[BotManager] Bot shutdown initiated ({sig.name})")
            self._emit("bot:shutdown", {"signal": sig.name, "emergency": emergency})

            try:
                await asyncio.wait_for(process.wait(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                if not emergency:
                    print("[BotManager] Bot did not exit gracefully, forcing shutdown")
                process.kill()
                await process.wait()
            if self._watch_task is not None:
                await asyncio.wait({self._watch_task}, timeout=grace_seconds)
        finally:
            if emergency:
                self._operation_in_progress = False
        return True

    def get_logs(self, include_crash: bool = False) -> dict[str, Any]:
        if include_crash and self.crash_logs:
            return {"current": list(self.logs), "crash": list(self.crash_logs), "crashed": True}
        return {"current": list(self.logs), "crashed": False}

    def clear_logs(self) -> None:
        self.logs.clear()
        self.crash_logs = []
        self.crashed = False
        print("[BotManager] Logs cleared")
