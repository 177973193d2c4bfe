from __future__ import annotations

import asyncio
import shutil

from aiohttp import web

from admin.deps import AdminDeps
from admin.http import fail
from admin.http import ok
from admin.http import parse_limit
from admin.http import read_json
from config.defaults import USER_UPDATE_MODES
from safety.pre_update import run_pre_update
from safety.rollback import BACKUP_PREFIX
from safety.rollback import BACKUP_SOURCE_DIRNAME
from safety.rollback import RollbackError
from safety.rollback import cleanup_old_backups
from safety.rollback import create_snapshot
from safety.rollback import find_backup
from safety.rollback import perform_rollback
from updater.local import trigger_update
from updater.local import update_status


def register(app: web.Application, *, deps: AdminDeps) -> None:
    paths = deps.paths
    safety = deps.safety
    bot = deps.bot

    def _backup_path(request: web.Request):
        timestamp = request.match_info["timestamp"]
        if not timestamp.isdigit():
            return None
        return paths.backups_dir / f"{BACKUP_PREFIX}{timestamp}"

    async def status(request: web.Request) -> web.Response:
        return ok(safety=safety.reload(), bot=bot.status(), update=update_status(paths.update_config_path))

    async def check(request: web.Request) -> web.Response:
        result = await deps.check_updates()
        return web.json_response(result, status=200 if result.get("success") else 502)

    async def trigger(request: web.Request) -> web.Response:
        body = await read_json(request)
        mode = body.get("mode") or "relative"
        if mode not in USER_UPDATE_MODES:
            return fail(f"Invalid update mode. Must be {', '.join(USER_UPDATE_MODES)}.")
        result = trigger_update(paths.update_config_path, mode)
        if not result.get("success"):
            return web.json_response(result, status=500)
        await deps.record_event("update_triggered", {"mode": mode})

        if body.get("applyNow") is True:
            was_running = bot.is_running()
            if was_running:
                await bot.shutdown(emergency=False)
            exit_code = await asyncio.to_thread(run_pre_update, paths)
            safety.reload()
            await deps.record_event("update_applied", {"mode": mode, "exitCode": exit_code})
            if exit_code != 0:
                return fail("Update failed, see logs", status=500)
            restarted = (await bot.start()).get("success") if was_running else False
            return ok(message=f"Update ({mode}) applied", restarted=bool(restarted))
        return web.json_response(result)

    async def backups(request: web.Request) -> web.Response:
        return ok(backups=safety.backups())

    async def create_backup(request: web.Request) -> web.Response:
        body = await read_json(request)
        description = str(body.get("description") or "Manual backup")
        backup = await asyncio.to_thread(create_snapshot, paths.backups_dir, paths.source_dir, description)
        removed = await asyncio.to_thread(cleanup_old_backups, paths.backups_dir, deps.keep_backups())
        await deps.record_event("backup_created", {"name": backup["name"], "removed": removed})
        return ok(backup=backup, removed=removed)

    async def delete_backup(request: web.Request) -> web.Response:
        backup_path = _backup_path(request)
        if backup_path is None or not backup_path.is_dir():
            return fail("Backup not found", status=404)
        await asyncio.to_thread(shutil.rmtree, backup_path)
        await deps.record_event("backup_deleted", {"name": backup_path.name})
        return ok(message="Backup deleted successfully")

    async def rollback(request: web.Request) -> web.Response:
        backup_path = _backup_path(request)
        if backup_path is None or not backup_path.is_dir():
            return fail("Backup not found", status=404)
        if not (backup_path / BACKUP_SOURCE_DIRNAME).is_dir():
            return fail(f"Backup is corrupted (missing {BACKUP_SOURCE_DIRNAME})")

        backup = find_backup(paths.backups_dir, backup_path.name) or {"path": str(backup_path), "version": "unknown"}
        if bot.is_running():
            await bot.shutdown(emergency=False)
        try:
            await asyncio.to_thread(perform_rollback, backup, paths.source_dir)
        except RollbackError as e:
            await deps.record_event("rollback_failed", {"name": backup_path.name, "error": str(e)})
            return fail(str(e), status=500)
        safety.create_rollback_snapshot(str(backup.get("version") or "unknown"), "rollback", backup_path)
        await deps.record_event("rollback", {"name": backup_path.name, "source": "admin"})
        return ok(message="Rollback successful. Please restart the bot.")

    async def disable_safe_mode(request: web.Request) -> web.Response:
        bot.disable_safe_mode()
        await deps.record_event("safe_mode_disabled", {"source": "admin"})
        return ok(message="Safe mode disabled")

    async def clear_crashes(request: web.Request) -> web.Response:
        safety.clear_crash_history()
        return ok(message="Crash history cleared")

    async def crash_logs(request: web.Request) -> web.Response:
        limit = parse_limit(request.query.get("limit"), 10, maximum=100)
        if limit is None:
            return fail("Invalid limit parameter - must be a non-negative integer")
        return ok(crashes=safety.crash_logs(limit))

    async def events(request: web.Request) -> web.Response:
        limit = parse_limit(request.query.get("limit"), 50, maximum=500)
        if limit is None:
            return fail("Invalid limit parameter - must be a non-negative integer")
        return ok(events=await deps.list_events(limit))

    app.router.add_get("/api/update/status", status)
    app.router.add_post("/api/update/check", check)
    app.router.add_post("/api/update/trigger", trigger)
    app.router.add_get("/api/update/backups", backups)
    app.router.add_post("/api/update/backup", create_backup)
    app.router.add_delete("/api/update/backup/{timestamp}", delete_backup)
    app.router.add_post("/api/update/rollback/{timestamp}", rollback)
    app.router.add_post("/api/update/safe-mode/disable", disable_safe_mode)
    app.router.add_post("/api/update/crashes/clear", clear_crashes)
    app.router.add_get("/api/update/crash-logs", crash_logs)
    app.router.add_get("/api/update/events", events)
