import argparse
import asyncio
import signal

from admin.deps import AdminDeps
from admin.server import start_admin_server
from config.defaults import DEFAULT_BACKUPS_TO_KEEP
from config.defaults import DEFAULT_HEALTH_GRACE_SECONDS
from config.defaults import admin_host
from config.defaults import admin_port
from config.defaults import db_path
from config.defaults import update_repo
from config.env import load_credentials
from config.manager import ConfigManager
from config.manager import config_metas_from_manifests
from db.migrate import init_db
from framework.loader import ModuleLoader
from framework.registry import ModuleRegistry
from safety.audit_store import list_update_events_sync
from safety.audit_store import record_update_event_sync
from safety.manager import UpdateSafetyManager
from safety.state import SafetyPaths
from settings.discovery import SettingsDiscovery
from settings.storage import SettingsStore
from supervisor.bot_process import BotProcessManager
from updater.github import check_for_updates
from updater.local import current_version


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="FMDB manager: admin API and bot supervisor")
    parser.add_argument(
        "--safe-mode",
        action="store_true",
        help="Start the admin API without starting the bot",
    )
    return parser.parse_args(argv)


async def run_manager(safe_mode: bool = False) -> int:
    paths = SafetyPaths.from_env()
    print(f"[Manager] data_dir={paths.data_dir} source_dir={paths.source_dir} safe_mode={safe_mode}")

    config = ConfigManager(paths.data_dir)
    config.ensure_config_populated()
    safety = UpdateSafetyManager(paths)

    db_conn = init_db(db_path())
    db_lock = asyncio.Lock()

    async def record_event(event_type: str, detail: dict) -> None:
        async with db_lock:
            await asyncio.to_thread(record_update_event_sync, db_conn, event_type, detail)

    async def list_events(limit: int) -> list[dict]:
        async with db_lock:
            return await asyncio.to_thread(list_update_events_sync, db_conn, limit)

    # module config files are listed by the admin API without importing module code
    manifests = [manifest for manifest, _path in ModuleLoader(paths.source_dir, ModuleRegistry()).discover()]
    config.register_config_files(config_metas_from_manifests(manifests))

    bot = BotProcessManager(
        safety=safety,
        data_dir=paths.data_dir,
        source_dir=paths.source_dir,
        safe_mode=safe_mode,
        record_event=record_event,
    )

    async def check_updates() -> dict:
        return await check_for_updates(update_repo(), current_version(paths.source_dir))

    def keep_backups() -> int:
        try:
            return int(config.get_config_property("system.keepBackups") or DEFAULT_BACKUPS_TO_KEEP)
        except (TypeError, ValueError):
            return DEFAULT_BACKUPS_TO_KEEP

    deps = AdminDeps(
        bot=bot,
        safety=safety,
        paths=paths,
        config=config,
        settings=SettingsStore(paths.data_dir, SettingsDiscovery(paths.source_dir)),
        admin_token=load_credentials(paths.data_dir).get("ADMIN_TOKEN") or None,
        check_updates=check_updates,
        record_event=record_event,
        list_events=list_events,
        keep_backups=keep_backups,
    )
    runner = await start_admin_server(deps, admin_host(), admin_port())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    health_task = None
    if bot.is_in_safe_mode():
        print("[Manager] Safe mode is active; the bot will not auto-start. Use the admin API to recover.")
    else:
        result = await bot.start()
        if result.get("success"):
            try:
                grace = float(config.get_config_property("system.healthGraceSeconds"))
            except (TypeError, ValueError):
                grace = DEFAULT_HEALTH_GRACE_SECONDS
            health_task = asyncio.create_task(safety.validate_health(grace, is_running=bot.is_running))
        else:
            print(f"[Manager] Bot not started: {result.get('error')}")

    await stop.wait()
    print("[Manager] Received shutdown signal, stopping...")
    if health_task is not None:
        health_task.cancel()
    if bot.is_running():
        await bot.shutdown()
    await runner.cleanup()
    db_conn.close()
    print("[Manager] Stopped")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    return asyncio.run(run_manager(safe_mode=args.safe_mode))


if __name__ == "__main__":
    raise SystemExit(main())
