from __future__ import annotations

import asyncio
import importlib
import tempfile
from pathlib import Path


async def _noop_check_updates():
    return {"success": True, "hasUpdates": False, "currentVersion": "0.0.0"}


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install the project and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from db.migrate import init_db
    from misc.runtime_wiring import wire_bot_runtime
    from panels.manager import PanelManager
    from framework.registry import ModuleRegistry
    from safety.state import SafetyPaths

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        intents = discord.Intents.none()
        bot = commands.Bot(command_prefix="!", intents=intents)
        db_lock = asyncio.Lock()
        db_conn = init_db(root / "fmdb.db")
        panels = PanelManager(is_dev=lambda user_id: True, main_guild_id=1, db_lock=db_lock, db_conn=db_conn)

        registered = wire_bot_runtime(
            bot,
            db_lock=db_lock,
            db_conn=db_conn,
            panels=panels,
            registry=ModuleRegistry(),
            paths=SafetyPaths(data_dir=root, source_dir=root / "src", original_source_dir=root / "orig"),
            is_dev=lambda user_id: True,
            test_guild_id=123456789012345678,
            main_guild_id=123456789012345678,
            check_updates=_noop_check_updates,
            started_at=0.0,
        )
        db_conn.close()

    expected_commands = {"ping", "update-check", "system", "panel"}
    existing_commands = {c.name for c in bot.tree.get_commands()}
    missing = sorted(expected_commands - existing_commands)
    if missing or set(registered) != expected_commands:
        raise RuntimeError(f"Missing expected commands: {missing}")

    if panels.get("system_info") is None or panels.get("guild_panels") is None:
        raise RuntimeError("Internal panels were not registered")

    if not all(hasattr(bot, name) for name in ("on_ready", "on_guild_join", "on_interaction")):
        raise RuntimeError("Runtime events were not registered")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
