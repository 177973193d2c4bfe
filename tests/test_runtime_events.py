from __future__ import annotations

import asyncio
import os
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

from db.migrate import init_db
from framework.store import add_to_blacklist_sync

try:
    import discord
    from misc.events_runtime import register_runtime_events
    from misc.runtime_deps import RuntimeDeps
except ModuleNotFoundError:
    discord = None


class FakeBot:
    def __init__(self, guilds=()):
        self.user = "fmdb#0001"
        self.guilds = list(guilds)
        self.handlers = {}

    def event(self, fn):
        self.handlers[fn.__name__] = fn
        return fn


def _guild(guild_id, name="g"):
    return SimpleNamespace(id=guild_id, name=name, leave=mock.AsyncMock())


@unittest.skipIf(discord is None, "discord.py not installed")
class RuntimeEventTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        with mock.patch.dict(os.environ, {"FMDB_DATA_DIR": str(root / "data")}):
            self.conn = init_db(root / "fmdb.db")
        add_to_blacklist_sync(self.conn, guild_id=66, guild_name="Spam", blacklisted_by=1)
        self.panels = SimpleNamespace(
            recover_persistent_panels=mock.AsyncMock(return_value=(0, 0)),
            handle_interaction=mock.AsyncMock(return_value=True),
        )
        self.deps = RuntimeDeps(db_lock=asyncio.Lock(), db_conn=self.conn, panels=self.panels, test_guild_id=None)

    async def asyncTearDown(self):
        self.conn.close()
        self._tmp.cleanup()

    def _register(self, guilds=()):
        bot = FakeBot(guilds)
        register_runtime_events(bot, deps=self.deps)
        return bot

    async def test_joining_a_blacklisted_guild_leaves_it(self):
        bot = self._register()
        spam, friendly = _guild(66, "Spam"), _guild(67, "Friends")
        await bot.handlers["on_guild_join"](spam)
        await bot.handlers["on_guild_join"](friendly)
        spam.leave.assert_awaited_once()
        friendly.leave.assert_not_awaited()

    async def test_ready_leaves_blacklisted_guilds_once(self):
        spam, friendly = _guild(66), _guild(67)
        bot = self._register([spam, friendly])
        with mock.patch("misc.events_runtime.sync_commands", new=mock.AsyncMock()) as sync:
            await bot.handlers["on_ready"]()
            await bot.handlers["on_ready"]()

        spam.leave.assert_awaited_once()
        friendly.leave.assert_not_awaited()
        sync.assert_awaited_once()
        self.panels.recover_persistent_panels.assert_awaited_once_with(bot)

    async def test_only_panel_interactions_are_routed(self):
        bot = self._register()
        await bot.handlers["on_interaction"](SimpleNamespace(type=discord.InteractionType.application_command))
        self.panels.handle_interaction.assert_not_awaited()
        interaction = SimpleNamespace(type=discord.InteractionType.component)
        await bot.handlers["on_interaction"](interaction)
        self.panels.handle_interaction.assert_awaited_once_with(interaction)


if __name__ == "__main__":
    unittest.main()
