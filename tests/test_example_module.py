from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

from framework.data import DataManager
from framework.loader import import_file
from framework.manifest import load_manifest
from framework.manifest import validate_manifest
from panels.types import PanelContext
from settings.discovery import SettingsDiscovery
from settings.storage import SettingsStore

try:
    import discord
except ModuleNotFoundError:
    discord = None


REPO_ROOT = Path(__file__).resolve().parents[1]
MODULE_DIR = REPO_ROOT / "modules" / "examples"


def _message(*, guild_id=5, author_id=1, bot=False):
    return SimpleNamespace(
        guild=SimpleNamespace(id=guild_id) if guild_id is not None else None,
        author=SimpleNamespace(id=author_id, bot=bot),
    )


class _ExampleModuleTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        data_dir = Path(self._tmp.name)
        self.settings = SettingsStore(data_dir, SettingsDiscovery(REPO_ROOT))
        self.bot = SimpleNamespace(services=SimpleNamespace(data=DataManager(data_dir), settings=self.settings))

    def tearDown(self):
        self._tmp.cleanup()


class ExampleManifestTests(unittest.TestCase):
    def test_manifest_and_settings_are_valid(self):
        manifest = load_manifest(MODULE_DIR / "module.yml")
        errors, _warnings = validate_manifest(manifest.raw)
        self.assertEqual(errors, [])
        self.assertEqual(manifest.config_schema["id"], "examples.json")

        schema = SettingsDiscovery(REPO_ROOT).get_schema("examples")
        self.assertIsNotNone(schema)
        self.assertEqual(schema.defaults()["counterStep"], 1)


class MessageCounterTests(_ExampleModuleTestCase):
    def setUp(self):
        super().setUp()
        self.counter = import_file(MODULE_DIR / "events" / "message" / "count_messages.py", module_name="examples")

    async def _send(self, message):
        await self.counter.handle(self.bot, message)

    async def test_counts_per_guild_and_user(self):
        await self._send(_message(author_id=1))
        await self._send(_message(author_id=1))
        await self._send(_message(author_id=2))
        await self._send(_message(guild_id=6))
        await self._send(_message(guild_id=None))

        self.assertEqual(self.counter.message_count(self.bot, 5), 3)
        self.assertEqual(self.counter.message_count(self.bot, 6), 1)
        counts = self.bot.services.data.load_module_data("message-counts.json", 5, "examples")
        self.assertEqual(counts["users"], {"1": 2, "2": 1})

    async def test_settings_control_counting(self):
        await self._send(_message(bot=True))
        self.assertEqual(self.counter.message_count(self.bot, 5), 0)

        self.settings.save_module_settings("examples", {"countBots": True}, guild_id=5)
        await self._send(_message(bot=True))
        self.assertEqual(self.counter.message_count(self.bot, 5), 1)

        self.settings.save_module_settings("examples", {"countMessages": False})
        await self._send(_message())
        self.assertEqual(self.counter.message_count(self.bot, 5), 1)


@unittest.skipIf(discord is None, "discord.py not installed")
class ExamplePanelTests(_ExampleModuleTestCase):
    def setUp(self):
        super().setUp()
        self.panel_module = import_file(MODULE_DIR / "panels" / "example_panel.py", module_name="examples")

    def _context(self, **data):
        return PanelContext(bot=self.bot, interaction=None, panel_id="example_panel", user_id=1, guild_id=5, data=data)

    async def test_counter_uses_the_step_setting(self):
        panel = self.panel_module.PANEL
        self.assertTrue(panel.persistent)

        opened = await panel.callback(self._context())
        self.assertEqual(opened.state, {"count": 0, "color": "purple"})
        self.assertEqual(opened.embeds[0].color.value, 0x9B59B6)

        self.settings.save_module_settings("examples", {"counterStep": 3}, guild_id=5)
        clicked = await panel.handle_button(self._context(**opened.state), "increment")
        self.assertEqual(clicked.state["count"], 3)
        reset = await panel.handle_button(self._context(**clicked.state), "reset")
        self.assertEqual(reset.state["count"], 0)

    async def test_color_select(self):
        panel = self.panel_module.PANEL
        picked = await panel.handle_dropdown(self._context(count=2), ["green"], "color")
        self.assertEqual(picked.state, {"count": 2, "color": "green"})
        self.assertEqual(picked.embeds[0].color.value, 0x2ECC71)
        ignored = await panel.handle_dropdown(self._context(), ["pink"], "color")
        self.assertEqual(ignored.state["color"], "purple")


if __name__ == "__main__":
    unittest.main()
