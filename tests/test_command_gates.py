from __future__ import annotations

import unittest
from types import SimpleNamespace

try:
    import discord
    from discord.ext import commands
except ModuleNotFoundError:
    discord = None
    commands = None

if discord is not None:
    from framework.commands import BOT_PERMISSIONS_MESSAGE
    from framework.commands import DEV_ONLY_MESSAGE
    from framework.commands import GUILD_ONLY_MESSAGE
    from framework.commands import TEST_ONLY_MESSAGE
    from framework.commands import USER_PERMISSIONS_MESSAGE
    from framework.commands import SlashCommand
    from framework.commands import check_command_gates
    from framework.commands import register_module_commands
    from framework.commands import sync_commands


async def _noop(bot, interaction):
    return None


def _interaction(*, user_id=1, guild_id=10, perms=None, bot_perms=None):
    guild = None
    if guild_id is not None:
        guild = SimpleNamespace(id=guild_id, me=SimpleNamespace(guild_permissions=bot_perms or SimpleNamespace()))
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, guild_permissions=perms or SimpleNamespace()),
        guild=guild,
        guild_id=guild_id,
    )


@unittest.skipIf(discord is None, "discord.py not installed")
class CommandGateTests(unittest.TestCase):
    def _check(self, command, interaction, *, devs=(), test_guild_id=10):
        return check_command_gates(command, interaction, is_dev=lambda uid: uid in devs, test_guild_id=test_guild_id)

    def test_unrestricted_command_runs_anywhere(self):
        command = SlashCommand(name="a", description="a", callback=_noop)
        self.assertIsNone(self._check(command, _interaction(guild_id=None)))

    def test_dev_only(self):
        command = SlashCommand(name="a", description="a", callback=_noop, dev_only=True)
        self.assertEqual(self._check(command, _interaction(user_id=5)), DEV_ONLY_MESSAGE)
        self.assertIsNone(self._check(command, _interaction(user_id=5), devs={5}))

    def test_test_only_requires_the_test_guild(self):
        command = SlashCommand(name="a", description="a", callback=_noop, test_only=True)
        self.assertEqual(self._check(command, _interaction(guild_id=11)), TEST_ONLY_MESSAGE)
        self.assertEqual(self._check(command, _interaction(guild_id=None)), TEST_ONLY_MESSAGE)
        self.assertEqual(self._check(command, _interaction(), test_guild_id=None), TEST_ONLY_MESSAGE)
        self.assertIsNone(self._check(command, _interaction(guild_id=10)))

    def test_guild_only_and_permissions(self):
        command = SlashCommand(name="a", description="a", callback=_noop, permissions_required=["manage_guild"])
        self.assertEqual(self._check(command, _interaction(guild_id=None)), GUILD_ONLY_MESSAGE)
        self.assertEqual(self._check(command, _interaction()), USER_PERMISSIONS_MESSAGE)
        allowed = _interaction(perms=SimpleNamespace(manage_guild=True))
        self.assertIsNone(self._check(command, allowed))

    def test_bot_permissions(self):
        command = SlashCommand(name="a", description="a", callback=_noop, bot_permissions=["kick_members"])
        self.assertEqual(self._check(command, _interaction()), BOT_PERMISSIONS_MESSAGE)
        self.assertIsNone(self._check(command, _interaction(bot_perms=SimpleNamespace(kick_members=True))))


@unittest.skipIf(discord is None, "discord.py not installed")
class RegisterModuleCommandsTests(unittest.TestCase):
    def _modules(self, *commands_list):
        return [SimpleNamespace(name="mod", commands=list(commands_list))]

    def test_test_mode_registers_only_test_commands_in_test_guild(self):
        bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
        normal = SlashCommand(name="normal", description="n", callback=_noop)
        scoped = SlashCommand(name="scoped", description="s", callback=_noop, test_only=True)

        registered = register_module_commands(
            bot, self._modules(normal, scoped), is_dev=lambda uid: False, test_mode=True, test_guild_id=10
        )
        self.assertEqual(registered, ["scoped"])
        self.assertEqual([c.name for c in bot.tree.get_commands(guild=discord.Object(id=10))], ["scoped"])
        self.assertEqual(bot.tree.get_commands(), [])

    def test_duplicates_and_missing_test_guild_are_skipped(self):
        bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
        first = SlashCommand(name="dup", description="d", callback=_noop)
        second = SlashCommand(name="dup", description="d2", callback=_noop)
        scoped = SlashCommand(name="scoped", description="s", callback=_noop, test_only=True)
        nameless = SlashCommand(name="", description="x", callback=_noop)

        registered = register_module_commands(
            bot, self._modules(first, second, scoped, nameless), is_dev=lambda uid: False, test_mode=False, test_guild_id=None
        )
        self.assertEqual(registered, ["dup"])
        self.assertEqual([c.description for c in bot.tree.get_commands()], ["d"])


@unittest.skipIf(discord is None, "discord.py not installed")
class SyncCommandsTests(unittest.IsolatedAsyncioTestCase):
    class FakeTree:
        def __init__(self, existing=None):
            self.synced = []
            self.cleared = []
            self.existing = existing or {}

        async def fetch_commands(self, guild=None):
            return self.existing.get(guild.id, [])

        def clear_commands(self, guild=None):
            self.cleared.append(guild.id)

        async def sync(self, guild=None):
            self.synced.append(guild.id if guild else None)
            return ["x"]

    async def test_without_test_guild_nothing_syncs(self):
        bot = SimpleNamespace(tree=self.FakeTree(), guilds=[])
        result = await sync_commands(bot, test_guild_id=None, load_last_test_guild=None, save_last_test_guild=None)
        self.assertEqual(result, {"global": 0, "guild": 0, "stale_cleared": 0})

    async def test_changed_test_guild_clears_previous(self):
        tree = self.FakeTree(existing={1: ["old-a", "old-b"]})
        bot = SimpleNamespace(tree=tree, guilds=[])
        saved = []

        async def load():
            return 1

        async def save(guild_id):
            saved.append(guild_id)

        result = await sync_commands(bot, test_guild_id=2, load_last_test_guild=load, save_last_test_guild=save)
        self.assertEqual(tree.cleared, [1])
        self.assertEqual(result["stale_cleared"], 2)
        self.assertEqual(tree.synced, [1, None, 2])
        self.assertEqual(saved, [2])

    async def test_first_run_scans_other_guilds(self):
        tree = self.FakeTree(existing={3: ["stale"]})
        bot = SimpleNamespace(tree=tree, guilds=[SimpleNamespace(id=2), SimpleNamespace(id=3), SimpleNamespace(id=4)])

        async def load():
            return None

        async def save(guild_id):
            return None

        result = await sync_commands(bot, test_guild_id=2, load_last_test_guild=load, save_last_test_guild=save)
        self.assertEqual(tree.cleared, [3])
        self.assertEqual(result["stale_cleared"], 1)
        self.assertEqual(result["global"], 1)


if __name__ == "__main__":
    unittest.main()
