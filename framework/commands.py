from __future__ import annotations

import inspect
import typing
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Callable

import discord
from discord import app_commands


DEV_ONLY_MESSAGE = "Only developers are allowed to run this command."
TEST_ONLY_MESSAGE = "This command cannot be run here."
GUILD_ONLY_MESSAGE = "This command only works inside a server."
USER_PERMISSIONS_MESSAGE = "You don't have enough permissions."
BOT_PERMISSIONS_MESSAGE = "I don't have enough permissions."
COMMAND_ERROR_MESSAGE = "There was an error running this command."


@dataclass
class SlashCommand:
    """A module command. `callback(bot, interaction, **options)`; option types come from its annotations."""

    name: str
    description: str
    callback: Callable
    options: dict[str, str] = field(default_factory=dict)
    dev_only: bool = False
    test_only: bool = False
    guild_only: bool = False
    permissions_required: list[str] = field(default_factory=list)
    bot_permissions: list[str] = field(default_factory=list)
    autocomplete: dict[str, Callable] = field(default_factory=dict)
    module_name: str | None = None


def _missing_permissions(perms, required: list[str]) -> list[str]:
    if perms is None:
        return list(required)
    return [name for name in required if not getattr(perms, name, False)]


def check_command_gates(
    command: SlashCommand,
    interaction,
    *,
    is_dev: Callable[[int], bool],
    test_guild_id: int | None,
) -> str | None:
    """Return the denial message for this invocation, or None when it may run."""
    if command.dev_only and not is_dev(int(interaction.user.id)):
        return DEV_ONLY_MESSAGE

    guild_id = getattr(interaction, "guild_id", None)
    if command.test_only and (guild_id is None or test_guild_id is None or int(guild_id) != int(test_guild_id)):
        return TEST_ONLY_MESSAGE

    guild = getattr(interaction, "guild", None)
    if (command.guild_only or command.permissions_required) and guild is None:
        return GUILD_ONLY_MESSAGE

    if command.permissions_required:
        perms = getattr(interaction.user, "guild_permissions", None)
        if _missing_permissions(perms, command.permissions_required):
            return USER_PERMISSIONS_MESSAGE

    if command.bot_permissions and guild is not None:
        me = getattr(guild, "me", None)
        if me is not None and _missing_permissions(getattr(me, "guild_permissions", None), command.bot_permissions):
            return BOT_PERMISSIONS_MESSAGE
    return None


async def _reply_ephemeral(interaction, text: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(text, ephemeral=True)
    else:
        await interaction.response.send_message(text, ephemeral=True)


def _command_signature(callback: Callable) -> inspect.Signature:
    # Drop the leading `bot` parameter and resolve string annotations against the callback's module.
    sig = inspect.signature(callback)
    hints = typing.get_type_hints(callback)
    params = list(sig.parameters.values())[1:]
    if not params:
        raise TypeError(f"Command callback {callback.__qualname__} must accept (bot, interaction, ...)")
    resolved = [params[0].replace(annotation=discord.Interaction)]
    for param in params[1:]:
        resolved.append(param.replace(annotation=hints.get(param.name, param.annotation)))
    return sig.replace(parameters=resolved, return_annotation=inspect.Signature.empty)


def build_app_command(
    bot,
    command: SlashCommand,
    *,
    is_dev: Callable[[int], bool],
    test_guild_id: int | None,
) -> app_commands.Command:
    async def _invoke(interaction: discord.Interaction, **kwargs: Any):
        denial = check_command_gates(command, interaction, is_dev=is_dev, test_guild_id=test_guild_id)
        if denial:
            await _reply_ephemeral(interaction, denial)
            return
        try:
            await command.callback(bot, interaction, **kwargs)
        except Exception as e:
            print(f"[Commands] Error running /{command.name} (module={command.module_name}): {e!r}")
            try:
                await _reply_ephemeral(interaction, COMMAND_ERROR_MESSAGE)
            except discord.HTTPException:
                pass

    _invoke.__signature__ = _command_signature(command.callback)
    _invoke.__name__ = command.name.replace("-", "_")
    _invoke.__qualname__ = _invoke.__name__

    app_command = app_commands.Command(
        name=command.name,
        description=command.description,
        callback=_invoke,
    )
    if command.options:
        app_command = app_commands.describe(**command.options)(app_command)

    for param_name, provider in command.autocomplete.items():
        app_command.autocomplete(param_name)(_autocomplete_wrapper(bot, provider))
    return app_command


def _autocomplete_wrapper(bot, provider: Callable):
    async def _complete(interaction: discord.Interaction, current: str):
        choices = await provider(bot, interaction, current)
        return [app_commands.Choice(name=str(name), value=value) for name, value in list(choices)[:25]]

    return _complete


def register_module_commands(
    bot,
    modules,
    *,
    is_dev: Callable[[int], bool],
    test_mode: bool,
    test_guild_id: int | None,
) -> list[str]:
    registered: list[str] = []
    seen: set[str] = set()
    for module in modules:
        for command in module.commands:
            if not command.name or not command.description:
                print(f"[Commands] Skipping command without name/description in module {module.name}")
                continue
            if test_mode and not command.test_only:
                continue
            if command.name in seen:
                print(f"[Commands] Duplicate command /{command.name} in module {module.name}; skipping")
                continue
            if command.test_only and not test_guild_id:
                print(f"[Commands] /{command.name} is test-only but GUILD_ID is not set; skipping")
                continue
            guild = discord.Object(id=int(test_guild_id)) if command.test_only else None
            bot.tree.add_command(
                build_app_command(bot, command, is_dev=is_dev, test_guild_id=test_guild_id),
                guild=guild,
                override=True,
            )
            seen.add(command.name)
            registered.append(command.name)
    print(f"[Commands] Registered {len(registered)} module commands (test_mode={test_mode})")
    return registered


async def _clear_guild_commands(bot, guild_id: int) -> int:
    guild = discord.Object(id=int(guild_id))
    try:
        existing = await bot.tree.fetch_commands(guild=guild)
    except discord.HTTPException as e:
        print(f"[Cleanup] Failed to fetch commands from guild {guild_id}: {e}")
        return 0
    if not existing:
        return 0
    bot.tree.clear_commands(guild=guild)
    await bot.tree.sync(guild=guild)
    print(f"[Cleanup] Cleared {len(existing)} stale command(s) from guild {guild_id}")
    return len(existing)


async def sync_commands(
    bot,
    *,
    test_guild_id: int | None,
    load_last_test_guild: Callable,
    save_last_test_guild: Callable,
) -> dict[str, int]:
    """Sync the global tree and the test guild tree, clearing commands left in a previous test guild."""
    result = {"global": 0, "guild": 0, "stale_cleared": 0}
    if not test_guild_id:
        print("[Commands] GUILD_ID is not set; commands will not be registered")
        return result

    previous = await load_last_test_guild()
    if previous is not None and int(previous) != int(test_guild_id):
        print(f"[Commands] Test guild changed from {previous} to {test_guild_id}, cleaning stale commands...")
        result["stale_cleared"] += await _clear_guild_commands(bot, int(previous))
    elif previous is None:
        print("[Commands] No previous test guild tracked, scanning all guilds for stale commands...")
        for guild in list(getattr(bot, "guilds", [])):
            if int(guild.id) == int(test_guild_id):
                continue
            result["stale_cleared"] += await _clear_guild_commands(bot, int(guild.id))

    synced_global = await bot.tree.sync()
    synced_guild = await bot.tree.sync(guild=discord.Object(id=int(test_guild_id)))
    result["global"] = len(synced_global)
    result["guild"] = len(synced_guild)
    await save_last_test_guild(int(test_guild_id))
    print(f"[Commands] Synced {result['global']} global and {result['guild']} test guild commands")
    return result
