from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from framework.commands import sync_commands
from framework.store import get_last_test_guild_sync
from framework.store import is_guild_blacklisted_sync
from framework.store import set_last_test_guild_sync
from misc.discord_gates import is_panel_interaction
from misc.runtime_deps import RuntimeDeps


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
) -> None:
    async def load_last_test_guild():
        async with deps.db_lock:
            return await asyncio.to_thread(get_last_test_guild_sync, deps.db_conn)

    async def save_last_test_guild(guild_id: int):
        async with deps.db_lock:
            await asyncio.to_thread(set_last_test_guild_sync, deps.db_conn, guild_id)

    async def guild_is_blacklisted(guild_id: int) -> bool:
        async with deps.db_lock:
            return await asyncio.to_thread(is_guild_blacklisted_sync, deps.db_conn, guild_id)

    @bot.event
    async def on_ready():
        # the manager watches for this line to decide the bot came up
        print(f"Logged in as {bot.user} (guilds={len(bot.guilds)})")

        # on_ready fires again after reconnects
        if getattr(bot, "_fmdb_ready_done", False):
            return
        bot._fmdb_ready_done = True

        for guild in list(bot.guilds):
            if await guild_is_blacklisted(int(guild.id)):
                print(f"[Guilds] Leaving blacklisted guild {guild.name} ({guild.id})")
                await guild.leave()

        try:
            await sync_commands(
                bot,
                test_guild_id=deps.test_guild_id,
                load_last_test_guild=load_last_test_guild,
                save_last_test_guild=save_last_test_guild,
            )
        except discord.HTTPException as e:
            print(f"[Commands] Command sync failed: {e}")

        await deps.panels.recover_persistent_panels(bot)

    @bot.event
    async def on_guild_join(guild: discord.Guild):
        if await guild_is_blacklisted(int(guild.id)):
            print(f"[Guilds] Joined blacklisted guild {guild.name} ({guild.id}), leaving")
            await guild.leave()
            return
        print(f"[Guilds] Joined guild {guild.name} ({guild.id})")

    @bot.event
    async def on_interaction(interaction: discord.Interaction):
        if not is_panel_interaction(interaction):
            return
        await deps.panels.handle_interaction(interaction)
