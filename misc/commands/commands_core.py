from __future__ import annotations

import discord
from discord.ext import commands

from framework.commands import SlashCommand
from framework.commands import build_app_command
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def format_update_check(result: dict) -> str:
    if not result.get("success"):
        return f"Update check failed: {result.get('error') or 'unknown error'}"
    current = result.get("currentVersion")
    if not result.get("hasUpdates"):
        return result.get("message") or f"You are running the latest version ({current})."
    lines = [f"Update available: **{current}** -> **{result.get('latestVersion')}**"]
    if result.get("releaseName"):
        lines.append(f"Release: {result['releaseName']}")
    if result.get("releaseUrl"):
        lines.append(result["releaseUrl"])
    return "\n".join(lines)


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> list[str]:
    async def cmd_ping(bot, interaction: discord.Interaction):
        latency_ms = round(bot.latency * 1000)
        await interaction.response.send_message(f"Pong! Websocket latency: {latency_ms}ms", ephemeral=True)

    async def cmd_update_check(bot, interaction: discord.Interaction):
        if deps.check_updates is None:
            await interaction.response.send_message("The updater is not configured.", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await deps.check_updates()
        await interaction.followup.send(format_update_check(result), ephemeral=True)

    core_commands = [
        SlashCommand(name="ping", description="Check the bot's websocket latency", callback=cmd_ping),
        SlashCommand(
            name="update-check",
            description="Check GitHub for a newer FMDB release",
            callback=cmd_update_check,
            dev_only=True,
        ),
    ]
    for command in core_commands:
        command.module_name = "internal"
        bot.tree.add_command(
            build_app_command(bot, command, is_dev=gates.is_dev, test_guild_id=gates.test_guild_id),
            override=True,
        )
    return [c.name for c in core_commands]
