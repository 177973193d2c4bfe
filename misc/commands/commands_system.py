from __future__ import annotations

import discord
from discord.ext import commands

from framework.commands import SlashCommand
from framework.commands import build_app_command
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.internal_panels import GUILD_PANEL_LIST_ID
from misc.internal_panels import SYSTEM_PANEL_ID


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> list[str]:
    panels = deps.panels

    async def cmd_system(bot, interaction: discord.Interaction):
        await panels.open_from_command(interaction, SYSTEM_PANEL_ID, access_method="system_panel")

    async def cmd_panel(bot, interaction: discord.Interaction, panel_id: str | None = None, post: bool = False):
        if not panel_id:
            await panels.open_from_command(interaction, GUILD_PANEL_LIST_ID, access_method="guild_panel")
            return
        if panels.get(panel_id) is None:
            await interaction.response.send_message(f"No panel named `{panel_id}`.", ephemeral=True)
            return
        if post:
            perms = getattr(interaction.user, "guild_permissions", None)
            if not getattr(perms, "manage_guild", False):
                await interaction.response.send_message("Posting panels needs the Manage Server permission.", ephemeral=True)
                return
            await panels.post_persistent(interaction, panel_id)
            return
        await panels.open_from_command(interaction, panel_id, access_method="direct_command")

    async def complete_panel_id(bot, interaction: discord.Interaction, current: str):
        needle = (current or "").lower()
        out = []
        for panel in sorted(panels.all(), key=lambda p: (p.order, p.name.lower())):
            if panel.scope != "guild":
                continue
            if needle and needle not in panel.id.lower() and needle not in panel.name.lower():
                continue
            allowed, _reason = panels.can_access(panel, panels.build_context(interaction, panel.id))
            if allowed:
                out.append((panel.name, panel.id))
        return out

    system_commands = [
        SlashCommand(
            name="system",
            description="Open the bot system panel",
            callback=cmd_system,
            dev_only=True,
        ),
        SlashCommand(
            name="panel",
            description="Open a server panel, or list the panels you can use",
            callback=cmd_panel,
            options={
                "panel_id": "Panel to open",
                "post": "Post the panel in this channel so everyone can use it",
            },
            guild_only=True,
            autocomplete={"panel_id": complete_panel_id},
        ),
    ]
    for command in system_commands:
        command.module_name = "internal"
        bot.tree.add_command(
            build_app_command(bot, command, is_dev=gates.is_dev, test_guild_id=gates.test_guild_id),
            override=True,
        )
    return [c.name for c in system_commands]
