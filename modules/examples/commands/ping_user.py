from __future__ import annotations

import discord

from framework.commands import SlashCommand


async def ping_user(bot, interaction: discord.Interaction, user: discord.User):
    greeting = bot.services.config.load_global_config("examples.json").get("greeting") or "Pong!"
    await interaction.response.send_message(f"{greeting} {user.mention} ({round(bot.latency * 1000)}ms)")


COMMAND = SlashCommand(
    name="ping-user",
    description="Ping a user and show the bot's latency",
    callback=ping_user,
    options={"user": "User to ping"},
    test_only=True,
)
