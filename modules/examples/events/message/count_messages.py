from __future__ import annotations

MODULE_NAME = "examples"
COUNTS_FILE = "message-counts.json"


def message_count(bot, guild_id: int) -> int:
    counts = bot.services.data.load_module_data(COUNTS_FILE, guild_id, MODULE_NAME, default={})
    return int(counts.get("total", 0))


async def handle(bot, message) -> None:
    if message.guild is None:
        return
    settings = bot.services.settings
    if not settings.get_module_setting(MODULE_NAME, "countMessages", message.guild.id, default=True):
        return
    if message.author.bot and not settings.get_module_setting(MODULE_NAME, "countBots", message.guild.id, default=False):
        return

    data = bot.services.data
    counts = data.load_module_data(COUNTS_FILE, message.guild.id, MODULE_NAME, default={})
    counts["total"] = int(counts.get("total", 0)) + 1
    per_user = counts.setdefault("users", {})
    per_user[str(message.author.id)] = int(per_user.get(str(message.author.id), 0)) + 1
    data.save_module_data(COUNTS_FILE, message.guild.id, MODULE_NAME, counts)
