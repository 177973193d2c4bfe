from __future__ import annotations

import asyncio
import math
import time
from dataclasses import replace

import discord

from framework.store import add_to_blacklist_sync
from framework.store import get_guild_note_sync
from framework.store import list_blacklist_sync
from framework.store import remove_from_blacklist_sync
from framework.store import set_guild_note_sync
from misc.commands.command_deps import CommandDeps
from panels.types import PanelButton
from panels.types import PanelContext
from panels.types import PanelDefinition
from panels.types import PanelModal
from panels.types import PanelModalField
from panels.types import PanelResponse
from panels.types import PanelSelect
from panels.types import PanelSelectOption
from panels.types import error_response
from safety.state import load_state
from safety.state import recent_crashes
from safety.state import rollback_available


SYSTEM_PANEL_ID = "system_info"
GUILD_PANEL_LIST_ID = "guild_panels"
GUILDS_PER_PAGE = 10
EMBED_COLOR = 0x5865F2


def format_uptime(seconds: float) -> str:
    seconds = max(0, int(seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def _page_from(button_id: str) -> int:
    _, _, raw = button_id.partition(":")
    try:
        return int(raw)
    except ValueError:
        return 0


def _guild_id_from(component_id: str) -> int | None:
    _, _, raw = component_id.partition(":")
    return int(raw) if raw.isdigit() else None


def build_internal_panels(deps: CommandDeps) -> list[PanelDefinition]:
    panels = deps.panels

    async def _db(fn, *args, **kwargs):
        async with deps.db_lock:
            return await asyncio.to_thread(fn, deps.db_conn, *args, **kwargs)

    # system panel

    def _safety_summary() -> str:
        if deps.paths is None:
            return "unavailable"
        state = load_state(deps.paths.state_path)
        lines = [
            f"Safe mode: {'**ON**' if state.get('safeMode') else 'off'}",
            f"Recent crashes: {len(recent_crashes(state))}/{state.get('maxConsecutiveCrashes')}",
            f"Rollback available: {'yes' if rollback_available(state) else 'no'}",
        ]
        if state.get("safeModeReason"):
            lines.append(f"Reason: {state['safeModeReason']}")
        return "\n".join(lines)

    def _home(context: PanelContext) -> PanelResponse:
        bot = context.bot
        modules = deps.registry.all() if deps.registry is not None else []
        embed = discord.Embed(title="System", color=EMBED_COLOR)
        embed.add_field(name="Uptime", value=format_uptime(time.time() - deps.started_at))
        embed.add_field(name="Guilds", value=str(len(getattr(bot, "guilds", []))))
        embed.add_field(name="Panels", value=str(len(panels.all())))
        module_names = ", ".join(sorted(m.name for m in modules)) or "none"
        embed.add_field(name=f"Modules ({len(modules)})", value=module_names[:1024], inline=False)
        embed.add_field(name="Safety", value=_safety_summary(), inline=False)
        return PanelResponse(
            embeds=[embed],
            rows=[[
                PanelButton(id="guilds:0", label="Guilds", style="primary"),
                PanelButton(id="blacklist", label="Blacklist"),
                PanelButton(id="refresh", label="Refresh"),
            ]],
        )

    def _guild_list(context: PanelContext, page: int) -> PanelResponse:
        guilds = sorted(getattr(context.bot, "guilds", []), key=lambda g: g.name.lower())
        total_pages = max(1, math.ceil(len(guilds) / GUILDS_PER_PAGE))
        page = min(max(0, page), total_pages - 1)
        chunk = guilds[page * GUILDS_PER_PAGE:(page + 1) * GUILDS_PER_PAGE]

        embed = discord.Embed(title=f"Guilds ({len(guilds)})", color=EMBED_COLOR)
        embed.description = "\n".join(f"**{g.name}** `{g.id}` ({g.member_count or 0} members)" for g in chunk) or "No guilds."
        embed.set_footer(text=f"Page {page + 1}/{total_pages}")

        rows: list[list] = []
        if chunk:
            rows.append([
                PanelSelect(
                    id="guild",
                    placeholder="Select a guild",
                    options=[PanelSelectOption(value=str(g.id), label=g.name[:100]) for g in chunk],
                )
            ])
        rows.append([
            PanelButton(id=f"guilds:{page - 1}", label="Previous", disabled=page == 0),
            PanelButton(id=f"guilds:{page + 1}", label="Next", disabled=page >= total_pages - 1),
            PanelButton(id="home", label="Back"),
        ])
        return PanelResponse(embeds=[embed], rows=rows)

    async def _guild_detail(context: PanelContext, guild_id: int) -> PanelResponse:
        guild = context.bot.get_guild(guild_id)
        if guild is None:
            return error_response("Guild Not Found", f"The bot is not in guild `{guild_id}`.")
        note = await _db(get_guild_note_sync, guild_id)
        embed = discord.Embed(title=guild.name, color=EMBED_COLOR)
        embed.add_field(name="ID", value=str(guild.id))
        embed.add_field(name="Members", value=str(guild.member_count or 0))
        embed.add_field(name="Owner", value=f"<@{guild.owner_id}>" if guild.owner_id else "unknown")
        if guild.me is not None and guild.me.joined_at is not None:
            embed.add_field(name="Joined", value=discord.utils.format_dt(guild.me.joined_at, "R"))
        embed.add_field(name="Note", value=note or "none", inline=False)
        return PanelResponse(
            embeds=[embed],
            rows=[[
                PanelButton(id=f"note:{guild_id}", label="Edit note", style="primary"),
                PanelButton(id=f"leave:{guild_id}", label="Leave", style="danger"),
                PanelButton(id=f"ban:{guild_id}", label="Blacklist", style="danger"),
                PanelButton(id="guilds:0", label="Back"),
            ]],
        )

    async def _blacklist(context: PanelContext) -> PanelResponse:
        entries = await _db(list_blacklist_sync)
        embed = discord.Embed(title=f"Blacklisted guilds ({len(entries)})", color=EMBED_COLOR)
        embed.description = "\n".join(
            f"**{e['guild_name'] or 'unknown'}** `{e['guild_id']}` {e['reason'] or ''}".rstrip()
            for e in entries[:25]
        ) or "No blacklisted guilds."
        rows: list[list] = []
        if entries:
            rows.append([
                PanelSelect(
                    id="unban",
                    placeholder="Remove from blacklist",
                    options=[
                        PanelSelectOption(value=str(e["guild_id"]), label=(e["guild_name"] or str(e["guild_id"]))[:100])
                        for e in entries[:25]
                    ],
                )
            ])
        rows.append([PanelButton(id="home", label="Back")])
        return PanelResponse(embeds=[embed], rows=rows)

    async def system_open(context: PanelContext) -> PanelResponse:
        return _home(context)

    async def system_button(context: PanelContext, button_id: str) -> PanelResponse:
        if button_id in ("home", "refresh"):
            return _home(context)
        if button_id.startswith("guilds:"):
            return _guild_list(context, _page_from(button_id))
        if button_id == "blacklist":
            return await _blacklist(context)

        guild_id = _guild_id_from(button_id)
        if guild_id is None:
            return error_response("Unknown Action", f"`{button_id}` is not a system panel action.")
        guild = context.bot.get_guild(guild_id)

        if button_id.startswith("note:"):
            current = await _db(get_guild_note_sync, guild_id)
            return PanelResponse(
                modal=PanelModal(
                    id=f"note:{guild_id}",
                    title="Guild note",
                    fields=[PanelModalField(id="note", label="Note", paragraph=True, required=False, default=current, max_length=1000)],
                )
            )
        if button_id.startswith("leave:"):
            if guild is None:
                return error_response("Guild Not Found", f"The bot is not in guild `{guild_id}`.")
            await guild.leave()
            print(f"[System] Left guild {guild.name} ({guild_id}) by request of {context.user_id}")
            response = _guild_list(context, 0)
            response.notification = f"Left **{guild.name}**."
            return response
        if button_id.startswith("ban:"):
            name = guild.name if guild is not None else None
            await _db(add_to_blacklist_sync, guild_id=guild_id, guild_name=name, blacklisted_by=context.user_id)
            if guild is not None:
                await guild.leave()
            print(f"[System] Blacklisted guild {name} ({guild_id}) by request of {context.user_id}")
            response = await _blacklist(context)
            response.notification = f"Blacklisted `{guild_id}`."
            return response
        return error_response("Unknown Action", f"`{button_id}` is not a system panel action.")

    async def system_dropdown(context: PanelContext, values: list[str], dropdown_id: str) -> PanelResponse:
        if not values or not values[0].isdigit():
            return _home(context)
        guild_id = int(values[0])
        if dropdown_id == "guild":
            return await _guild_detail(context, guild_id)
        if dropdown_id == "unban":
            removed = await _db(remove_from_blacklist_sync, guild_id)
            response = await _blacklist(context)
            response.notification = f"Removed `{guild_id}` from the blacklist." if removed else f"`{guild_id}` was not blacklisted."
            return response
        return _home(context)

    async def system_modal(context: PanelContext, modal_id: str) -> PanelResponse:
        guild_id = _guild_id_from(modal_id)
        if not modal_id.startswith("note:") or guild_id is None:
            return error_response("Unknown Form", f"`{modal_id}` is not a system panel form.")
        note = str(context.data.get("fields", {}).get("note") or "").strip()
        await _db(set_guild_note_sync, guild_id, note, context.user_id)
        response = await _guild_detail(context, guild_id)
        response.notification = "Note saved." if note else "Note cleared."
        return response

    # guild panel list

    def _panel_list(context: PanelContext, page: int) -> PanelResponse:
        visible = panels.list_panels(context, scope="guild")
        items, page, total_pages = panels.paginate(visible, page)
        embed = discord.Embed(title="Server panels", color=EMBED_COLOR)
        embed.description = "\n".join(
            f"{p.icon + ' ' if p.icon else ''}**{p.name}**: {p.description}" for p in items
        ) or "There are no panels you can use here."
        embed.set_footer(text=f"Page {page + 1}/{total_pages}")

        rows: list[list] = []
        if items:
            rows.append([
                PanelSelect(
                    id="open",
                    placeholder="Open a panel",
                    options=[PanelSelectOption(value=p.id, label=p.name, description=p.description) for p in items],
                )
            ])
        if total_pages > 1:
            rows.append([
                PanelButton(id=f"page:{page - 1}", label="Previous", disabled=page == 0),
                PanelButton(id=f"page:{page + 1}", label="Next", disabled=page >= total_pages - 1),
            ])
        return PanelResponse(embeds=[embed], rows=rows)

    async def list_open(context: PanelContext) -> PanelResponse:
        return _panel_list(context, 0)

    async def list_button(context: PanelContext, button_id: str) -> PanelResponse:
        return _panel_list(context, _page_from(button_id))

    async def list_dropdown(context: PanelContext, values: list[str], dropdown_id: str) -> PanelResponse:
        if not values:
            return _panel_list(context, 0)
        target = values[0]
        response = await panels.open_panel(target, replace(context, panel_id=target, access_method="guild_panel"))
        response.panel_id = response.panel_id or target
        return response

    return [
        PanelDefinition(
            id=SYSTEM_PANEL_ID,
            name="System",
            description="Uptime, guilds, modules and crash safety status",
            callback=system_open,
            category="system",
            scope="system",
            show_in_admin_panel=False,
            order=0,
            dev_only=True,
            handle_button=system_button,
            handle_dropdown=system_dropdown,
            handle_modal=system_modal,
            module_name="internal",
        ),
        PanelDefinition(
            id=GUILD_PANEL_LIST_ID,
            name="Server panels",
            description="Panels available in this server",
            callback=list_open,
            category="system",
            scope="guild",
            show_in_admin_panel=False,
            order=0,
            handle_button=list_button,
            handle_dropdown=list_dropdown,
            module_name="internal",
        ),
    ]
