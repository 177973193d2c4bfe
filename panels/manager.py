from __future__ import annotations

import asyncio
import inspect
import math
from typing import Any
from typing import Callable

import discord

from panels.permissions import check_panel_permissions
from panels.store import delete_panel_instance_sync
from panels.store import fetch_panel_instance_sync
from panels.store import list_panel_instances_sync
from panels.store import update_panel_state_sync
from panels.store import upsert_panel_instance_sync
from panels.types import PanelContext
from panels.types import PanelDefinition
from panels.types import PanelResponse
from panels.types import error_response
from panels.types import parse_custom_id
from panels.views import modal_field_values
from panels.views import send_panel_response


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class PanelManager:
    def __init__(
        self,
        *,
        is_dev: Callable[[int], bool],
        main_guild_id: int | None,
        db_lock: asyncio.Lock | None = None,
        db_conn=None,
        items_per_page: int = 5,
        button_timeout: float | None = 300.0,
    ) -> None:
        self.is_dev = is_dev
        self.main_guild_id = main_guild_id
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.items_per_page = max(1, int(items_per_page))
        self.button_timeout = button_timeout
        self._panels: dict[str, PanelDefinition] = {}

    # registry

    def register(self, panel: PanelDefinition) -> bool:
        if not panel.id or ":" in panel.id:
            print(f"[PanelManager] Invalid panel id: {panel.id!r}")
            return False
        if panel.id in self._panels:
            print(f"[PanelManager] Duplicate panel id {panel.id} (module {panel.module_name}), skipping")
            return False
        self._panels[panel.id] = panel
        return True

    def register_modules(self, modules) -> int:
        count = 0
        for module in modules:
            for panel in module.panels:
                if self.register(panel):
                    count += 1
        return count

    def get(self, panel_id: str) -> PanelDefinition | None:
        return self._panels.get(panel_id)

    def all(self) -> list[PanelDefinition]:
        return list(self._panels.values())

    def can_access(self, panel: PanelDefinition, context: PanelContext) -> tuple[bool, str | None]:
        return check_panel_permissions(panel, context, is_dev=self.is_dev, main_guild_id=self.main_guild_id)

    def list_panels(self, context: PanelContext, *, scope: str) -> list[PanelDefinition]:
        """Admin-listable panels of one scope the caller may open, ordered by (order, name)."""
        visible = [
            p
            for p in self._panels.values()
            if p.scope == scope and p.show_in_admin_panel and self.can_access(p, context)[0]
        ]
        return sorted(visible, key=lambda p: (p.order, p.name.lower()))

    def paginate(self, panels: list[PanelDefinition], page: int) -> tuple[list[PanelDefinition], int, int]:
        total_pages = max(1, math.ceil(len(panels) / self.items_per_page))
        page = min(max(0, int(page)), total_pages - 1)
        start = page * self.items_per_page
        return panels[start:start + self.items_per_page], page, total_pages

    # dispatch

    async def _run(self, panel_id: str, context: PanelContext, attr: str, *args) -> PanelResponse:
        panel = self._panels.get(panel_id)
        if panel is None:
            return error_response("Panel Not Found", f"No panel is registered as `{panel_id}`.")

        allowed, reason = self.can_access(panel, context)
        if not allowed:
            return error_response("Access Denied", reason or "You cannot use this panel.")

        handler = getattr(panel, attr)
        if handler is None:
            return error_response("Not Supported", f"Panel `{panel_id}` does not handle this interaction.")

        try:
            response = await _maybe_await(handler(context, *args))
        except Exception as e:
            print(f"[PanelManager] {attr} failed for panel {panel_id}: {e}")
            return error_response("Panel Error", "Something went wrong in this panel.")
        if not isinstance(response, PanelResponse):
            print(f"[PanelManager] Panel {panel_id} returned {type(response).__name__} from {attr}")
            return error_response("Panel Error", "This panel returned an invalid response.")
        return response

    async def open_panel(self, panel_id: str, context: PanelContext) -> PanelResponse:
        return await self._run(panel_id, context, "callback")

    async def handle_button(self, panel_id: str, context: PanelContext, button_id: str) -> PanelResponse:
        return await self._run(panel_id, context, "handle_button", button_id)

    async def handle_dropdown(self, panel_id: str, context: PanelContext, values: list[str], dropdown_id: str) -> PanelResponse:
        return await self._run(panel_id, context, "handle_dropdown", values, dropdown_id)

    async def handle_modal(self, panel_id: str, context: PanelContext, modal_id: str) -> PanelResponse:
        return await self._run(panel_id, context, "handle_modal", modal_id)

    def build_context(self, interaction, panel_id: str, *, access_method: str = "direct_command", data: dict[str, Any] | None = None) -> PanelContext:
        return PanelContext(
            bot=getattr(interaction, "client", None),
            interaction=interaction,
            panel_id=panel_id,
            user_id=int(interaction.user.id),
            guild_id=int(interaction.guild_id) if getattr(interaction, "guild_id", None) else None,
            channel_id=int(interaction.channel_id) if getattr(interaction, "channel_id", None) else None,
            access_method=access_method,
            data=dict(data or {}),
        )

    async def handle_interaction(self, interaction) -> bool:
        """Route a component or modal interaction whose custom id names a panel. Returns False when not ours."""
        data = getattr(interaction, "data", None) or {}
        parsed = parse_custom_id(data.get("custom_id"))
        if parsed is None:
            return False
        panel_id, kind, component_id = parsed

        message = getattr(interaction, "message", None)
        instance = await self.fetch_instance(message.id) if message is not None else None
        state = dict(instance["state"]) if instance else {}
        context = self.build_context(interaction, panel_id, data=state)

        if kind == "button":
            response = await self.handle_button(panel_id, context, component_id)
        elif kind == "select":
            values = [str(v) for v in data.get("values", [])]
            response = await self.handle_dropdown(panel_id, context, values, component_id)
        else:
            context.data["fields"] = modal_field_values(interaction)
            response = await self.handle_modal(panel_id, context, component_id)

        if instance and response.state is not None:
            await self.save_state(instance["message_id"], response.state)
        # component interactions edit the panel in place; modal submits only can when launched from a message
        edit = message is not None
        try:
            await send_panel_response(
                interaction,
                response.panel_id or panel_id,
                response,
                edit=edit,
                timeout=None if instance else self.button_timeout,
            )
        except discord.HTTPException as e:
            print(f"[PanelManager] Failed to respond for panel {panel_id}: {e}")
        return True

    async def open_from_command(self, interaction, panel_id: str, *, access_method: str = "direct_command") -> PanelResponse:
        context = self.build_context(interaction, panel_id, access_method=access_method)
        response = await self.open_panel(panel_id, context)
        await send_panel_response(interaction, response.panel_id or panel_id, response, timeout=self.button_timeout)
        return response

    async def post_persistent(self, interaction, panel_id: str) -> discord.Message | None:
        """Post a panel as a regular channel message and remember it so its buttons keep working after restarts."""
        panel = self._panels.get(panel_id)
        if panel is None or not panel.persistent:
            await interaction.response.send_message(f"`{panel_id}` is not a persistent panel.", ephemeral=True)
            return None
        context = self.build_context(interaction, panel_id)
        allowed, reason = self.can_access(panel, context)
        if not allowed:
            await send_panel_response(interaction, panel_id, error_response("Access Denied", reason or "You cannot use this panel."))
            return None
        response = await self.open_panel(panel_id, context)
        if response.error or response.modal is not None or response.close_panel:
            # only a rendered panel is posted publicly and stored
            response.ephemeral = True
            await send_panel_response(interaction, panel_id, response, timeout=self.button_timeout)
            return None
        response.ephemeral = False
        message = await send_panel_response(interaction, panel_id, response, timeout=None)
        if message is not None and interaction.channel_id is not None:
            await self._store_call(
                upsert_panel_instance_sync,
                message_id=int(message.id),
                channel_id=int(interaction.channel_id),
                guild_id=int(interaction.guild_id) if interaction.guild_id else None,
                panel_id=panel_id,
                state=response.state or {},
            )
            print(f"[PanelManager] Posted persistent panel {panel_id} as message {message.id}")
        return message

    # persistence

    async def _store_call(self, fn, *args, **kwargs):
        if self.db_conn is None or self.db_lock is None:
            return None
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    async def fetch_instance(self, message_id: int) -> dict[str, Any] | None:
        return await self._store_call(fetch_panel_instance_sync, int(message_id))

    async def save_state(self, message_id: int, state: dict[str, Any]) -> bool:
        return bool(await self._store_call(update_panel_state_sync, int(message_id), state))

    async def recover_persistent_panels(self, bot) -> tuple[int, int]:
        """Check stored panel messages still exist. Returns (recovered, pruned)."""
        instances = await self._store_call(list_panel_instances_sync) or []
        recovered = pruned = 0
        for instance in instances:
            message_id = instance["message_id"]
            if instance["panel_id"] not in self._panels:
                print(f"[PanelManager] Pruning panel message {message_id}: panel {instance['panel_id']} is gone")
                await self._store_call(delete_panel_instance_sync, message_id)
                pruned += 1
                continue
            try:
                channel = bot.get_channel(instance["channel_id"]) or await bot.fetch_channel(instance["channel_id"])
                await channel.fetch_message(message_id)
            except (discord.NotFound, discord.Forbidden) as e:
                print(f"[PanelManager] Pruning panel message {message_id}: {e}")
                await self._store_call(delete_panel_instance_sync, message_id)
                pruned += 1
                continue
            except discord.HTTPException as e:
                print(f"[PanelManager] Could not verify panel message {message_id}: {e}")
                continue
            recovered += 1
        if instances:
            print(f"[PanelManager] Persistent panels: {recovered} recovered, {pruned} pruned")
        return recovered, pruned
