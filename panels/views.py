from __future__ import annotations

import discord

from panels.types import PanelButton
from panels.types import PanelModal
from panels.types import PanelResponse
from panels.types import PanelSelect
from panels.types import make_custom_id


_BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def to_discord_view(panel_id: str, response: PanelResponse, *, timeout: float | None = None) -> discord.ui.View | None:
    """Components carry `panel:` custom ids and are routed by the interaction listener, not view callbacks."""
    if not response.rows:
        return None
    view = discord.ui.View(timeout=timeout)
    for row_index, row in enumerate(response.rows[:5]):
        for component in row:
            if isinstance(component, PanelButton):
                if component.url:
                    item = discord.ui.Button(
                        label=component.label,
                        style=discord.ButtonStyle.link,
                        url=component.url,
                        emoji=component.emoji,
                        row=row_index,
                    )
                else:
                    item = discord.ui.Button(
                        label=component.label,
                        style=_BUTTON_STYLES.get(component.style, discord.ButtonStyle.secondary),
                        custom_id=make_custom_id(panel_id, "button", component.id),
                        emoji=component.emoji,
                        disabled=component.disabled,
                        row=row_index,
                    )
            elif isinstance(component, PanelSelect):
                item = discord.ui.Select(
                    custom_id=make_custom_id(panel_id, "select", component.id),
                    placeholder=component.placeholder,
                    min_values=component.min_values,
                    max_values=min(component.max_values, max(len(component.options), 1)),
                    disabled=component.disabled,
                    options=[
                        discord.SelectOption(
                            label=opt.label[:100],
                            value=opt.value,
                            description=opt.description[:100] if opt.description else None,
                            default=opt.default,
                        )
                        for opt in component.options[:25]
                    ],
                    row=row_index,
                )
            else:
                continue
            view.add_item(item)
    return view


def to_discord_modal(panel_id: str, modal: PanelModal) -> discord.ui.Modal:
    ui_modal = discord.ui.Modal(title=modal.title[:45], custom_id=make_custom_id(panel_id, "modal", modal.id))
    for field in modal.fields[:5]:
        ui_modal.add_item(
            discord.ui.TextInput(
                label=field.label[:45],
                custom_id=field.id,
                style=discord.TextStyle.paragraph if field.paragraph else discord.TextStyle.short,
                required=field.required,
                default=field.default,
                placeholder=field.placeholder,
                max_length=field.max_length,
            )
        )
    return ui_modal


def modal_field_values(interaction: discord.Interaction) -> dict[str, str]:
    values: dict[str, str] = {}
    data = getattr(interaction, "data", None) or {}
    for row in data.get("components", []):
        for component in row.get("components", []):
            custom_id = component.get("custom_id")
            if custom_id:
                values[str(custom_id)] = str(component.get("value") or "")
    return values


async def send_panel_response(
    interaction: discord.Interaction,
    panel_id: str,
    response: PanelResponse,
    *,
    edit: bool = False,
    timeout: float | None = None,
) -> discord.Message | None:
    """Deliver a panel response, editing the panel message when the interaction came from its components."""
    if response.modal is not None:
        await interaction.response.send_modal(to_discord_modal(panel_id, response.modal))
        return None

    if response.close_panel:
        if edit and interaction.message is not None:
            await interaction.response.edit_message(content=response.notification or "Panel closed.", embeds=[], view=None)
        else:
            await interaction.response.send_message(response.notification or "Panel closed.", ephemeral=True)
        return None

    view = to_discord_view(panel_id, response, timeout=timeout)
    kwargs = {"content": response.content, "embeds": list(response.embeds)}
    if edit and interaction.message is not None:
        await interaction.response.edit_message(view=view, **kwargs)
        if response.notification:
            await interaction.followup.send(response.notification, ephemeral=True)
        return interaction.message

    if view is not None:
        kwargs["view"] = view
    await interaction.response.send_message(ephemeral=response.ephemeral, **kwargs)
    if response.notification:
        await interaction.followup.send(response.notification, ephemeral=True)
    if response.ephemeral:
        return None
    return await interaction.original_response()
