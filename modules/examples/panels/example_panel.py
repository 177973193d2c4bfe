from __future__ import annotations

import random

import discord

from panels.types import PanelButton
from panels.types import PanelContext
from panels.types import PanelDefinition
from panels.types import PanelResponse
from panels.types import PanelSelect
from panels.types import PanelSelectOption

FACTS = (
    "Panels keep their buttons working across restarts when posted with /panel post:true.",
    "Every module can ship its own settings.yml.",
    "Events are routed to every module that has a handler folder for them.",
    "Module data is stored per server under the data directory.",
)
COLORS = {"purple": 0x9B59B6, "green": 0x2ECC71, "blue": 0x3498DB}


def _color(context: PanelContext) -> int:
    state_color = context.data.get("color")
    if state_color in COLORS:
        return COLORS[state_color]
    settings = context.bot.services.settings if context.bot is not None else None
    raw = settings.get_module_setting("examples", "accentColor", context.guild_id) if settings else None
    try:
        return int(str(raw), 16) if raw else COLORS["purple"]
    except ValueError:
        return COLORS["purple"]


def _step(context: PanelContext) -> int:
    settings = context.bot.services.settings if context.bot is not None else None
    value = settings.get_module_setting("examples", "counterStep", context.guild_id, default=1) if settings else 1
    return int(value or 1)


def _render(context: PanelContext, state: dict, note: str | None = None) -> PanelResponse:
    embed = discord.Embed(
        title="Example Module Panel",
        description="This panel ships with the examples module to show how modules add panels.",
        color=_color(context),
    )
    embed.add_field(name="Counter", value=str(state.get("count", 0)))
    embed.add_field(name="Color", value=state.get("color", "purple"))
    embed.add_field(name="Opened via", value=context.access_method)
    if note:
        embed.add_field(name="Did you know?", value=note, inline=False)
    return PanelResponse(
        embeds=[embed],
        rows=[
            [
                PanelButton(id="increment", label="Count", style="primary", emoji="\N{HEAVY PLUS SIGN}"),
                PanelButton(id="reset", label="Reset", style="danger"),
                PanelButton(id="random", label="Random fact", style="success"),
            ],
            [
                PanelSelect(
                    id="color",
                    placeholder="Accent color",
                    options=[
                        PanelSelectOption(value=name, label=name.title(), default=name == state.get("color"))
                        for name in COLORS
                    ],
                )
            ],
        ],
        state=state,
    )


async def open_panel(context: PanelContext) -> PanelResponse:
    return _render(context, {"count": 0, "color": "purple", **context.data})


async def handle_button(context: PanelContext, button_id: str) -> PanelResponse:
    state = {"count": 0, "color": "purple", **context.data}
    if button_id == "increment":
        state["count"] = int(state["count"]) + _step(context)
    elif button_id == "reset":
        state["count"] = 0
    elif button_id == "random":
        return _render(context, state, note=random.choice(FACTS))
    return _render(context, state)


async def handle_dropdown(context: PanelContext, values: list[str], dropdown_id: str) -> PanelResponse:
    state = {"count": 0, "color": "purple", **context.data}
    if dropdown_id == "color" and values and values[0] in COLORS:
        state["color"] = values[0]
    return _render(context, state)


PANEL = PanelDefinition(
    id="example_panel",
    name="Example Module Panel",
    description="Counter and color picker showing module panel features",
    callback=open_panel,
    category="Examples",
    scope="guild",
    order=10,
    icon="\N{DIRECT HIT}",
    required_permissions=["administrator"],
    persistent=True,
    handle_button=handle_button,
    handle_dropdown=handle_dropdown,
)
