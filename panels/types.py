from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Callable


CUSTOM_ID_PREFIX = "panel"
ACCESS_METHODS = ("system_panel", "guild_panel", "direct_command")
PANEL_SCOPES = ("system", "guild")
COMPONENT_KINDS = ("button", "select", "modal")
BUTTON_STYLES = ("primary", "secondary", "success", "danger")


def make_custom_id(panel_id: str, kind: str, component_id: str) -> str:
    custom_id = f"{CUSTOM_ID_PREFIX}:{panel_id}:{kind}:{component_id}"
    if len(custom_id) > 100:
        raise ValueError(f"Custom id too long for Discord: {custom_id}")
    return custom_id


def parse_custom_id(custom_id: str | None) -> tuple[str, str, str] | None:
    """`panel:<panel_id>:<kind>:<component_id>` -> (panel_id, kind, component_id)."""
    if not custom_id or not custom_id.startswith(CUSTOM_ID_PREFIX + ":"):
        return None
    parts = custom_id.split(":", 3)
    if len(parts) != 4 or parts[2] not in COMPONENT_KINDS or not parts[1]:
        return None
    return parts[1], parts[2], parts[3]


@dataclass(frozen=True)
class PanelButton:
    id: str
    label: str
    style: str = "secondary"
    emoji: str | None = None
    disabled: bool = False
    url: str | None = None


@dataclass(frozen=True)
class PanelSelectOption:
    value: str
    label: str
    description: str | None = None
    default: bool = False


@dataclass(frozen=True)
class PanelSelect:
    id: str
    options: list[PanelSelectOption]
    placeholder: str | None = None
    min_values: int = 1
    max_values: int = 1
    disabled: bool = False


@dataclass(frozen=True)
class PanelModalField:
    id: str
    label: str
    paragraph: bool = False
    required: bool = True
    default: str | None = None
    placeholder: str | None = None
    max_length: int | None = None


@dataclass(frozen=True)
class PanelModal:
    id: str
    title: str
    fields: list[PanelModalField]


@dataclass
class PanelResponse:
    content: str | None = None
    embeds: list[Any] = field(default_factory=list)
    # each row holds buttons or a single select
    rows: list[list[Any]] = field(default_factory=list)
    modal: PanelModal | None = None
    ephemeral: bool = True
    close_panel: bool = False
    notification: str | None = None
    state: dict[str, Any] | None = None
    # render under another panel, e.g. a list opening one of its entries
    panel_id: str | None = None
    error: bool = False


@dataclass
class PanelContext:
    bot: Any
    interaction: Any
    panel_id: str
    user_id: int
    guild_id: int | None = None
    channel_id: int | None = None
    access_method: str = "direct_command"
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PanelDefinition:
    id: str
    name: str
    description: str
    callback: Callable
    category: str | None = None
    scope: str = "guild"
    show_in_admin_panel: bool = True
    order: int = 100
    icon: str | None = None
    required_permissions: list[str] = field(default_factory=list)
    allowed_users: list[int] = field(default_factory=list)
    allowed_roles: list[int] = field(default_factory=list)
    dev_only: bool = False
    main_guild_only: bool = False
    persistent: bool = False
    handle_button: Callable | None = None
    handle_dropdown: Callable | None = None
    handle_modal: Callable | None = None
    module_name: str | None = None


def error_response(title: str, message: str) -> PanelResponse:
    return PanelResponse(content=f"**{title}**\n{message}", ephemeral=True, error=True)
