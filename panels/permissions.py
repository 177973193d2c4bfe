from __future__ import annotations

from typing import Callable

from panels.types import PanelContext
from panels.types import PanelDefinition


def check_panel_permissions(
    panel: PanelDefinition,
    context: PanelContext,
    *,
    is_dev: Callable[[int], bool],
    main_guild_id: int | None,
) -> tuple[bool, str | None]:
    interaction = context.interaction
    if interaction is None:
        return False, "This panel needs a Discord interaction."

    needs_guild = panel.main_guild_only or bool(panel.required_permissions) or bool(panel.allowed_roles)
    member = getattr(interaction, "user", None)
    if needs_guild and (getattr(interaction, "guild", None) is None or member is None):
        return False, "This panel only works inside a server."

    if panel.main_guild_only:
        if main_guild_id is None or context.guild_id is None or int(context.guild_id) != int(main_guild_id):
            print(
                f"[PanelPermissions] Panel {panel.id} is main-guild-only, accessed from guild "
                f"{context.guild_id} (main guild {main_guild_id})"
            )
            return False, "This panel is only available in the main server."

    if panel.dev_only and not is_dev(int(context.user_id)):
        return False, "This panel is only available to bot developers."

    if panel.required_permissions:
        perms = getattr(member, "guild_permissions", None)
        missing = [name for name in panel.required_permissions if not getattr(perms, name, False)]
        if missing:
            return False, f"You are missing permissions: {', '.join(missing)}"

    if panel.allowed_roles:
        role_ids = {int(r.id) for r in getattr(member, "roles", [])}
        if not role_ids.intersection(int(r) for r in panel.allowed_roles):
            return False, "You don't have a role that can use this panel."

    if panel.allowed_users and int(context.user_id) not in {int(u) for u in panel.allowed_users}:
        return False, "You are not allowed to use this panel."

    return True, None
