from __future__ import annotations

from typing import Callable

import discord


PANEL_INTERACTION_TYPES = (discord.InteractionType.component, discord.InteractionType.modal_submit)


def is_panel_interaction(interaction) -> bool:
    # slash commands and autocomplete go through the app command tree
    return getattr(interaction, "type", None) in PANEL_INTERACTION_TYPES


def make_is_dev(load_devs: Callable[[], set[int]]) -> Callable[[int], bool]:
    """DEVS is re-read on every check so admin config edits apply without a restart."""

    def is_dev(user_id: int) -> bool:
        try:
            return int(user_id) in load_devs()
        except (TypeError, ValueError):
            return False

    return is_dev
