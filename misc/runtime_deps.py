from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    db_lock: Any
    db_conn: Any

    # framework
    panels: Any
    test_guild_id: int | None


@dataclass(frozen=True)
class FrameworkServices:
    """What module code reaches through `bot.services`."""

    config: Any
    data: Any
    settings: Any
    registry: Any
    panels: Any
