from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    started_at: float = 0.0

    # Framework services
    panels: Any = None
    registry: Any = None
    paths: Any = None

    # Updater
    check_updates: Callable | None = None


@dataclass(frozen=True)
class CommandGates:
    is_dev: Callable[[int], bool] = _default_false
    test_guild_id: int | None = None
    main_guild_id: int | None = None
