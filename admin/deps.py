from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Awaitable
from typing import Callable

from safety.state import SafetyPaths


async def _no_event(_event_type: str, _detail: dict[str, Any]) -> None:
    return None


async def _no_events(_limit: int) -> list[dict[str, Any]]:
    return []


@dataclass(frozen=True)
class AdminDeps:
    bot: Any
    safety: Any
    paths: SafetyPaths
    config: Any
    settings: Any
    admin_token: str | None
    check_updates: Callable[[], Awaitable[dict[str, Any]]]
    record_event: Callable[[str, dict[str, Any]], Awaitable[None]] = _no_event
    list_events: Callable[[int], Awaitable[list[dict[str, Any]]]] = _no_events
    keep_backups: Callable[[], int] = lambda: 5
