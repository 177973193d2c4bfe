from __future__ import annotations

from typing import Callable


def normalize_event_name(name: str) -> str:
    name = name.strip()
    return name if name.startswith("on_") else f"on_{name}"


class EventDispatcher:
    """Fans one discord.py listener out to every module handler registered for that event."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[str, Callable]]] = {}
        self._attached: set[str] = set()

    def add_handler(self, event_name: str, handler: Callable, *, module_name: str = "internal") -> None:
        self._handlers.setdefault(normalize_event_name(event_name), []).append((module_name, handler))

    def add_modules(self, modules) -> None:
        for module in modules:
            for event_name, handlers in module.events.items():
                for handler in handlers:
                    self.add_handler(event_name, handler, module_name=module.name)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(normalize_event_name(event_name), []))

    def event_names(self) -> list[str]:
        return sorted(self._handlers.keys())

    async def dispatch(self, bot, event_name: str, *args) -> int:
        """Run handlers in load order; returns how many failed."""
        failures = 0
        for module_name, handler in list(self._handlers.get(normalize_event_name(event_name), [])):
            try:
                await handler(bot, *args)
            except Exception as e:
                failures += 1
                print(f"[Events] Handler for {event_name} in module {module_name} failed: {e!r}")
        return failures

    def attach(self, bot) -> None:
        for event_name in self._handlers:
            if event_name in self._attached:
                continue
            bot.add_listener(self._make_listener(bot, event_name), event_name)
            self._attached.add(event_name)

    def _make_listener(self, bot, event_name: str):
        async def _listener(*args):
            await self.dispatch(bot, event_name, *args)

        return _listener
