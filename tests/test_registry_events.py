from __future__ import annotations

import unittest
from pathlib import Path
from types import SimpleNamespace

from framework.events import EventDispatcher
from framework.events import normalize_event_name
from framework.manifest import ModuleManifest
from framework.registry import LoadedModule
from framework.registry import ModuleRegistry


def _module(name: str, *, requires=(), optional=(), category="misc", enabled=True, exports=None, events=None) -> LoadedModule:
    manifest = ModuleManifest.from_dict(
        {
            "name": name,
            "category": category,
            "enabled": enabled,
            "dependencies": {
                "required": {d: "*" for d in requires},
                "optional": {d: "*" for d in optional},
            },
        }
    )
    return LoadedModule(manifest=manifest, path=Path("/modules") / name, exports=exports or {}, events=events or {})


class ModuleRegistryTests(unittest.TestCase):
    def setUp(self):
        self.registry = ModuleRegistry()
        self.registry.register(_module("core", category="system", exports={"greet": "hello"}))
        self.registry.register(_module("api", requires=["core"]))
        self.registry.register(_module("app", requires=["api"], optional=["core"]))

    def test_lookup_and_exports(self):
        self.assertTrue(self.registry.is_loaded("core"))
        self.assertTrue(self.registry.is_enabled("core"))
        self.assertEqual(self.registry.get_export("core", "greet"), "hello")
        self.assertEqual(self.registry.get_export("core", "nope", default=1), 1)
        self.assertEqual(self.registry.get_export("ghost", "greet"), None)
        self.assertTrue(self.registry.has_export("core", "greet"))
        self.assertEqual([m.name for m in self.registry.by_category("system")], ["core"])

    def test_transitive_dependencies_and_dependents(self):
        self.assertEqual(self.registry.get_dependencies("app"), ["api", "core"])
        self.assertEqual(sorted(self.registry.get_dependents("core")), ["api", "app"])

    def test_validate_dependencies(self):
        ok, missing = self.registry.validate_dependencies(_module("new", requires=["core", "ghost"]).manifest)
        self.assertFalse(ok)
        self.assertEqual(missing, ["ghost"])

    def test_stats_and_unregister(self):
        self.registry.register(_module("off", enabled=False))
        stats = self.registry.stats()
        self.assertEqual(stats["total"], 4)
        self.assertEqual(stats["disabled"], 1)
        self.assertEqual(stats["by_category"], {"system": 1, "misc": 3})
        self.assertEqual(stats["total_exports"], 1)

        self.registry.unregister("off")
        self.assertFalse(self.registry.is_loaded("off"))
        self.registry.clear()
        self.assertEqual(self.registry.all(), [])


class EventDispatcherTests(unittest.IsolatedAsyncioTestCase):
    def test_normalize(self):
        self.assertEqual(normalize_event_name("message"), "on_message")
        self.assertEqual(normalize_event_name(" on_ready "), "on_ready")

    async def test_failing_handler_does_not_stop_the_rest(self):
        seen = []

        async def first(bot, message):
            seen.append(("first", message))

        async def broken(bot, message):
            raise RuntimeError("boom")

        async def last(bot, message):
            seen.append(("last", message))

        dispatcher = EventDispatcher()
        dispatcher.add_modules(
            [
                _module("a", events={"message": [first, broken]}),
                _module("b", events={"message": [last]}),
            ]
        )
        failures = await dispatcher.dispatch(object(), "message", "hi")
        self.assertEqual(failures, 1)
        self.assertEqual(seen, [("first", "hi"), ("last", "hi")])
        self.assertEqual(dispatcher.handler_count("on_message"), 3)

    async def test_attach_registers_one_listener_per_event(self):
        calls = []

        class FakeBot:
            def __init__(self):
                self.listeners = []

            def add_listener(self, func, name):
                self.listeners.append((name, func))

        async def handler(bot, member):
            calls.append(member)

        bot = FakeBot()
        dispatcher = EventDispatcher()
        dispatcher.add_handler("member_join", handler, module_name="welcome")
        dispatcher.add_handler("on_member_join", handler, module_name="stats")
        dispatcher.attach(bot)
        dispatcher.attach(bot)

        self.assertEqual([name for name, _f in bot.listeners], ["on_member_join"])
        await bot.listeners[0][1](SimpleNamespace(id=1))
        self.assertEqual(len(calls), 2)
        self.assertEqual(dispatcher.event_names(), ["on_member_join"])


if __name__ == "__main__":
    unittest.main()
