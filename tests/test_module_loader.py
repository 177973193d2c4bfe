from __future__ import annotations

import tempfile
import textwrap
import unittest
from pathlib import Path

from framework.loader import ModuleLoader
from framework.loader import apply_intents
from framework.loader import collect_required_intents
from framework.loader import find_module_dirs
from framework.loader import intent_attr_name
from framework.loader import resolve_export
from framework.registry import ModuleRegistry


MANIFEST = """\
name: {name}
version: 1.0.0
displayName: {title}
description: test module
author: tests
category: misc
requiredIntents: {intents}
dependencies:
  required: {requires}
exports:
  double: lib/math_tools.py#double
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")


def _make_module(root: Path, name: str, *, requires: dict | None = None, intents=("Guilds",)) -> Path:
    module_dir = root / "modules" / name
    _write(
        module_dir / "module.yml",
        MANIFEST.format(name=name, title=name.title(), intents=list(intents), requires=requires or {}),
    )
    _write(
        module_dir / "commands" / "hello.py",
        """
        from types import SimpleNamespace

        COMMAND = SimpleNamespace(name="hello", description="hi", module_name=None)
        COMMANDS = [SimpleNamespace(name="bye", description="bye", module_name=None)]
        """,
    )
    _write(module_dir / "commands" / "old.disabled.py", "raise RuntimeError('must not import')\n")
    _write(module_dir / "commands" / "_helpers.py", "raise RuntimeError('must not import')\n")
    _write(
        module_dir / "events" / "message" / "count.py",
        """
        async def handle(bot, message):
            return None
        """,
    )
    _write(module_dir / "events" / "ready" / "broken.py", "handler = None\n")
    _write(
        module_dir / "panels" / "main.py",
        """
        from types import SimpleNamespace

        PANEL = SimpleNamespace(id="main_panel", module_name=None)
        """,
    )
    _write(
        module_dir / "lib" / "math_tools.py",
        """
        def double(x):
            return x * 2
        """,
    )
    return module_dir


class ModuleLoaderTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_discovery_skips_disabled_and_manifestless_dirs(self):
        _make_module(self.root, "alpha")
        (self.root / "modules" / "no-manifest").mkdir(parents=True)
        _make_module(self.root, "beta").rename(self.root / "modules" / "beta.disabled")
        dev = self.root / "modules_dev" / "repo" / "Modules"
        dev.mkdir(parents=True)
        _make_module(self.root, "gamma").rename(dev / "gamma")

        names = [p.name for p in find_module_dirs(self.root)]
        self.assertEqual(names, ["alpha", "gamma"])

    def test_load_all_collects_components(self):
        _make_module(self.root, "alpha")
        registry = ModuleRegistry()
        loaded = ModuleLoader(self.root, registry).load_all()

        self.assertEqual([m.name for m in loaded], ["alpha"])
        module = registry.get("alpha")
        self.assertEqual(sorted(c.name for c in module.commands), ["bye", "hello"])
        self.assertTrue(all(c.module_name == "alpha" for c in module.commands))
        self.assertEqual(list(module.events), ["message"])
        self.assertEqual([p.id for p in module.panels], ["main_panel"])
        self.assertEqual(module.panels[0].module_name, "alpha")
        self.assertEqual(registry.get_export("alpha", "double")(4), 8)

    def test_dependency_order_and_missing_dependency(self):
        _make_module(self.root, "app", requires={"core": "^1.0.0"})
        _make_module(self.root, "core")
        _make_module(self.root, "orphan", requires={"ghost": "^1.0.0"})

        registry = ModuleRegistry()
        loaded = ModuleLoader(self.root, registry).load_all()
        self.assertEqual([m.name for m in loaded], ["core", "app"])
        self.assertFalse(registry.is_loaded("orphan"))

    def test_invalid_and_disabled_manifests_are_skipped(self):
        _make_module(self.root, "good")
        _write(self.root / "modules" / "bad" / "module.yml", "name: Bad Name\n")
        _write(
            self.root / "modules" / "off" / "module.yml",
            MANIFEST.format(name="off", title="Off", intents=[], requires={}) + "enabled: false\n",
        )
        found = ModuleLoader(self.root, ModuleRegistry()).discover()
        self.assertEqual([m.name for m, _p in found], ["good"])

    def test_no_modules(self):
        self.assertEqual(ModuleLoader(self.root, ModuleRegistry()).load_all(), [])

    def test_resolve_export_adds_py_suffix(self):
        path, attr = resolve_export(Path("/mods/a"), "lib/tools#fn")
        self.assertEqual(path, Path("/mods/a/lib/tools.py"))
        self.assertEqual(attr, "fn")
        path, attr = resolve_export(Path("/mods/a"), "lib/tools.py")
        self.assertIsNone(attr)


class IntentTests(unittest.TestCase):
    def test_attr_names(self):
        self.assertEqual(intent_attr_name("Guilds"), "guilds")
        self.assertEqual(intent_attr_name("GuildMessages"), "guild_messages")
        self.assertEqual(intent_attr_name("MessageContent"), "message_content")
        self.assertEqual(intent_attr_name("GuildMembers"), "members")
        self.assertEqual(intent_attr_name("DirectMessages"), "dm_messages")

    def test_apply_intents_sets_known_flags(self):
        class FakeIntents:
            VALID_FLAGS = {"guilds": 1, "guild_messages": 2, "members": 4}

        intents = FakeIntents()
        unknown = apply_intents(intents, {"Guilds", "GuildMembers", "Telepathy"})
        self.assertEqual(unknown, ["Telepathy"])
        self.assertTrue(intents.guilds)
        self.assertTrue(intents.members)
        self.assertFalse(hasattr(intents, "guild_messages"))

    def test_collect_required_intents(self):
        _tmp = tempfile.TemporaryDirectory()
        self.addCleanup(_tmp.cleanup)
        root = Path(_tmp.name)
        _make_module(root, "a", intents=("Guilds", "GuildMessages"))
        _make_module(root, "b", intents=("Guilds", "MessageContent"))
        loaded = ModuleLoader(root, ModuleRegistry()).load_all()
        self.assertEqual(collect_required_intents(loaded), {"Guilds", "GuildMessages", "MessageContent"})


if __name__ == "__main__":
    unittest.main()
