from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

from config.manager import MAIN_CONFIG_SCHEMA
from config.manager import ConfigFileMeta
from config.manager import ConfigManager
from config.manager import config_metas_from_manifests


class ConfigManagerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.config = ConfigManager(self.data_dir, environ={})

    def tearDown(self):
        self._tmp.cleanup()

    def test_populate_adds_defaults_and_drops_orphans(self):
        self.config.main_config_path.parent.mkdir(parents=True)
        self.config.main_config_path.write_text(json.dumps({"testMode": True, "oldKey": 1}), encoding="utf-8")

        counts = self.config.ensure_config_populated()

        saved = json.loads(self.config.main_config_path.read_text(encoding="utf-8"))
        self.assertEqual(set(saved), set(MAIN_CONFIG_SCHEMA))
        self.assertTrue(saved["testMode"])
        self.assertEqual(counts, {"added": len(MAIN_CONFIG_SCHEMA) - 1, "preserved": 1, "removed": 1})

    def test_populate_regenerates_non_object_config(self):
        self.config.main_config_path.parent.mkdir(parents=True)
        self.config.main_config_path.write_text("[1, 2]", encoding="utf-8")
        counts = self.config.ensure_config_populated()
        self.assertEqual(counts["preserved"], 0)

    def test_property_lookup_order(self):
        config = ConfigManager(self.data_dir, environ={"DEVS": "1, 2", "adminPanel.itemsPerPage": "25"})
        self.assertEqual(config.get_config_property("DEVS"), ["1", "2"])
        self.assertEqual(config.get_config_property("adminPanel.itemsPerPage"), 25)
        self.assertEqual(config.get_config_property("testMode"), False)

        config.ensure_config_populated()
        # once the file holds the key it wins over the environment
        self.assertEqual(config.get_config_property("DEVS"), [])

    def test_placeholder_env_values_are_ignored(self):
        config = ConfigManager(self.data_dir, environ={"DEVS": "OPTIONAL: dev ids"})
        self.assertEqual(config.get_config_property("DEVS"), [])

    def test_guild_override(self):
        self.config.ensure_config_populated()
        self.config.save_guild_config("config.json", 55, {"testMode": True})
        self.assertTrue(self.config.get_config_property_for_guild("testMode", 55))
        self.assertFalse(self.config.get_config_property_for_guild("testMode", 66))
        self.assertFalse(self.config.get_config_property_for_guild("testMode", None))

    def test_guild_files_need_numeric_ids(self):
        self.config.register_config_files([ConfigFileMeta(file_id="fun.json", name="Fun", module_name="fun")])
        for bad in ("global", "../../escaped"):
            with self.assertRaises(ValueError):
                self.config.save_guild_config("fun.json", bad, {"a": 1})
            with self.assertRaises(ValueError):
                self.config.load_guild_config("config.json", bad)
        self.assertFalse((self.data_dir / "global" / "fun" / "fun.json").exists())

    def test_devs_skips_invalid_ids(self):
        self.config.ensure_config_populated()
        self.config.save_global_config("config.json", {**MAIN_CONFIG_SCHEMA, "DEVS": ["10", "x", 20]})
        self.assertEqual(self.config.devs(), {10, 20})

    def test_module_files_live_under_module_dir(self):
        self.config.register_config_files([ConfigFileMeta(file_id="fun.json", name="Fun", module_name="fun")])
        global_path = self.config.save_global_config("fun.json", {"a": 1})
        guild_path = self.config.save_guild_config("fun.json", 9, {"a": 2})
        self.assertEqual(global_path, self.data_dir / "global" / "fun" / "fun.json")
        self.assertEqual(guild_path, self.data_dir / "9" / "fun" / "fun.json")
        self.assertEqual(self.config.load_guild_config("fun.json", 9), {"a": 2})

    def test_first_module_keeps_a_claimed_file(self):
        self.config.register_config_files([ConfigFileMeta(file_id="x.json", name="A", module_name="a")])
        self.config.register_config_files([ConfigFileMeta(file_id="x.json", name="B", module_name="b")])
        self.assertEqual(self.config.config_file_meta("x.json").module_name, "a")

    def test_merged_config_reports_sources(self):
        self.config.register_config_files(
            [
                ConfigFileMeta(
                    file_id="fun.json",
                    name="Fun",
                    module_name="fun",
                    properties={
                        "greeting": {"type": "string", "default": "hi"},
                        "limit": {"type": "number", "default": 3},
                        "color": {"type": "string", "default": "red"},
                    },
                )
            ]
        )
        self.config.save_global_config("fun.json", {"limit": 5})
        self.config.save_guild_config("fun.json", 7, {"color": "blue", "extra": True})

        merged = self.config.get_merged_config("fun.json", 7)
        props = merged["properties"]
        self.assertEqual(props["greeting"]["source"], "default")
        self.assertFalse(props["greeting"]["is_set"])
        self.assertEqual(props["limit"], {**props["limit"], "value": 5, "source": "global"})
        self.assertEqual(props["color"]["value"], "blue")
        self.assertEqual(props["color"]["source"], "file")
        self.assertEqual(props["extra"]["type"], "boolean")
        self.assertTrue(merged["metadata"]["has_schema"])

    def test_metas_from_manifests_skip_modules_without_schema(self):
        manifests = [
            SimpleNamespace(name="a", config_schema={"id": "a.json", "properties": {"x": {"default": 1}}}),
            SimpleNamespace(name="b", config_schema={}),
        ]
        metas = config_metas_from_manifests(manifests)
        self.assertEqual([m.file_id for m in metas], ["a.json"])
        self.assertEqual(metas[0].module_name, "a")
        self.assertEqual(metas[0].name, "a.json")


if __name__ == "__main__":
    unittest.main()
