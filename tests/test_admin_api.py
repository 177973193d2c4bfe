from __future__ import annotations

import asyncio
import json
import os
import tempfile
import textwrap
import unittest
from pathlib import Path
from unittest import mock

import yaml
from aiohttp.test_utils import TestClient
from aiohttp.test_utils import TestServer

from admin.deps import AdminDeps
from admin.server import build_app
from config.env import CREDENTIAL_KEYS
from config.manager import ConfigManager
from safety.manager import UpdateSafetyManager
from safety.state import SafetyPaths
from safety.state import load_update_config
from settings.discovery import SettingsDiscovery
from settings.storage import SettingsStore


TOKEN = "secret-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
CLIENT_ID = "123456789012345678"

SETTINGS_SCHEMA = {
    "id": "fun",
    "name": "Fun",
    "scope": "both",
    "settings": {
        "limit": {"type": "number", "default": 5, "label": "Limit", "validation": {"min": 1, "max": 10, "absoluteMax": 50}},
    },
}


class FakeBot:
    def __init__(self, safety):
        self.safety = safety
        self.running = False
        self.logs = ["one", "two", "three"]
        self.calls = []

    def is_running(self):
        return self.running

    def disable_safe_mode(self):
        self.calls.append("disable_safe_mode")
        self.safety.disable_safe_mode()

    def status(self):
        return {"running": self.running, "uptime": 0, "processId": None, "crashed": False, "safeMode": False}

    async def start(self):
        self.calls.append("start")
        self.running = True
        return {"success": True}

    async def restart(self):
        self.calls.append("restart")
        return await self.start()

    async def shutdown(self, emergency=False):
        self.calls.append(("shutdown", emergency))
        if not self.running:
            return False
        self.running = False
        return True

    def get_logs(self, include_crash=False):
        return {"current": list(self.logs), "crashed": False}

    def clear_logs(self):
        self.logs = []

    def subscribe(self):
        self.queue = asyncio.Queue()
        return self.queue

    def unsubscribe(self, queue):
        self.calls.append("unsubscribe")


class AdminApiTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.paths = SafetyPaths(root / "data", root / "bot-source", root / "original")
        self.paths.source_dir.mkdir(parents=True)
        (self.paths.source_dir / "bot.py").write_text("print('v1')\n", encoding="utf-8")
        (self.paths.source_dir / "VERSION").write_text("1.0.0\n", encoding="utf-8")

        module_dir = self.paths.source_dir / "modules" / "fun"
        module_dir.mkdir(parents=True)
        (module_dir / "module.yml").write_text(
            textwrap.dedent(
                """\
                name: fun
                version: 1.0.0
                description: d
                author: a
                """
            ),
            encoding="utf-8",
        )
        (module_dir / "settings.yml").write_text(yaml.safe_dump(SETTINGS_SCHEMA), encoding="utf-8")

        self.safety = UpdateSafetyManager(self.paths)
        self.bot = FakeBot(self.safety)
        self.events = []

        async def record_event(event_type, detail):
            self.events.append((event_type, detail))

        async def list_events(limit):
            return [{"event_type": t, "detail": d} for t, d in reversed(self.events)][:limit]

        async def check_updates():
            return {"success": True, "hasUpdates": False, "currentVersion": "1.0.0"}

        deps = AdminDeps(
            bot=self.bot,
            safety=self.safety,
            paths=self.paths,
            config=ConfigManager(self.paths.data_dir, environ={}),
            settings=SettingsStore(self.paths.data_dir, SettingsDiscovery(self.paths.source_dir)),
            admin_token=TOKEN,
            check_updates=check_updates,
            record_event=record_event,
            list_events=list_events,
            keep_backups=lambda: 2,
        )
        self.client = TestClient(TestServer(build_app(deps)))
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()
        self._tmp.cleanup()

    async def request(self, method, path, *, status=200, **kwargs):
        kwargs.setdefault("headers", AUTH)
        resp = await self.client.request(method, path, **kwargs)
        self.assertEqual(resp.status, status, await resp.text())
        return await resp.json()

    async def test_health_is_public(self):
        body = await self.request("GET", "/api/health", headers={})
        self.assertEqual(body["status"], "ok")
        self.assertFalse(body["bot"])

    async def test_auth(self):
        body = await self.request("GET", "/api/control/status", headers={}, status=401)
        self.assertEqual(body, {"success": False, "error": "Unauthorized"})
        await self.request("GET", "/api/control/status", headers={"Authorization": "Bearer nope"}, status=401)
        body = await self.request("GET", f"/api/control/status?token={TOKEN}", headers={})
        self.assertFalse(body["status"]["running"])

    async def test_control_lifecycle(self):
        await self.request("POST", "/api/control/shutdown", status=409)
        self.assertEqual(await self.request("POST", "/api/control/start"), {"success": True})
        body = await self.request("POST", "/api/control/shutdown", json={"emergency": True})
        self.assertTrue(body["success"])
        self.assertIn(("shutdown", True), self.bot.calls)
        self.assertEqual([e[0] for e in self.events], ["bot_start", "bot_shutdown"])

    async def test_logs(self):
        body = await self.request("GET", "/api/control/logs?limit=2")
        self.assertEqual(body["logs"]["current"], ["two", "three"])
        body = await self.request("GET", "/api/control/logs?limit=-1", status=400)
        self.assertIn("Invalid limit", body["error"])
        await self.request("GET", "/api/control/logs?limit=abc", status=400)
        await self.request("POST", "/api/control/logs/clear")
        self.assertEqual(self.bot.logs, [])

    async def test_log_stream(self):
        resp = await self.client.get("/api/control/logs/ws")
        self.assertEqual(resp.status, 401)

        ws = await self.client.ws_connect(f"/api/control/logs/ws?token={TOKEN}")
        backlog = await ws.receive_json(timeout=5)
        self.assertEqual(backlog, {"type": "bot:backlog", "data": {"lines": ["one", "two", "three"]}})

        self.bot.queue.put_nowait({"type": "bot:log", "data": {"line": "four"}})
        self.assertEqual(await ws.receive_json(timeout=5), {"type": "bot:log", "data": {"line": "four"}})

        await ws.close()
        for _ in range(100):
            if "unsubscribe" in self.bot.calls:
                break
            await asyncio.sleep(0.01)
        self.assertIn("unsubscribe", self.bot.calls)

    async def test_invalid_json_body(self):
        body = await self.request(
            "POST", "/api/control/shutdown", data="{nope", headers={**AUTH, "Content-Type": "application/json"}, status=400
        )
        self.assertEqual(body["error"], "Invalid JSON body")

    async def test_backup_create_list_delete(self):
        for i in range(3):
            body = await self.request("POST", "/api/update/backup", json={"description": f"b{i}"})
            self.assertEqual(body["backup"]["version"], "1.0.0")

        listed = await self.request("GET", "/api/update/backups")
        self.assertEqual([b["description"] for b in listed["backups"]], ["b2", "b1"])

        timestamp = listed["backups"][0]["timestamp"]
        await self.request("DELETE", f"/api/update/backup/{timestamp}")
        await self.request("DELETE", f"/api/update/backup/{timestamp}", status=404)
        await self.request("DELETE", "/api/update/backup/not-a-number", status=404)
        self.assertEqual(len(self.safety.backups()), 1)

    async def test_rollback(self):
        created = await self.request("POST", "/api/update/backup")
        timestamp = created["backup"]["timestamp"]
        (self.paths.source_dir / "bot.py").write_text("print('v2')\n", encoding="utf-8")
        self.bot.running = True

        body = await self.request("POST", f"/api/update/rollback/{timestamp}")
        self.assertIn("Rollback successful", body["message"])
        self.assertEqual((self.paths.source_dir / "bot.py").read_text(encoding="utf-8"), "print('v1')\n")
        self.assertFalse(self.bot.running)
        self.assertEqual(self.safety.state["rollbackSnapshot"]["updateMode"], "rollback")

        await self.request("POST", "/api/update/rollback/999", status=404)
        (self.paths.backups_dir / "backup-5").mkdir()
        body = await self.request("POST", "/api/update/rollback/5", status=400)
        self.assertIn("corrupted", body["error"])

    async def test_trigger_update(self):
        body = await self.request("POST", "/api/update/trigger", json={"mode": "sideways"}, status=400)
        self.assertIn("Invalid update mode", body["error"])

        await self.request("POST", "/api/update/trigger", json={"mode": "basic"})
        config = load_update_config(self.paths.update_config_path)
        self.assertTrue(config["updateInProgress"])
        self.assertEqual(config["updateMode"], "basic")

        status = await self.request("GET", "/api/update/status")
        self.assertEqual(status["update"]["mode"], "basic")
        self.assertIn("recentCrashes", status["safety"])

    async def test_trigger_apply_now_restarts_bot(self):
        self.paths.original_source_dir.mkdir()
        (self.paths.original_source_dir / "bot.py").write_text("print('v3')\n", encoding="utf-8")
        (self.paths.original_source_dir / "VERSION").write_text("3.0.0\n", encoding="utf-8")
        self.bot.running = True

        body = await self.request("POST", "/api/update/trigger", json={"mode": "basic", "applyNow": True})
        self.assertTrue(body["restarted"])
        self.assertEqual((self.paths.source_dir / "bot.py").read_text(encoding="utf-8"), "print('v3')\n")
        self.assertFalse(load_update_config(self.paths.update_config_path)["updateInProgress"])
        self.assertTrue(self.safety.state["rollbackAvailable"])
        self.assertEqual(self.bot.calls, [("shutdown", False), "start"])

    async def test_safe_mode_and_crashes(self):
        self.safety.record_crash(1, None, ["boom"])
        self.safety.enable_safe_mode("manual")
        crashes = await self.request("GET", "/api/update/crash-logs?limit=5")
        self.assertEqual(crashes["crashes"][0]["exitCode"], 1)
        await self.request("GET", "/api/update/crash-logs?limit=x", status=400)

        await self.request("POST", "/api/update/safe-mode/disable")
        self.assertIn("disable_safe_mode", self.bot.calls)
        await self.request("POST", "/api/update/crashes/clear")
        self.assertFalse(self.safety.is_in_safe_mode())
        self.assertEqual(self.safety.state["crashHistory"], [])

        events = await self.request("GET", "/api/update/events?limit=1")
        self.assertEqual(events["events"], [{"event_type": "safe_mode_disabled", "detail": {"source": "admin"}}])

    async def test_check_updates(self):
        body = await self.request("POST", "/api/update/check")
        self.assertFalse(body["hasUpdates"])

    async def test_config_files(self):
        files = await self.request("GET", "/api/config/files")
        self.assertIn("config.json", [f["id"] for f in files["files"]])
        await self.request("GET", "/api/config/unknown.json", status=404)

        await self.request("PUT", "/api/config/config.json", json={"testMode": True})
        await self.request("PUT", "/api/config/config.json?guild=42", json={"adminPanel.itemsPerPage": 5})
        merged = await self.request("GET", "/api/config/config.json/merged?guild=42")
        properties = merged["config"]["properties"]
        self.assertEqual(properties["adminPanel.itemsPerPage"]["source"], "file")
        self.assertEqual(properties["testMode"]["source"], "global")
        self.assertEqual(properties["DEVS"]["source"], "default")

        body = await self.request("GET", "/api/config/config.json")
        self.assertEqual(body["data"], {"testMode": True})

    async def test_module_settings(self):
        listed = await self.request("GET", "/api/settings")
        self.assertEqual(listed["modules"][0]["name"], "fun")
        await self.request("GET", "/api/settings/ghost", status=404)

        body = await self.request("PUT", "/api/settings/fun", json={"limit": 99}, status=400)
        self.assertEqual(body["errors"], ["limit: Value cannot exceed 50"])
        await self.request("PUT", "/api/settings/fun?guild=7", json={"limit": 8})

        body = await self.request("GET", "/api/settings/fun?guild=7")
        self.assertEqual(body["values"]["limit"], 8)
        self.assertEqual(body["sources"]["limit"], "guild")

        body = await self.request("PUT", "/api/settings/fun/limits/limit", json={"max": 100}, status=400)
        self.assertIn("absolute maximum", body["error"])
        await self.request("PUT", "/api/settings/fun/limits/limit", json={"max": 6})
        body = await self.request("PUT", "/api/settings/fun", json={"limit": 8}, status=400)
        self.assertEqual(body["errors"], ["limit: Value must be at most 6"])

        exported = await self.request("GET", "/api/settings/fun/export?guild=7")
        self.assertEqual(json.loads(exported["payload"]), {"limit": 8})
        await self.request("POST", "/api/settings/fun/import", json={"payload": {"limit": 3}})
        await self.request("DELETE", "/api/settings/fun/limit?guild=7")
        body = await self.request("GET", "/api/settings/fun?guild=7")
        self.assertEqual(body["values"]["limit"], 3)

    async def test_guild_query_must_be_numeric(self):
        await self.request("PUT", "/api/settings/fun", json={"limit": 9})
        for guild in ("global", "../../escaped", "7x"):
            body = await self.request("PUT", f"/api/settings/fun?guild={guild}", json={"limit": 2}, status=400)
            self.assertEqual(body["error"], "Invalid guild id")
            await self.request("GET", f"/api/config/config.json?guild={guild}", status=400)
            await self.request("PUT", f"/api/config/config.json?guild={guild}", json={"testMode": True}, status=400)

        body = await self.request("GET", "/api/settings/fun")
        self.assertEqual((body["values"]["limit"], body["sources"]["limit"]), (9, "global"))
        self.assertFalse((self.paths.data_dir.parent / "escaped").exists())

    async def test_credentials(self):
        with mock.patch.dict(os.environ, {key: "" for key in CREDENTIAL_KEYS}):
            body = await self.request("GET", "/api/setup/credentials")
            self.assertFalse(body["valid"])
            self.assertIn("DISCORD_TOKEN", body["missing"])

            body = await self.request("POST", "/api/setup/credentials", json={"DISCORD_TOKEN": "discord-token-value"}, status=400)
            self.assertEqual(body["missing"], ["CLIENT_ID", "GUILD_ID"])

            body = await self.request(
                "POST",
                "/api/setup/credentials",
                json={"DISCORD_TOKEN": "discord-token-value", "CLIENT_ID": "123456789012", "GUILD_ID": "abc"},
                status=400,
            )
            self.assertEqual(body["invalid"], ["CLIENT_ID", "GUILD_ID"])

            await self.request(
                "POST",
                "/api/setup/credentials",
                json={"DISCORD_TOKEN": "discord-token-value", "CLIENT_ID": CLIENT_ID, "GUILD_ID": "111111111111111111"},
            )
            body = await self.request("GET", "/api/setup/credentials")
        self.assertTrue(body["valid"])
        self.assertEqual(body["credentials"]["DISCORD_TOKEN"]["value"], "[********] (Set)")
        self.assertNotIn("discord-token-value", json.dumps(body))

    async def test_main_guild_follows_guild_until_set(self):
        env_file = self.paths.data_dir / ".env"
        with mock.patch.dict(os.environ, {key: "" for key in CREDENTIAL_KEYS}):
            base = {"DISCORD_TOKEN": "discord-token-value", "CLIENT_ID": CLIENT_ID}
            await self.request("POST", "/api/setup/credentials", json={**base, "GUILD_ID": "111111111111111111"})
            await self.request("POST", "/api/setup/credentials", json={"GUILD_ID": "222222222222222222"})
            text = env_file.read_text(encoding="utf-8")
            self.assertIn("GUILD_ID=222222222222222222", text)
            self.assertNotIn("MAIN_GUILD_ID", text)

            await self.request("POST", "/api/setup/credentials", json={"MAIN_GUILD_ID": "333333333333333333"})
            await self.request("POST", "/api/setup/credentials", json={"GUILD_ID": "444444444444444444"})
            body = await self.request("GET", "/api/setup/credentials")
        lines = env_file.read_text(encoding="utf-8").splitlines()
        self.assertIn("MAIN_GUILD_ID=333333333333333333", lines)
        self.assertIn("GUILD_ID=444444444444444444", lines)
        self.assertEqual(body["credentials"]["MAIN_GUILD_ID"]["value"], "[333333333333333333] (Set)")


if __name__ == "__main__":
    unittest.main()
