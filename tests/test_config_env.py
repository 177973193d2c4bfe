from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from config.env import DERIVED_KEY
from config.env import credential_status
from config.env import env_file_path
from config.env import invalid_snowflakes
from config.env import is_placeholder
from config.env import is_snowflake
from config.env import load_credentials
from config.env import save_credentials
from config.env import validate_credentials


class CredentialLoadingTests(unittest.TestCase):
    def test_placeholder_detection(self):
        self.assertTrue(is_placeholder(None))
        self.assertTrue(is_placeholder("   "))
        self.assertTrue(is_placeholder("REPLACE WITH YOUR TOKEN"))
        self.assertTrue(is_placeholder("optional: main guild"))
        self.assertTrue(is_placeholder("value will be auto-generated"))
        self.assertFalse(is_placeholder("abc123"))

    def test_env_wins_over_dotenv_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file_path(Path(tmp)).write_text(
                "DISCORD_TOKEN=from-file\nCLIENT_ID=client-from-file\n",
                encoding="utf-8",
            )
            creds = load_credentials(Path(tmp), environ={"DISCORD_TOKEN": "from-env"})
        self.assertEqual(creds["DISCORD_TOKEN"], "from-env")
        self.assertEqual(creds["CLIENT_ID"], "client-from-file")

    def test_dotenv_fills_placeholder_env_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file_path(Path(tmp)).write_text("GUILD_ID=42\n", encoding="utf-8")
            creds = load_credentials(Path(tmp), environ={"GUILD_ID": "REPLACE WITH GUILD"})
        self.assertEqual(creds["GUILD_ID"], "42")

    def test_main_guild_defaults_to_guild(self):
        with tempfile.TemporaryDirectory() as tmp:
            creds = load_credentials(Path(tmp), environ={"GUILD_ID": "42"})
        self.assertEqual(creds["MAIN_GUILD_ID"], "42")
        self.assertIsNone(creds["ADMIN_TOKEN"])

    def test_validate_reports_missing_required(self):
        valid, missing, reason = validate_credentials({"DISCORD_TOKEN": "t", "CLIENT_ID": None, "GUILD_ID": ""})
        self.assertFalse(valid)
        self.assertEqual(missing, ["CLIENT_ID", "GUILD_ID"])
        self.assertIn("CLIENT_ID", reason)

        valid, missing, reason = validate_credentials({"DISCORD_TOKEN": "t", "CLIENT_ID": "c", "GUILD_ID": "g"})
        self.assertTrue(valid)
        self.assertEqual(missing, [])
        self.assertIsNone(reason)

    def test_save_then_load_round_trip(self):
        with tempfile.TemporaryDirectory() as tmp:
            saved, error = save_credentials(Path(tmp), {"DISCORD_TOKEN": "tok", "CLIENT_ID": "cid", "ADMIN_TOKEN": None})
            self.assertTrue(saved)
            self.assertIsNone(error)
            text = env_file_path(Path(tmp)).read_text(encoding="utf-8")
            self.assertNotIn("ADMIN_TOKEN", text)
            creds = load_credentials(Path(tmp), environ={})
        self.assertEqual(creds["DISCORD_TOKEN"], "tok")
        self.assertEqual(creds["CLIENT_ID"], "cid")

    def test_derived_main_guild_is_not_saved(self):
        with tempfile.TemporaryDirectory() as tmp:
            creds = load_credentials(Path(tmp), environ={"DISCORD_TOKEN": "tok", "GUILD_ID": "111111111111111111"})
            self.assertEqual(creds["MAIN_GUILD_ID"], "111111111111111111")
            self.assertEqual(creds[DERIVED_KEY], ["MAIN_GUILD_ID"])
            save_credentials(Path(tmp), creds)
            text = env_file_path(Path(tmp)).read_text(encoding="utf-8")
        self.assertIn("GUILD_ID=111111111111111111", text)
        self.assertNotIn("MAIN_GUILD_ID", text)
        self.assertNotIn(DERIVED_KEY, text)

    def test_unknown_dotenv_keys_are_ignored(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file_path(Path(tmp)).write_text("DISCORD_TOKEN=tok\nOPENAI_API_KEY=sk-x\n", encoding="utf-8")
            creds = load_credentials(Path(tmp), environ={})
            self.assertNotIn("OPENAI_API_KEY", creds)
            save_credentials(Path(tmp), {**creds, "EXTRA": "x"})
            text = env_file_path(Path(tmp)).read_text(encoding="utf-8")
        self.assertEqual(text, "DISCORD_TOKEN=tok\n")

    def test_snowflake_checks(self):
        self.assertTrue(is_snowflake("123456789012345678"))
        self.assertFalse(is_snowflake("123456789012"))
        self.assertFalse(is_snowflake("12345678901234567a"))
        self.assertFalse(is_snowflake(None))
        creds = {"CLIENT_ID": "123456789012345678", "GUILD_ID": "42", "MAIN_GUILD_ID": None}
        self.assertEqual(invalid_snowflakes(creds), ["GUILD_ID"])

    def test_status_masks_secrets(self):
        status = credential_status(
            {
                "DISCORD_TOKEN": "a-very-long-discord-token",
                "CLIENT_ID": None,
                "GUILD_ID": "123456789012345678",
                "MAIN_GUILD_ID": "123456789012345678",
                "ADMIN_TOKEN": None,
            }
        )
        self.assertEqual(status["DISCORD_TOKEN"], {"set": True, "value": "[********] (Set)"})
        self.assertFalse(status["CLIENT_ID"]["set"])
        self.assertEqual(status["MAIN_GUILD_ID"]["value"], "[Using GUILD_ID]")
        self.assertNotIn("a-very-long-discord-token", str(status))


if __name__ == "__main__":
    unittest.main()
