from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values


CREDENTIAL_KEYS = (
    "DISCORD_TOKEN",
    "CLIENT_ID",
    "GUILD_ID",
    "MAIN_GUILD_ID",
    "ADMIN_TOKEN",
)
REQUIRED_CREDENTIALS = ("DISCORD_TOKEN", "CLIENT_ID", "GUILD_ID")
SECRET_CREDENTIALS = {"DISCORD_TOKEN", "ADMIN_TOKEN"}
SNOWFLAKE_CREDENTIALS = ("CLIENT_ID", "GUILD_ID", "MAIN_GUILD_ID")
# filled in by load_credentials; never written back to .env
DERIVED_KEY = "_derived"


def is_snowflake(value: str | None) -> bool:
    v = str(value or "").strip()
    return v.isdigit() and len(v) >= 17


def is_placeholder(value: str | None) -> bool:
    if value is None:
        return True
    v = str(value).strip().upper()
    if not v:
        return True
    return v.startswith("REPLACE WITH") or v.startswith("OPTIONAL") or "WILL BE AUTO-GENERATED" in v


def env_file_path(data_dir: Path) -> Path:
    return Path(data_dir) / ".env"


def load_credentials(data_dir: Path, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Env vars first; `<data>/.env` only fills keys that are unset or placeholders.

    Keys filled from defaults are listed under DERIVED_KEY so save_credentials skips them.
    """
    source = os.environ if environ is None else environ
    creds: dict[str, Any] = {key: source.get(key) for key in CREDENTIAL_KEYS}

    path = env_file_path(data_dir)
    if path.exists():
        try:
            file_values = dotenv_values(path)
            for key, value in file_values.items():
                if key in creds and is_placeholder(creds.get(key)):
                    creds[key] = value
            print(f"[EnvLoader] Loaded credentials from {path}")
        except OSError as e:
            print(f"[EnvLoader] Error loading {path}: {e}")

    for key, value in list(creds.items()):
        if is_placeholder(value):
            creds[key] = None
        else:
            creds[key] = str(value).strip()

    derived: list[str] = []
    if not creds.get("MAIN_GUILD_ID") and creds.get("GUILD_ID"):
        creds["MAIN_GUILD_ID"] = creds.get("GUILD_ID")
        derived.append("MAIN_GUILD_ID")
    creds[DERIVED_KEY] = derived
    return creds


def validate_credentials(creds: dict[str, str | None]) -> tuple[bool, list[str], str | None]:
    missing = [key for key in REQUIRED_CREDENTIALS if is_placeholder(creds.get(key))]
    if missing:
        return False, missing, f"Missing or invalid credentials: {', '.join(missing)}"
    return True, [], None


def invalid_snowflakes(creds: dict[str, str | None]) -> list[str]:
    """Discord id credentials that are set but not 17+ digit snowflakes."""
    return [key for key in SNOWFLAKE_CREDENTIALS if creds.get(key) and not is_snowflake(creds.get(key))]


def save_credentials(data_dir: Path, creds: dict[str, str | None]) -> tuple[bool, str | None]:
    path = env_file_path(data_dir)
    derived = set(creds.get(DERIVED_KEY) or ())
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            f"{key}={creds[key]}"
            for key in CREDENTIAL_KEYS
            if creds.get(key) is not None and key not in derived
        ]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        print(f"[EnvLoader] Error saving credentials: {e}")
        return False, str(e)
    print(f"[EnvLoader] Credentials saved to {path}")
    return True, None


def _is_set(value: str | None) -> bool:
    return bool(value) and len(str(value)) > 10 and not is_placeholder(value)


def credential_status(creds: dict[str, str | None]) -> dict[str, dict[str, object]]:
    status: dict[str, dict[str, object]] = {}
    for key in CREDENTIAL_KEYS:
        value = creds.get(key)
        if key == "MAIN_GUILD_ID":
            same = value is not None and value == creds.get("GUILD_ID")
            if not _is_set(value):
                status[key] = {"set": False, "value": "[Empty] (Defaults to GUILD_ID)"}
            elif same:
                status[key] = {"set": False, "value": "[Using GUILD_ID]"}
            else:
                status[key] = {"set": True, "value": f"[{value}] (Set)"}
            continue
        if key in SECRET_CREDENTIALS or key in REQUIRED_CREDENTIALS:
            ok = _is_set(value)
            status[key] = {"set": ok, "value": "[********] (Set)" if ok else "[Empty] (Not Set)"}
    return status
