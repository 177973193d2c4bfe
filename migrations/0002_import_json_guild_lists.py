from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path


# Older deployments kept these under <data>/global/system/
BLACKLIST_FILE = "guild-blacklist.json"
NOTES_FILE = "guild-notes.json"


def _system_dir() -> Path:
    return Path(os.getenv("FMDB_DATA_DIR", "/data")) / "global" / "system"


def _read_json(path: Path) -> dict:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except (OSError, json.JSONDecodeError) as e:
        print(f"[DB] Skipping unreadable {path.name}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _to_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def upgrade(conn: sqlite3.Connection) -> None:
    now = datetime.now(timezone.utc).isoformat()
    system_dir = _system_dir()
    cur = conn.cursor()

    imported = 0
    for entry in _read_json(system_dir / BLACKLIST_FILE).get("guilds") or []:
        guild_id = _to_int(entry.get("id"))
        if guild_id is None:
            continue
        cur.execute(
            """
            INSERT OR IGNORE INTO guild_blacklist (guild_id, guild_name, reason, blacklisted_by, blacklisted_at_utc)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                guild_id,
                str(entry.get("name") or ""),
                entry.get("reason"),
                _to_int(entry.get("blacklistedBy")),
                str(entry.get("blacklistedAt") or now),
            ),
        )
        imported += cur.rowcount

    notes = 0
    for guild_key, entry in (_read_json(system_dir / NOTES_FILE).get("notes") or {}).items():
        guild_id = _to_int(guild_key)
        if guild_id is None or not isinstance(entry, dict) or not str(entry.get("note") or "").strip():
            continue
        cur.execute(
            """
            INSERT OR IGNORE INTO guild_notes (guild_id, note, updated_by, updated_at_utc)
            VALUES (?, ?, ?, ?)
            """,
            (guild_id, str(entry["note"]).strip(), _to_int(entry.get("updatedBy")), str(entry.get("updatedAt") or now)),
        )
        notes += cur.rowcount

    conn.commit()
    if imported or notes:
        print(f"[DB] Imported {imported} blacklisted guild(s) and {notes} guild note(s) from JSON")
