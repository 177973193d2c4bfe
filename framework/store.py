from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any


LAST_TEST_GUILD_KEY = "last_test_guild_id"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# command sync tracking

def get_sync_value_sync(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM command_sync_state WHERE key = ?", (str(key),)).fetchone()
    return None if row is None else row[0]


def set_sync_value_sync(conn: sqlite3.Connection, key: str, value: str | None) -> None:
    conn.execute(
        """
        INSERT INTO command_sync_state (key, value, updated_at_utc) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = excluded.updated_at_utc
        """,
        (str(key), value, _utc_now_iso()),
    )
    conn.commit()


def get_last_test_guild_sync(conn: sqlite3.Connection) -> int | None:
    value = get_sync_value_sync(conn, LAST_TEST_GUILD_KEY)
    try:
        return int(value) if value else None
    except ValueError:
        return None


def set_last_test_guild_sync(conn: sqlite3.Connection, guild_id: int | None) -> None:
    set_sync_value_sync(conn, LAST_TEST_GUILD_KEY, str(int(guild_id)) if guild_id else None)


# guild blacklist

def _row_to_blacklist(row) -> dict[str, Any]:
    return {
        "guild_id": int(row[0]),
        "guild_name": row[1],
        "reason": row[2],
        "blacklisted_by": int(row[3]) if row[3] is not None else None,
        "blacklisted_at_utc": row[4],
    }


def is_guild_blacklisted_sync(conn: sqlite3.Connection, guild_id: int) -> bool:
    row = conn.execute("SELECT 1 FROM guild_blacklist WHERE guild_id = ? LIMIT 1", (int(guild_id),)).fetchone()
    return row is not None


def add_to_blacklist_sync(
    conn: sqlite3.Connection,
    *,
    guild_id: int,
    guild_name: str | None,
    blacklisted_by: int | None,
    reason: str | None = None,
) -> bool:
    cur = conn.execute(
        """
        INSERT OR IGNORE INTO guild_blacklist (guild_id, guild_name, reason, blacklisted_by, blacklisted_at_utc)
        VALUES (?, ?, ?, ?, ?)
        """,
        (int(guild_id), str(guild_name or ""), reason, blacklisted_by, _utc_now_iso()),
    )
    conn.commit()
    return cur.rowcount > 0


def remove_from_blacklist_sync(conn: sqlite3.Connection, guild_id: int) -> bool:
    cur = conn.execute("DELETE FROM guild_blacklist WHERE guild_id = ?", (int(guild_id),))
    conn.commit()
    return cur.rowcount > 0


def list_blacklist_sync(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    cur = conn.execute(
        """
        SELECT guild_id, guild_name, reason, blacklisted_by, blacklisted_at_utc
        FROM guild_blacklist
        ORDER BY blacklisted_at_utc DESC
        """
    )
    return [_row_to_blacklist(row) for row in cur.fetchall()]


# guild notes

def get_guild_note_sync(conn: sqlite3.Connection, guild_id: int) -> str | None:
    row = conn.execute("SELECT note FROM guild_notes WHERE guild_id = ?", (int(guild_id),)).fetchone()
    return None if row is None else str(row[0])


def set_guild_note_sync(conn: sqlite3.Connection, guild_id: int, note: str, updated_by: int | None) -> None:
    """An empty note deletes the entry."""
    note = (note or "").strip()
    if not note:
        conn.execute("DELETE FROM guild_notes WHERE guild_id = ?", (int(guild_id),))
    else:
        conn.execute(
            """
            INSERT INTO guild_notes (guild_id, note, updated_by, updated_at_utc) VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                note = excluded.note,
                updated_by = excluded.updated_by,
                updated_at_utc = excluded.updated_at_utc
            """,
            (int(guild_id), note, updated_by, _utc_now_iso()),
        )
    conn.commit()
