from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_instance(row: sqlite3.Row | tuple[Any, ...] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    cols = ["message_id", "channel_id", "guild_id", "panel_id", "state_json", "created_at_utc", "updated_at_utc"]
    out: dict[str, Any] = {col: row[idx] for idx, col in enumerate(cols)}
    for k in ("message_id", "channel_id", "guild_id"):
        if out.get(k) is not None:
            out[k] = int(out[k])
    try:
        out["state"] = json.loads(out.pop("state_json") or "{}")
    except json.JSONDecodeError:
        out["state"] = {}
    return out


def upsert_panel_instance_sync(
    conn: sqlite3.Connection,
    *,
    message_id: int,
    channel_id: int,
    guild_id: int | None,
    panel_id: str,
    state: dict[str, Any] | None = None,
) -> None:
    now = _utc_now_iso()
    conn.execute(
        """
        INSERT INTO persistent_panels (message_id, channel_id, guild_id, panel_id, state_json, created_at_utc, updated_at_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(message_id) DO UPDATE SET
            channel_id = excluded.channel_id,
            guild_id = excluded.guild_id,
            panel_id = excluded.panel_id,
            state_json = excluded.state_json,
            updated_at_utc = excluded.updated_at_utc
        """,
        (
            int(message_id),
            int(channel_id),
            int(guild_id) if guild_id is not None else None,
            str(panel_id),
            json.dumps(state or {}, ensure_ascii=False),
            now,
            now,
        ),
    )
    conn.commit()


def update_panel_state_sync(conn: sqlite3.Connection, message_id: int, state: dict[str, Any]) -> bool:
    cur = conn.execute(
        "UPDATE persistent_panels SET state_json = ?, updated_at_utc = ? WHERE message_id = ?",
        (json.dumps(state or {}, ensure_ascii=False), _utc_now_iso(), int(message_id)),
    )
    conn.commit()
    return cur.rowcount > 0


def fetch_panel_instance_sync(conn: sqlite3.Connection, message_id: int) -> dict[str, Any] | None:
    cur = conn.execute(
        """
        SELECT message_id, channel_id, guild_id, panel_id, state_json, created_at_utc, updated_at_utc
        FROM persistent_panels
        WHERE message_id = ?
        """,
        (int(message_id),),
    )
    return _row_to_instance(cur.fetchone())


def list_panel_instances_sync(conn: sqlite3.Connection, panel_id: str | None = None) -> list[dict[str, Any]]:
    sql = """
        SELECT message_id, channel_id, guild_id, panel_id, state_json, created_at_utc, updated_at_utc
        FROM persistent_panels
    """
    params: tuple[Any, ...] = ()
    if panel_id is not None:
        sql += " WHERE panel_id = ?"
        params = (str(panel_id),)
    sql += " ORDER BY created_at_utc ASC, message_id ASC"
    return [_row_to_instance(row) for row in conn.execute(sql, params).fetchall()]


def delete_panel_instance_sync(conn: sqlite3.Connection, message_id: int) -> bool:
    cur = conn.execute("DELETE FROM persistent_panels WHERE message_id = ?", (int(message_id),))
    conn.commit()
    return cur.rowcount > 0
