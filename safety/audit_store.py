from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_update_event_sync(conn: sqlite3.Connection, event_type: str, detail: dict[str, Any] | None = None) -> int:
    cur = conn.execute(
        "INSERT INTO update_events (event_type, detail_json, created_at_utc) VALUES (?, ?, ?)",
        (str(event_type), json.dumps(detail or {}, ensure_ascii=False, default=str), _utc_now_iso()),
    )
    conn.commit()
    return int(cur.lastrowid)


def list_update_events_sync(conn: sqlite3.Connection, limit: int = 50, event_type: str | None = None) -> list[dict[str, Any]]:
    sql = "SELECT id, event_type, detail_json, created_at_utc FROM update_events"
    params: list[Any] = []
    if event_type:
        sql += " WHERE event_type = ?"
        params.append(str(event_type))
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(max(1, min(int(limit), 500)))

    out: list[dict[str, Any]] = []
    for row_id, kind, detail_json, created in conn.execute(sql, params).fetchall():
        try:
            detail = json.loads(detail_json or "{}")
        except json.JSONDecodeError:
            detail = {}
        out.append({"id": int(row_id), "event_type": kind, "detail": detail, "created_at_utc": created})
    return out
