"""Activity feed append, prune, and query."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from winzen.models import Activity

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = ["type", "user_id", "username", "market_id", "market_title", "side", "amount", "price", "created_at"]


def append_activity(conn: DuckDBPyConnection, activity: Activity) -> None:
    created_at = activity.created_at or int(time.time() * 1000)
    values = [getattr(activity, c) for c in _COLUMNS[:-1]] + [created_at]
    conn.execute(
        f"INSERT INTO activities ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
        values,
    )


def prune_activities(conn: DuckDBPyConnection, keep: int = 200) -> int:
    """Delete everything but the newest ``keep`` rows in one statement. Returns rows deleted."""
    row = conn.execute(
        "DELETE FROM activities WHERE id NOT IN (SELECT id FROM activities ORDER BY id DESC LIMIT ?)",
        [keep],
    ).fetchone()
    return int(row[0]) if row else 0


def recent_activities(conn: DuckDBPyConnection, limit: int = 20) -> list[Activity]:
    rows = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM activities ORDER BY id DESC LIMIT ?", [limit]
    ).fetchall()
    return [Activity(**dict(zip(_COLUMNS, r))) for r in rows]


def count_activities(conn: DuckDBPyConnection) -> int:
    return conn.execute("SELECT COUNT(*) FROM activities").fetchone()[0]
