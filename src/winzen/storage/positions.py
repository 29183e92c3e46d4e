"""Position (bet) persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from winzen.models import Position

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "position_id",
    "user_id",
    "market_id",
    "outcome_id",
    "amount",
    "entry_probability",
    "shares",
    "is_bot",
    "created_at",
    "closed_at",
    "exit_probability",
    "payout",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM positions"


def _row_to_position(row: tuple) -> Position:
    return Position(**dict(zip(_COLUMNS, row)))


def insert_position(conn: DuckDBPyConnection, position: Position) -> None:
    conn.execute(
        f"INSERT INTO positions ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
        [getattr(position, c) for c in _COLUMNS],
    )


def get_position(conn: DuckDBPyConnection, position_id: str) -> Position | None:
    row = conn.execute(f"{_SELECT} WHERE position_id = ?", [position_id]).fetchone()
    return _row_to_position(row) if row else None


def held_outcome_ids(conn: DuckDBPyConnection, user_id: str, market_id: str) -> list[str]:
    """Distinct outcomes the user has ever bet on in this market (cashed out included)."""
    rows = conn.execute(
        "SELECT DISTINCT outcome_id FROM positions WHERE user_id = ? AND market_id = ?",
        [user_id, market_id],
    ).fetchall()
    return [r[0] for r in rows]


def list_open_positions(conn: DuckDBPyConnection, market_id: str) -> list[Position]:
    """Positions not cashed out, in creation order."""
    rows = conn.execute(
        f"{_SELECT} WHERE market_id = ? AND closed_at IS NULL ORDER BY created_at, position_id",
        [market_id],
    ).fetchall()
    return [_row_to_position(r) for r in rows]


def list_user_positions(conn: DuckDBPyConnection, user_id: str, open_only: bool = True) -> list[Position]:
    if open_only:
        rows = conn.execute(
            f"{_SELECT} WHERE user_id = ? AND closed_at IS NULL ORDER BY created_at DESC", [user_id]
        ).fetchall()
    else:
        rows = conn.execute(f"{_SELECT} WHERE user_id = ? ORDER BY created_at DESC", [user_id]).fetchall()
    return [_row_to_position(r) for r in rows]


def close_position(
    conn: DuckDBPyConnection, position_id: str, closed_at: int, exit_probability: float, payout: int
) -> bool:
    """Set cash-out fields once. Returns False if the position was already closed."""
    row = conn.execute(
        """
        UPDATE positions SET closed_at = ?, exit_probability = ?, payout = ?
        WHERE position_id = ? AND closed_at IS NULL
        RETURNING position_id
        """,
        [closed_at, exit_probability, payout, position_id],
    ).fetchone()
    return row is not None


def holdings(conn: DuckDBPyConnection, user_ids: list[str]) -> dict[tuple[str, str], str]:
    """(user_id, market_id) -> held outcome_id for many users in one query."""
    if not user_ids:
        return {}
    placeholders = ", ".join("?" * len(user_ids))
    rows = conn.execute(
        f"SELECT DISTINCT user_id, market_id, outcome_id FROM positions WHERE user_id IN ({placeholders})",
        list(user_ids),
    ).fetchall()
    return {(r[0], r[1]): r[2] for r in rows}


def open_position_user_ids(conn: DuckDBPyConnection, market_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT DISTINCT user_id FROM positions WHERE market_id = ? AND closed_at IS NULL", [market_id]
    ).fetchall()
    return [r[0] for r in rows]


def list_market_positions(conn: DuckDBPyConnection, market_id: str) -> list[Position]:
    """Every position on a market, cashed out included, in creation order."""
    rows = conn.execute(
        f"{_SELECT} WHERE market_id = ? ORDER BY created_at, position_id", [market_id]
    ).fetchall()
    return [_row_to_position(r) for r in rows]
