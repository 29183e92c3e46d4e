"""User persistence."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from winzen.models import User

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "user_id",
    "name",
    "balance",
    "elo_rating",
    "win_streak",
    "total_wins",
    "total_losses",
    "total_profit",
    "xp",
    "level",
    "is_bot",
    "bot_strategy",
    "bot_slot",
    "created_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM users"


def _row_to_user(row: tuple) -> User:
    return User(**dict(zip(_COLUMNS, row)))


def insert_user(
    conn: DuckDBPyConnection,
    name: str,
    balance: int,
    elo_rating: int = 1000,
    is_bot: bool = False,
    bot_strategy: str | None = None,
    user_id: str | None = None,
    bot_slot: int | None = None,
) -> User:
    """Create a user row and return it."""
    user = User(
        user_id=user_id or uuid.uuid4().hex[:12],
        name=name,
        balance=balance,
        elo_rating=elo_rating,
        is_bot=is_bot,
        bot_strategy=bot_strategy,
        bot_slot=bot_slot,
        created_at=int(time.time() * 1000),
    )
    conn.execute(
        f"INSERT INTO users ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
        [getattr(user, c) for c in _COLUMNS],
    )
    return user


def get_user(conn: DuckDBPyConnection, user_id: str) -> User | None:
    row = conn.execute(f"{_SELECT} WHERE user_id = ?", [user_id]).fetchone()
    return _row_to_user(row) if row else None


def get_users(conn: DuckDBPyConnection, user_ids: list[str]) -> dict[str, User]:
    """Batch load users by id. Missing ids are absent from the result."""
    if not user_ids:
        return {}
    placeholders = ", ".join("?" * len(user_ids))
    rows = conn.execute(f"{_SELECT} WHERE user_id IN ({placeholders})", list(user_ids)).fetchall()
    return {r[0]: _row_to_user(r) for r in rows}


def save_user(conn: DuckDBPyConnection, user: User) -> None:
    """Write back every mutable field of a user."""
    conn.execute(
        """
        UPDATE users SET
            balance = ?, elo_rating = ?, win_streak = ?, total_wins = ?, total_losses = ?,
            total_profit = ?, xp = ?, level = ?
        WHERE user_id = ?
        """,
        [
            user.balance,
            user.elo_rating,
            user.win_streak,
            user.total_wins,
            user.total_losses,
            user.total_profit,
            user.xp,
            user.level,
            user.user_id,
        ],
    )


def list_bots(conn: DuckDBPyConnection, min_balance: int = 0) -> list[User]:
    """Bots with balance >= min_balance, one query."""
    rows = conn.execute(
        f"{_SELECT} WHERE is_bot = true AND balance >= ? ORDER BY user_id", [min_balance]
    ).fetchall()
    return [_row_to_user(r) for r in rows]


def list_user_names(conn: DuckDBPyConnection) -> set[str]:
    return {r[0] for r in conn.execute("SELECT name FROM users").fetchall()}


def taken_bot_slots(conn: DuckDBPyConnection) -> set[int]:
    rows = conn.execute("SELECT bot_slot FROM users WHERE is_bot = true AND bot_slot IS NOT NULL").fetchall()
    return {r[0] for r in rows}
