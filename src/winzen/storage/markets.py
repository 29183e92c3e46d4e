"""Market and outcome persistence."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from winzen.models import Market, Outcome
from winzen.models.market import pick_yes_index

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "market_id",
    "title",
    "description",
    "market_type",
    "category",
    "current_probability",
    "liquidity",
    "total_volume",
    "participant_count",
    "closes_at",
    "created_at",
    "creator_id",
    "creator_deposit",
    "resolved_outcome_id",
    "resolved_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM markets"


def insert_market(
    conn: DuckDBPyConnection,
    title: str,
    outcome_labels: list[str],
    closes_at: int,
    liquidity: float,
    initial_probability: float = 50.0,
    creator_id: str | None = None,
    creator_deposit: int = 0,
    description: str | None = None,
    category: str = "culture",
) -> Market:
    """Insert a market with its outcomes. Two outcomes make a yes_no market."""
    market_id = uuid.uuid4().hex[:12]
    yes_index = pick_yes_index(outcome_labels)
    outcomes = [
        Outcome(
            outcome_id=uuid.uuid4().hex[:12],
            market_id=market_id,
            label=label,
            order=i,
            is_yes=(i == yes_index),
        )
        for i, label in enumerate(outcome_labels)
    ]
    market = Market(
        market_id=market_id,
        title=title,
        description=description,
        market_type="yes_no" if len(outcome_labels) == 2 else "multiple_choice",
        category=category,
        outcomes=outcomes,
        current_probability=initial_probability,
        liquidity=liquidity,
        closes_at=closes_at,
        created_at=int(time.time() * 1000),
        creator_id=creator_id,
        creator_deposit=creator_deposit,
    )
    conn.execute(
        f"INSERT INTO markets ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
        [getattr(market, c) for c in _COLUMNS],
    )
    conn.executemany(
        "INSERT INTO outcomes (outcome_id, market_id, label, sort_order, is_yes) VALUES (?, ?, ?, ?, ?)",
        [[o.outcome_id, o.market_id, o.label, o.order, o.is_yes] for o in outcomes],
    )
    return market


def _load_outcomes(conn: DuckDBPyConnection, market_ids: list[str]) -> dict[str, list[Outcome]]:
    if not market_ids:
        return {}
    placeholders = ", ".join("?" * len(market_ids))
    rows = conn.execute(
        f"""
        SELECT outcome_id, market_id, label, sort_order, is_yes FROM outcomes
        WHERE market_id IN ({placeholders}) ORDER BY market_id, sort_order
        """,
        list(market_ids),
    ).fetchall()
    by_market: dict[str, list[Outcome]] = {}
    for r in rows:
        by_market.setdefault(r[1], []).append(
            Outcome(outcome_id=r[0], market_id=r[1], label=r[2], order=r[3], is_yes=r[4])
        )
    return by_market


def _rows_to_markets(conn: DuckDBPyConnection, rows: list[tuple]) -> list[Market]:
    outcomes = _load_outcomes(conn, [r[0] for r in rows])
    markets = []
    for r in rows:
        data = dict(zip(_COLUMNS, r))
        markets.append(Market(**data, outcomes=outcomes.get(r[0], [])))
    return markets


def get_market(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    rows = conn.execute(f"{_SELECT} WHERE market_id = ?", [market_id]).fetchall()
    if not rows:
        return None
    return _rows_to_markets(conn, rows)[0]


def list_markets(conn: DuckDBPyConnection, open_only: bool = False, now_ms: int | None = None) -> list[Market]:
    """All markets by volume, or only unresolved ones still accepting trades."""
    if open_only:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        rows = conn.execute(
            f"{_SELECT} WHERE resolved_outcome_id IS NULL AND closes_at > ? ORDER BY total_volume DESC",
            [now_ms],
        ).fetchall()
    else:
        rows = conn.execute(f"{_SELECT} ORDER BY total_volume DESC").fetchall()
    return _rows_to_markets(conn, rows)


def list_open_binary_markets(conn: DuckDBPyConnection, now_ms: int) -> list[Market]:
    """Open yes_no markets in one batch (simulation tick)."""
    return [m for m in list_markets(conn, open_only=True, now_ms=now_ms) if m.market_type == "yes_no"]


def apply_trade(
    conn: DuckDBPyConnection,
    market_id: str,
    new_probability: float,
    amount: int,
    new_participant: bool,
) -> None:
    conn.execute(
        """
        UPDATE markets SET
            current_probability = ?,
            total_volume = total_volume + ?,
            participant_count = participant_count + ?
        WHERE market_id = ?
        """,
        [new_probability, amount, 1 if new_participant else 0, market_id],
    )


def mark_resolved(conn: DuckDBPyConnection, market_id: str, outcome_id: str, resolved_at: int) -> bool:
    """Flip resolved_outcome_id once. Returns False if the market was already resolved."""
    row = conn.execute(
        """
        UPDATE markets SET resolved_outcome_id = ?, resolved_at = ?
        WHERE market_id = ? AND resolved_outcome_id IS NULL
        RETURNING market_id
        """,
        [outcome_id, resolved_at, market_id],
    ).fetchone()
    return row is not None


def set_market_stats(
    conn: DuckDBPyConnection,
    market_id: str,
    probability: float,
    total_volume: int,
    participant_count: int,
) -> None:
    """Overwrite AMM state and counters after positions were removed."""
    conn.execute(
        """
        UPDATE markets SET current_probability = ?, total_volume = ?, participant_count = ?
        WHERE market_id = ?
        """,
        [probability, total_volume, participant_count, market_id],
    )
