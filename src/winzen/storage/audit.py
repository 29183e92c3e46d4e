"""Append-only audit rows: probability snapshots and currency transactions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from winzen.models import LedgerTransaction, ProbabilitySnapshot

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_snapshots(conn: DuckDBPyConnection, snapshots: list[ProbabilitySnapshot]) -> None:
    if not snapshots:
        return
    conn.executemany(
        "INSERT INTO probability_snapshots (market_id, outcome_id, probability, recorded_at) VALUES (?, ?, ?, ?)",
        [[s.market_id, s.outcome_id, s.probability, s.recorded_at] for s in snapshots],
    )


def list_snapshots(conn: DuckDBPyConnection, market_id: str) -> list[ProbabilitySnapshot]:
    rows = conn.execute(
        """
        SELECT market_id, outcome_id, probability, recorded_at FROM probability_snapshots
        WHERE market_id = ? ORDER BY id
        """,
        [market_id],
    ).fetchall()
    return [ProbabilitySnapshot(market_id=r[0], outcome_id=r[1], probability=r[2], recorded_at=r[3]) for r in rows]


def append_transaction(conn: DuckDBPyConnection, txn: LedgerTransaction) -> None:
    conn.execute(
        """
        INSERT INTO transactions (user_id, type, amount, balance_after, reference_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [txn.user_id, txn.type, txn.amount, txn.balance_after, txn.reference_id, txn.created_at],
    )


def list_transactions(conn: DuckDBPyConnection, user_id: str) -> list[LedgerTransaction]:
    rows = conn.execute(
        """
        SELECT user_id, type, amount, balance_after, reference_id, created_at FROM transactions
        WHERE user_id = ? ORDER BY id
        """,
        [user_id],
    ).fetchall()
    return [
        LedgerTransaction(
            user_id=r[0], type=r[1], amount=r[2], balance_after=r[3], reference_id=r[4], created_at=r[5]
        )
        for r in rows
    ]
