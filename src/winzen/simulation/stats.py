"""Read model for the simulation dashboard."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def sim_stats(conn: DuckDBPyConnection, now_ms: int | None = None, recent_ms: int = 5 * 60_000) -> dict[str, Any]:
    """Bot population, bot trade counts, and the busiest open yes/no markets."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    bot_count, bot_balance = conn.execute(
        "SELECT COUNT(*), COALESCE(SUM(balance), 0) FROM users WHERE is_bot = true"
    ).fetchone()
    total_trades = conn.execute("SELECT COUNT(*) FROM positions WHERE is_bot = true").fetchone()[0]
    recent_trades = conn.execute(
        "SELECT COUNT(*) FROM positions WHERE is_bot = true AND created_at >= ?", [now_ms - recent_ms]
    ).fetchone()[0]
    active_markets = conn.execute(
        "SELECT COUNT(*) FROM markets WHERE resolved_outcome_id IS NULL AND market_type = 'yes_no'"
    ).fetchone()[0]
    rows = conn.execute(
        """
        SELECT m.market_id, m.title, m.current_probability, m.total_volume,
               COUNT(p.position_id) FILTER (WHERE p.is_bot) AS bot_trades
        FROM markets m
        LEFT JOIN positions p ON p.market_id = m.market_id
        WHERE m.resolved_outcome_id IS NULL AND m.market_type = 'yes_no'
        GROUP BY m.market_id, m.title, m.current_probability, m.total_volume
        ORDER BY m.total_volume DESC
        LIMIT 5
        """
    ).fetchall()
    return {
        "bot_count": bot_count,
        "bot_balance_total": int(bot_balance),
        "total_bot_trades": total_trades,
        "recent_bot_trades": recent_trades,
        "active_markets": active_markets,
        "top_markets": [
            {"market_id": r[0], "title": r[1], "yes_probability": r[2], "total_volume": r[3], "bot_trade_count": r[4]}
            for r in rows
        ],
    }
