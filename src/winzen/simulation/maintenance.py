"""Simulation upkeep: wipe every bot trace, or top bot balances back up."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from winzen.config.settings import Settings
from winzen.engine.amm import NO, YES, reprice
from winzen.ledger.locks import MarketLocks, market_locks
from winzen.models import LedgerTransaction
from winzen.simulation.config import SimulationConfig
from winzen.storage import audit
from winzen.storage.db import transaction
from winzen.storage.markets import get_market, set_market_stats
from winzen.storage.positions import list_market_positions
from winzen.storage.users import list_bots, save_user

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


@dataclass
class ResetReport:
    bots: int = 0
    positions: int = 0
    transactions: int = 0
    activities: int = 0
    markets_recomputed: int = 0


def _deleted(conn: DuckDBPyConnection, sql: str) -> int:
    row = conn.execute(sql).fetchone()
    return int(row[0]) if row else 0


def _recompute_market(conn: DuckDBPyConnection, market_id: str, initial_probability: float) -> bool:
    """Replay the remaining positions through the AMM from the initial probability."""
    market = get_market(conn, market_id)
    if market is None:
        return False
    yes_ids = {o.outcome_id for o in market.outcomes if o.is_yes}
    probability = initial_probability
    volume = 0
    participants = set()
    for p in list_market_positions(conn, market_id):
        probability = reprice(probability, p.amount, YES if p.outcome_id in yes_ids else NO, market.liquidity)
        volume += p.amount
        participants.add(p.user_id)
    set_market_stats(conn, market_id, probability, volume, len(participants))
    return True


def reset_simulation(
    conn: DuckDBPyConnection,
    *,
    settings: Settings | None = None,
    locks: MarketLocks | None = None,
) -> ResetReport:
    """Delete bot positions, bot ledger rows, bot activity and bot users, then rebuild the
    probability, volume and participant count of every market bots traded on."""
    settings = settings or Settings()
    locks = locks or market_locks
    bot_ids = [r[0] for r in conn.execute("SELECT user_id FROM users WHERE is_bot = true").fetchall()]
    affected = [
        r[0] for r in conn.execute("SELECT DISTINCT market_id FROM positions WHERE is_bot = true").fetchall()
    ]
    report = ResetReport()
    if not bot_ids and not affected:
        return report

    with locks.hold_all(affected, bot_ids), transaction(conn):
        report.positions = _deleted(conn, "DELETE FROM positions WHERE is_bot = true")
        report.transactions = _deleted(
            conn, "DELETE FROM transactions WHERE user_id IN (SELECT user_id FROM users WHERE is_bot = true)"
        )
        report.activities = _deleted(
            conn, "DELETE FROM activities WHERE user_id IN (SELECT user_id FROM users WHERE is_bot = true)"
        )
        report.bots = _deleted(conn, "DELETE FROM users WHERE is_bot = true")
        for market_id in affected:
            if _recompute_market(conn, market_id, settings.initial_probability):
                report.markets_recomputed += 1

    log.info("simulation_reset", **vars(report))
    return report


def fund_bots(
    conn: DuckDBPyConnection,
    config: SimulationConfig | None = None,
    rng: random.Random | None = None,
    *,
    locks: MarketLocks | None = None,
) -> int:
    """Set every bot's balance to a fresh random amount in the configured funding range."""
    config = config or SimulationConfig()
    rng = rng or random.Random()
    locks = locks or market_locks
    bots = list_bots(conn, min_balance=0)
    if not bots:
        return 0
    now_ms = int(time.time() * 1000)
    with locks.hold_users([b.user_id for b in bots]), transaction(conn):
        for bot in bots:
            target = rng.randint(config.fund_balance_min, config.fund_balance_max)
            delta = target - bot.balance
            bot.balance = target
            save_user(conn, bot)
            audit.append_transaction(
                conn,
                LedgerTransaction(
                    user_id=bot.user_id,
                    type="bot_funding",
                    amount=delta,
                    balance_after=target,
                    created_at=now_ms,
                ),
            )
    log.info("bots_funded", count=len(bots), low=config.fund_balance_min, high=config.fund_balance_max)
    return len(bots)
