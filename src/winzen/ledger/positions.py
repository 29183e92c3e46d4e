"""Position ledger: open, value, and cash out positions.

Every currency-moving operation runs inside one DuckDB transaction while
holding the market lock and the user lock, so a trade's read of
``current_probability`` and its write of the repriced value cannot interleave
with another trade on the same market, and a user's balance is never written
by two transactions at once.
"""

from __future__ import annotations

import math
import time
import uuid
from typing import TYPE_CHECKING

import structlog

from winzen.config.settings import Settings
from winzen.engine.amm import NO, YES, outcome_probabilities, reprice, side_probability
from winzen.errors import NotFoundError, StateConflictError, ValidationError
from winzen.ledger.locks import MarketLocks, market_locks
from winzen.models import (
    CashOutResult,
    LedgerTransaction,
    Position,
    PositionView,
    ProbabilitySnapshot,
    TradeResult,
    level_from_xp,
)
from winzen.storage import audit
from winzen.storage.db import transaction
from winzen.storage.markets import apply_trade, get_market
from winzen.storage.positions import (
    close_position,
    get_position,
    held_outcome_ids,
    insert_position,
    list_user_positions,
)
from winzen.storage.users import get_user, save_user

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def open_position(
    conn: DuckDBPyConnection,
    user_id: str,
    market_id: str,
    outcome_id: str,
    amount: int,
    *,
    now_ms: int | None = None,
    locks: MarketLocks | None = None,
    settings: Settings | None = None,
) -> TradeResult:
    """Place a bet. Reprices the market, debits the user, and records the position atomically.

    A user may only add to the outcome they already hold in a market; switching
    sides is rejected on purpose (product rule).
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise ValidationError("Invalid amount: must be a whole number of at least 1")
    now_ms = now_ms if now_ms is not None else _now_ms()
    locks = locks or market_locks
    settings = settings or Settings()

    with locks.hold(market_id, [user_id]), transaction(conn):
        user = get_user(conn, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        market = get_market(conn, market_id)
        if market is None:
            raise NotFoundError(f"Market not found: {market_id}")
        if market.is_resolved:
            raise StateConflictError("Market already resolved")
        if now_ms >= market.closes_at:
            raise StateConflictError("Market has closed")
        outcome = market.outcome(outcome_id)
        if outcome is None:
            raise ValidationError("Invalid outcome")
        if user.balance < amount:
            raise ValidationError("Insufficient balance")

        held = held_outcome_ids(conn, user_id, market_id)
        if held and outcome_id not in held:
            existing = market.outcome(held[0])
            label = existing.label if existing else "this outcome"
            raise ValidationError(
                f'You\'ve already bet on "{label}". You can only add to your position, not switch sides.'
            )

        direction = YES if outcome.is_yes else NO
        new_probability = reprice(market.current_probability, amount, direction, market.liquidity)
        entry_probability = side_probability(new_probability, outcome.is_yes)
        shares = amount / entry_probability

        position = Position(
            position_id=uuid.uuid4().hex[:12],
            user_id=user_id,
            market_id=market_id,
            outcome_id=outcome_id,
            amount=amount,
            entry_probability=entry_probability,
            shares=shares,
            is_bot=user.is_bot,
            created_at=now_ms,
        )
        user.balance -= amount
        if not user.is_bot:
            user.xp += settings.place_bet_xp
            user.level = level_from_xp(user.xp)
        save_user(conn, user)
        insert_position(conn, position)
        apply_trade(conn, market_id, new_probability, amount, new_participant=not held)
        audit.append_transaction(
            conn,
            LedgerTransaction(
                user_id=user_id,
                type="bet",
                amount=-amount,
                balance_after=user.balance,
                reference_id=market_id,
                created_at=now_ms,
            ),
        )
        audit.append_snapshots(
            conn,
            [
                ProbabilitySnapshot(market_id=market_id, outcome_id=oid, probability=p, recorded_at=now_ms)
                for oid, p in outcome_probabilities(market.outcomes, new_probability).items()
            ],
        )

    log.info(
        "position_opened",
        position_id=position.position_id,
        user_id=user_id,
        market_id=market_id,
        outcome=outcome.label,
        amount=amount,
        entry_probability=round(entry_probability, 2),
        probability_before=market.current_probability,
        probability_after=new_probability,
    )
    return TradeResult(
        position_id=position.position_id,
        entry_probability=entry_probability,
        shares=shares,
        new_probability=new_probability,
    )


def position_value(position: Position, side_prob: float) -> float:
    """Mark-to-market value of the position's shares at the chosen side's probability (1-99)."""
    return position.shares * side_prob


def unrealized_pnl(position: Position, side_prob: float) -> float:
    return position_value(position, side_prob) - position.amount


def cash_out(
    conn: DuckDBPyConnection,
    position_id: str,
    *,
    now_ms: int | None = None,
    locks: MarketLocks | None = None,
) -> CashOutResult:
    """Close an open position at the live price. The market probability is not moved."""
    now_ms = now_ms if now_ms is not None else _now_ms()
    locks = locks or market_locks

    position = get_position(conn, position_id)
    if position is None:
        raise NotFoundError(f"Position not found: {position_id}")

    with locks.hold(position.market_id, [position.user_id]), transaction(conn):
        position = get_position(conn, position_id)
        if not position.is_open:
            raise StateConflictError("Position already closed")
        market = get_market(conn, position.market_id)
        if market is None:
            raise NotFoundError(f"Market not found: {position.market_id}")
        if market.is_resolved:
            raise StateConflictError("Market already resolved")
        user = get_user(conn, position.user_id)
        if user is None:
            raise NotFoundError(f"User not found: {position.user_id}")
        outcome = market.outcome(position.outcome_id)
        exit_probability = side_probability(market.current_probability, outcome.is_yes)
        payout = math.floor(position_value(position, exit_probability))

        if not close_position(conn, position_id, now_ms, exit_probability, payout):
            raise StateConflictError("Position already closed")
        user.balance += payout
        user.total_profit += payout - position.amount
        save_user(conn, user)
        audit.append_transaction(
            conn,
            LedgerTransaction(
                user_id=user.user_id,
                type="cashout",
                amount=payout,
                balance_after=user.balance,
                reference_id=position_id,
                created_at=now_ms,
            ),
        )

    log.info(
        "position_cashed_out",
        position_id=position_id,
        user_id=position.user_id,
        market_id=position.market_id,
        payout=payout,
        exit_probability=exit_probability,
    )
    return CashOutResult(position_id=position_id, payout=payout, exit_probability=exit_probability)


def portfolio(conn: DuckDBPyConnection, user_id: str) -> list[PositionView]:
    """Open positions valued at current market prices."""
    views = []
    markets = {}
    for position in list_user_positions(conn, user_id, open_only=True):
        market = markets.get(position.market_id)
        if market is None:
            market = get_market(conn, position.market_id)
            markets[position.market_id] = market
        if market is None or market.is_resolved:
            continue
        outcome = market.outcome(position.outcome_id)
        p = side_probability(market.current_probability, outcome.is_yes)
        views.append(
            PositionView(
                position=position,
                market_title=market.title,
                outcome_label=outcome.label,
                current_probability=p,
                current_value=position_value(position, p),
                unrealized_pnl=unrealized_pnl(position, p),
            )
        )
    return views
