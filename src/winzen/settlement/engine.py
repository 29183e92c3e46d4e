"""Settlement engine: resolve a market exactly once.

All balance, rating, and counter changes, the ledger transactions, the
resolved flag, and the resolution activity commit in one DuckDB transaction
while the market lock and every affected user's lock are held. A user row
that cannot be loaded is logged and skipped unless
``settlement.strict_missing_users`` is set, in which case the whole
resolution rolls back.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from winzen.config.settings import Settings
from winzen.engine.amm import side_probability
from winzen.engine.elo import apply_sequential
from winzen.errors import NotFoundError, StateConflictError, ValidationError
from winzen.ledger.locks import MarketLocks, market_locks
from winzen.models import Activity, LedgerTransaction, Market, Notification, Position, User, level_from_xp
from winzen.settlement import notifications as messages
from winzen.settlement.notifications import NotificationSink, log_sink
from winzen.storage import audit
from winzen.storage.activity import append_activity
from winzen.storage.db import transaction
from winzen.storage.markets import get_market, mark_resolved
from winzen.storage.positions import list_open_positions, open_position_user_ids
from winzen.storage.users import get_users, save_user

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


@dataclass
class SettlementReport:
    """What a resolution did."""

    market_id: str
    winning_outcome_id: str
    winning_label: str
    total_stake: int = 0
    payouts: dict[str, int] = field(default_factory=dict)  # user_id -> coins paid for winning positions
    elo_deltas: dict[str, int] = field(default_factory=dict)
    near_miss_user_ids: list[str] = field(default_factory=list)
    deposit_refunded: bool = False
    creator_reward: int = 0
    skipped_user_ids: list[str] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)


def near_miss_outcomes(
    positions: list[Position], winning_outcome_id: str, threshold: float
) -> set[str]:
    """Losing outcomes whose share of the active stake is at least ``threshold``."""
    total = sum(p.amount for p in positions)
    if total <= 0:
        return set()
    pools: dict[str, int] = {}
    for p in positions:
        pools[p.outcome_id] = pools.get(p.outcome_id, 0) + p.amount
    return {oid for oid, pool in pools.items() if oid != winning_outcome_id and pool / total >= threshold}


def creator_terms(market: Market, settings: Settings) -> tuple[bool, int]:
    """(refund deposit?, reward) from participation and volume."""
    refund = market.creator_deposit > 0 and (
        market.participant_count >= settings.refund_min_participants
        or market.total_volume >= settings.refund_min_volume
    )
    reward = min(
        settings.creator_reward_cap,
        math.floor(
            market.participant_count * settings.creator_reward_per_participant
            + market.total_volume * settings.creator_reward_per_volume
        ),
    )
    return refund, max(0, reward)


def _credit(
    conn: DuckDBPyConnection,
    user: User,
    amount: int,
    txn_type: str,
    reference_id: str,
    now_ms: int,
) -> None:
    user.balance += amount
    audit.append_transaction(
        conn,
        LedgerTransaction(
            user_id=user.user_id,
            type=txn_type,
            amount=amount,
            balance_after=user.balance,
            reference_id=reference_id,
            created_at=now_ms,
        ),
    )


def _settle_user(
    conn: DuckDBPyConnection,
    market: Market,
    user: User,
    positions: list[Position],
    winning_outcome_id: str,
    near_miss: set[str],
    settings: Settings,
    report: SettlementReport,
    now_ms: int,
) -> None:
    # Ratings fold over every position in order, each step seeded by the running rating.
    bets = []
    for p in positions:
        outcome = market.outcome(p.outcome_id)
        at_resolution = side_probability(market.current_probability, outcome.is_yes)
        bets.append((p.entry_probability, at_resolution, p.outcome_id == winning_outcome_id))
    elo = apply_sequential(user.elo_rating, bets, settings.elo_k)
    user.elo_rating = elo.new_rating
    report.elo_deltas[user.user_id] = elo.delta

    winning = [p for p in positions if p.outcome_id == winning_outcome_id]
    losing_stake = sum(p.amount for p in positions if p.outcome_id != winning_outcome_id)

    if winning:
        winning_stake = sum(p.amount for p in winning)
        total_payout = 0
        for p in winning:
            payout = math.floor(p.shares * 100)
            total_payout += payout
            _credit(conn, user, payout, "win", p.position_id, now_ms)
        user.total_profit += total_payout - (winning_stake + losing_stake)
        user.total_wins += 1
        user.win_streak += 1
        user.xp += settings.win_xp
        report.payouts[user.user_id] = total_payout
        report.notifications.append(
            Notification(
                user_id=user.user_id,
                kind="win",
                message=messages.win_message(market.title, total_payout),
                market_id=market.market_id,
            )
        )
    else:
        user.win_streak = 0
        user.total_losses += 1
        user.total_profit -= losing_stake
        if any(p.outcome_id in near_miss for p in positions):
            _credit(conn, user, settings.near_miss_credit, "near_miss", market.market_id, now_ms)
            user.xp += settings.near_miss_xp
            report.near_miss_user_ids.append(user.user_id)
            report.notifications.append(
                Notification(
                    user_id=user.user_id,
                    kind="near_miss",
                    message=messages.near_miss_message(market.title, settings.near_miss_credit),
                    market_id=market.market_id,
                )
            )
        else:
            report.notifications.append(
                Notification(
                    user_id=user.user_id,
                    kind="loss",
                    message=messages.loss_message(market.title, report.winning_label),
                    market_id=market.market_id,
                )
            )
    user.level = level_from_xp(user.xp)


def _involved_user_ids(conn: DuckDBPyConnection, market_id: str) -> list[str]:
    """Bettors with open positions plus the creator: every user row resolution may write."""
    ids = open_position_user_ids(conn, market_id)
    market = get_market(conn, market_id)
    if market is not None and market.creator_id:
        ids.append(market.creator_id)
    return ids


def _missing(user_id: str, market_id: str, settings: Settings, role: str) -> None:
    log.warning("settlement_user_missing", user_id=user_id, market_id=market_id, role=role)
    if settings.strict_missing_users:
        raise NotFoundError(f"User not found during settlement: {user_id}")


def resolve(
    conn: DuckDBPyConnection,
    market_id: str,
    winning_outcome: str,
    *,
    force: bool = False,
    now_ms: int | None = None,
    notify: NotificationSink | None = None,
    locks: MarketLocks | None = None,
    settings: Settings | None = None,
) -> SettlementReport:
    """Resolve ``market_id`` with ``winning_outcome`` (outcome id or label).

    ``force`` lets an admin resolve before ``closes_at``. A second resolution
    fails with StateConflictError and changes nothing.
    """
    settings = settings or Settings()
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    locks = locks or market_locks
    notify = notify or log_sink

    with locks.hold(market_id):
        # Open positions cannot change while the market lock is held.
        involved = _involved_user_ids(conn, market_id)
        with locks.hold_users(involved), transaction(conn):
            market = get_market(conn, market_id)
            if market is None:
                raise NotFoundError(f"Market not found: {market_id}")
            if market.is_resolved:
                raise StateConflictError("Market already resolved")
            if not force and now_ms < market.closes_at:
                raise StateConflictError("Market has not closed yet")
            outcome = market.find_outcome(winning_outcome)
            if outcome is None:
                raise ValidationError("Invalid outcome. Use an outcome id or its label (e.g. 'yes'/'no').")
            if not mark_resolved(conn, market_id, outcome.outcome_id, now_ms):
                raise StateConflictError("Market already resolved")

            report = SettlementReport(
                market_id=market_id,
                winning_outcome_id=outcome.outcome_id,
                winning_label=outcome.label,
            )
            positions = list_open_positions(conn, market_id)
            report.total_stake = sum(p.amount for p in positions)
            near_miss = near_miss_outcomes(positions, outcome.outcome_id, settings.near_miss_threshold)

            by_user: dict[str, list[Position]] = {}
            for p in positions:
                by_user.setdefault(p.user_id, []).append(p)
            wanted = list(by_user)
            if market.creator_id and market.creator_id not in by_user:
                wanted.append(market.creator_id)
            users = get_users(conn, wanted)

            for user_id, user_positions in by_user.items():
                user = users.get(user_id)
                if user is None:
                    _missing(user_id, market_id, settings, role="bettor")
                    report.skipped_user_ids.append(user_id)
                    continue
                _settle_user(conn, market, user, user_positions, outcome.outcome_id, near_miss, settings, report, now_ms)

            refund, reward = creator_terms(market, settings)
            if market.creator_id:
                creator = users.get(market.creator_id)
                if creator is None:
                    if market.creator_id not in report.skipped_user_ids:
                        _missing(market.creator_id, market_id, settings, role="creator")
                        report.skipped_user_ids.append(market.creator_id)
                else:
                    if refund:
                        _credit(conn, creator, market.creator_deposit, "deposit_refund", market_id, now_ms)
                    if reward > 0:
                        _credit(conn, creator, reward, "creator_reward", market_id, now_ms)
                    report.deposit_refunded = refund
                    report.creator_reward = reward
                    report.notifications.append(
                        Notification(
                            user_id=creator.user_id,
                            kind="creator",
                            message=messages.creator_message(
                                market.title, market.creator_deposit if refund else 0, reward
                            ),
                            market_id=market_id,
                        )
                    )

            for user in users.values():
                save_user(conn, user)
            append_activity(
                conn,
                Activity(
                    type="RESOLUTION",
                    market_id=market_id,
                    market_title=market.title,
                    side=outcome.label,
                    amount=report.total_stake,
                    created_at=now_ms,
                ),
            )

    for notification in report.notifications:
        notify(notification)
    log.info(
        "market_resolved",
        market_id=market_id,
        outcome=outcome.label,
        forced=force,
        positions=len(positions),
        total_stake=report.total_stake,
        winners=len(report.payouts),
        near_misses=len(report.near_miss_user_ids),
        deposit_refunded=report.deposit_refunded,
        creator_reward=report.creator_reward,
        skipped=len(report.skipped_user_ids),
    )
    return report
