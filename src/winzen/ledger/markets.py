"""Market creation with the creator deposit debit."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from winzen.config.settings import Settings
from winzen.errors import NotFoundError, ValidationError
from winzen.ledger.locks import MarketLocks, market_locks
from winzen.models import LedgerTransaction, Market
from winzen.storage import audit
from winzen.storage.db import transaction
from winzen.storage.markets import insert_market
from winzen.storage.users import get_user, save_user

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def create_market(
    conn: DuckDBPyConnection,
    creator_id: str | None,
    title: str,
    outcome_labels: list[str],
    closes_at: int,
    *,
    liquidity: float | None = None,
    description: str | None = None,
    category: str = "culture",
    deposit: int | None = None,
    settings: Settings | None = None,
    locks: MarketLocks | None = None,
) -> Market:
    """Create a market. A creator pays the deposit (refundable at settlement); system markets pay none."""
    settings = settings or Settings()
    locks = locks or market_locks
    title = title.strip()
    labels = [label.strip() for label in outcome_labels if label.strip()]
    if not title or len(title) > 200:
        raise ValidationError("Title must be 1-200 characters")
    if len(labels) < 2:
        raise ValidationError("A market needs at least two outcomes")
    if len({label.lower() for label in labels}) != len(labels):
        raise ValidationError("Outcome labels must be unique")
    if closes_at <= int(time.time() * 1000):
        raise ValidationError("Close time must be in the future")
    liquidity = liquidity if liquidity is not None else settings.default_liquidity
    if liquidity <= 0:
        raise ValidationError("Liquidity must be positive")
    if creator_id is None:
        deposit = 0
    elif deposit is None:
        deposit = settings.creator_deposit

    with locks.hold_users([creator_id] if creator_id else []), transaction(conn):
        creator = None
        if creator_id is not None:
            creator = get_user(conn, creator_id)
            if creator is None:
                raise NotFoundError(f"User not found: {creator_id}")
            if creator.balance < deposit:
                raise ValidationError(f"Insufficient balance. Need {deposit} coins to create a market.")
        market = insert_market(
            conn,
            title=title,
            outcome_labels=labels,
            closes_at=closes_at,
            liquidity=liquidity,
            initial_probability=settings.initial_probability,
            creator_id=creator_id,
            creator_deposit=deposit,
            description=description,
            category=category,
        )
        if creator is not None and deposit > 0:
            creator.balance -= deposit
            save_user(conn, creator)
            audit.append_transaction(
                conn,
                LedgerTransaction(
                    user_id=creator.user_id,
                    type="deposit",
                    amount=-deposit,
                    balance_after=creator.balance,
                    reference_id=market.market_id,
                    created_at=market.created_at,
                ),
            )

    log.info("market_created", market_id=market.market_id, title=title, creator_id=creator_id, deposit=deposit)
    return market
