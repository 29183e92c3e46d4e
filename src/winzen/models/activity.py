"""Append-only records: activity feed, probability snapshots, ledger transactions, notifications."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Activity(BaseModel):
    """Activity feed entry consumed by the UI. The core never reads it back for decisions."""

    type: str = Field(..., pattern="^(TRADE|CASHOUT|RESOLUTION)$")
    market_id: str
    user_id: str | None = None
    username: str | None = None
    market_title: str | None = None
    side: str | None = None
    amount: int | None = None
    price: float | None = None
    created_at: int | None = None


class ProbabilitySnapshot(BaseModel):
    market_id: str
    outcome_id: str
    probability: float = Field(..., ge=0, le=1)
    recorded_at: int


class LedgerTransaction(BaseModel):
    """One currency movement. amount is signed (debits negative)."""

    user_id: str
    type: str
    amount: int
    balance_after: int | None = None
    reference_id: str | None = None
    created_at: int | None = None


class Notification(BaseModel):
    """Message content only; delivery belongs to the notification collaborator."""

    user_id: str
    kind: str
    message: str
    market_id: str | None = None
