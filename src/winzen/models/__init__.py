"""Canonical schema (Pydantic) - Market, Position, User, audit records."""

from winzen.models.activity import Activity, LedgerTransaction, Notification, ProbabilitySnapshot
from winzen.models.market import Market, MarketStatus, Outcome
from winzen.models.position import CashOutResult, Position, PositionView, TradeResult
from winzen.models.user import User, level_from_xp

__all__ = [
    "Market",
    "MarketStatus",
    "Outcome",
    "Position",
    "PositionView",
    "TradeResult",
    "CashOutResult",
    "User",
    "level_from_xp",
    "Activity",
    "LedgerTransaction",
    "Notification",
    "ProbabilitySnapshot",
]
