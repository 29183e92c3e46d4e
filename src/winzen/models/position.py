"""Position (bet) and trade results."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Position(BaseModel):
    """A stake on one outcome. shares = amount / entry_probability, redeemable at 100 per share."""

    position_id: str
    user_id: str
    market_id: str
    outcome_id: str
    amount: int = Field(..., ge=1)
    entry_probability: float = Field(..., ge=1, le=99)
    shares: float = Field(..., gt=0)
    is_bot: bool = False
    created_at: int | None = None
    closed_at: int | None = None  # set by cash-out only
    exit_probability: float | None = None
    payout: int | None = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


class TradeResult(BaseModel):
    """Outcome of open_position."""

    position_id: str
    entry_probability: float
    shares: float
    new_probability: float


class CashOutResult(BaseModel):
    """Outcome of cash_out."""

    position_id: str
    payout: int
    exit_probability: float


class PositionView(BaseModel):
    """Open position valued at the live price."""

    position: Position
    market_title: str
    outcome_label: str
    current_probability: float
    current_value: float
    unrealized_pnl: float
