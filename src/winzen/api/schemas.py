"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from winzen.models import Activity, PositionView


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    simulation: dict[str, Any] | None = None


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code: invalid, conflict, not_found")


# --- Markets ---
class OutcomeItem(BaseModel):
    outcome_id: str
    label: str
    is_yes: bool
    probability: float = Field(..., description="Current probability in [0, 1]")


class MarketResponse(BaseModel):
    market_id: str
    title: str
    market_type: str
    category: str
    status: str
    current_probability: float = Field(..., description="YES probability, 1-99")
    liquidity: float
    total_volume: int
    participant_count: int
    closes_at: int
    resolved_outcome_id: str | None = None
    outcomes: list[OutcomeItem]


class MarketsListResponse(BaseModel):
    markets: list[MarketResponse]
    total: int


class ResolveRequest(BaseModel):
    winning_outcome: str = Field(..., description="Outcome id or label (e.g. 'yes'/'no')")
    force: bool = Field(False, description="Admin override: resolve before the close time")


class ResolveResponse(BaseModel):
    ok: bool = True
    market_id: str
    winning_outcome_id: str
    winning_label: str
    total_stake: int
    winners: int
    paid_out: int
    near_misses: int
    deposit_refunded: bool
    creator_reward: int
    skipped_user_ids: list[str]


# --- Positions ---
class OpenPositionRequest(BaseModel):
    user_id: str
    market_id: str
    outcome_id: str
    amount: int = Field(..., ge=1)


class TradeResponse(BaseModel):
    position_id: str
    entry_probability: float
    shares: float
    new_probability: float


class CashOutResponse(BaseModel):
    position_id: str
    payout: int
    exit_probability: float


class PortfolioResponse(BaseModel):
    user_id: str
    positions: list[PositionView]
    total_value: float
    total_unrealized_pnl: float


# --- Activity / sim ---
class ActivityResponse(BaseModel):
    items: list[Activity]


class SimStatsResponse(BaseModel):
    bot_count: int
    bot_balance_total: int
    total_bot_trades: int
    recent_bot_trades: int
    active_markets: int
    top_markets: list[dict[str, Any]]
