"""Market, Outcome - canonical entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

RESOLVING_SOON_MS = 6 * 60 * 60 * 1000


class MarketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVING_SOON = "RESOLVING_SOON"
    CLOSED = "CLOSED"
    RESOLVED = "RESOLVED"


class Outcome(BaseModel):
    """Single outcome in a market. Exactly one outcome per market is yes-like."""

    outcome_id: str
    market_id: str
    label: str
    order: int = 0
    is_yes: bool = False


class Market(BaseModel):
    """Market with AMM state. current_probability is P(yes-like outcome) on a 1-99 scale."""

    market_id: str
    title: str
    description: str | None = None
    market_type: str = Field("yes_no", pattern="^(yes_no|multiple_choice)$")
    category: str = "culture"
    outcomes: list[Outcome] = Field(default_factory=list)
    current_probability: float = Field(50.0, ge=1, le=99)
    liquidity: float = Field(1000.0, gt=0)
    total_volume: int = 0
    participant_count: int = 0
    closes_at: int  # ms epoch
    created_at: int | None = None
    creator_id: str | None = None
    creator_deposit: int = 0
    resolved_outcome_id: str | None = None
    resolved_at: int | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_outcome_id is not None

    def outcome(self, outcome_id: str) -> Outcome | None:
        for o in self.outcomes:
            if o.outcome_id == outcome_id:
                return o
        return None

    def find_outcome(self, key: str) -> Outcome | None:
        """Match by outcome id, or by label case-insensitively ("yes"/"no")."""
        found = self.outcome(key)
        if found is not None:
            return found
        lowered = key.strip().lower()
        for o in self.outcomes:
            if o.label.lower() == lowered:
                return o
        return None

    @property
    def yes_outcome(self) -> Outcome | None:
        for o in self.outcomes:
            if o.is_yes:
                return o
        return None

    def status(self, now_ms: int) -> MarketStatus:
        if self.is_resolved:
            return MarketStatus.RESOLVED
        remaining = self.closes_at - now_ms
        if remaining <= 0:
            return MarketStatus.CLOSED
        if remaining < RESOLVING_SOON_MS:
            return MarketStatus.RESOLVING_SOON
        return MarketStatus.ACTIVE


def pick_yes_index(labels: list[str]) -> int:
    """Index of the yes-like outcome: first label starting with "yes", else the first outcome."""
    for i, label in enumerate(labels):
        if label.strip().lower().startswith("yes"):
            return i
    return 0
