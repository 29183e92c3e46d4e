"""Linear-impact AMM for YES/NO markets.

Probabilities are on a 1-99 scale and always mean P(yes-like outcome).
A trade moves the price by ``amount / liquidity * 100`` points in its
direction. Trades that would overshoot the bounds saturate at 1 or 99 and the
excess impact is dropped; this is intended, not an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from winzen.models.market import Outcome

MIN_PROBABILITY = 1.0
MAX_PROBABILITY = 99.0

YES = 1
NO = -1


def clamp(value: float, lo: float = MIN_PROBABILITY, hi: float = MAX_PROBABILITY) -> float:
    return min(hi, max(lo, value))


def reprice(current: float, amount: int, direction: int, liquidity: float) -> float:
    """Return the new YES probability after a trade of ``amount`` coins.

    direction is +1 for a yes-side buy and -1 for a no-side buy. Shared by
    human and bot trades so both are priced identically.
    """
    if direction not in (YES, NO):
        raise ValueError(f"direction must be +1 or -1, got {direction}")
    if amount < 1:
        raise ValueError(f"amount must be >= 1, got {amount}")
    if liquidity <= 0:
        raise ValueError(f"liquidity must be positive, got {liquidity}")
    return clamp(current + direction * (amount / liquidity) * 100)


def side_probability(yes_probability: float, is_yes: bool) -> float:
    """Probability (1-99) of the chosen side given the YES probability."""
    return yes_probability if is_yes else 100 - yes_probability


def outcome_probabilities(outcomes: list[Outcome], yes_probability: float) -> dict[str, float]:
    """Per-outcome probability in [0, 1] for snapshots. Non-yes outcomes split the remainder."""
    others = [o for o in outcomes if not o.is_yes]
    rest = (100 - yes_probability) / 100
    result: dict[str, float] = {}
    for o in outcomes:
        if o.is_yes:
            result[o.outcome_id] = yes_probability / 100
        else:
            result[o.outcome_id] = rest / len(others)
    return result
