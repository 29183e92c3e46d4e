"""ELO-style skill rating for market resolutions.

Each resolved bet is a "match" between the user's entry probability and the
market's probability for the same outcome at resolution. Correct contrarian
picks gain more; confident wrong picks lose more.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

RATING_FLOOR = 100
DEFAULT_K = 32


@dataclass
class EloUpdate:
    new_rating: int
    delta: int


def _round_half_up(x: float) -> int:
    # Half rounds toward +inf, so -15.5 -> -15 (not banker's rounding).
    return math.floor(x + 0.5)


def compute_elo_update(
    rating: int,
    entry_probability: float,
    market_prob_at_resolution: float,
    won: bool,
    k: int = DEFAULT_K,
) -> EloUpdate:
    """Rating update for one bet. Both probabilities are for the chosen outcome, 1-99 scale."""
    expected = 1 / (1 + 10 ** ((market_prob_at_resolution - entry_probability) / 400))
    actual = 1 if won else 0
    delta = _round_half_up(k * (actual - expected))
    return EloUpdate(new_rating=max(RATING_FLOOR, rating + delta), delta=delta)


def apply_sequential(
    rating: int,
    bets: Iterable[tuple[float, float, bool]],
    k: int = DEFAULT_K,
) -> EloUpdate:
    """Fold (entry_probability, market_prob_at_resolution, won) bets in order.

    Each step starts from the rating left by the previous one, floor included.
    Returned delta is the sum of per-bet deltas.
    """
    total = 0
    for entry, at_resolution, won in bets:
        step = compute_elo_update(rating, entry, at_resolution, won, k)
        rating = step.new_rating
        total += step.delta
    return EloUpdate(new_rating=rating, delta=total)
