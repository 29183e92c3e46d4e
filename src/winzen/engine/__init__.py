"""Pricing and rating math: linear AMM and ELO-style skill rating."""

from winzen.engine.amm import outcome_probabilities, reprice, side_probability
from winzen.engine.elo import EloUpdate, apply_sequential, compute_elo_update

__all__ = [
    "reprice",
    "side_probability",
    "outcome_probabilities",
    "EloUpdate",
    "compute_elo_update",
    "apply_sequential",
]
