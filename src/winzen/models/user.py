"""User fields used by the core."""

from __future__ import annotations

from pydantic import BaseModel, Field


class User(BaseModel):
    user_id: str
    name: str
    balance: int = 0
    elo_rating: int = Field(1000, ge=100)
    win_streak: int = 0
    total_wins: int = 0
    total_losses: int = 0
    total_profit: int = 0
    xp: int = 0
    level: int = 1
    is_bot: bool = False
    bot_strategy: str | None = None
    bot_slot: int | None = None  # seeder slot, stable across re-seeds
    created_at: int | None = None


def level_from_xp(xp: int) -> int:
    """Total XP to reach level N is N^2 * 100."""
    level = 1
    while level * level * 100 <= xp:
        level += 1
    return level
