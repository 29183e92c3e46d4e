"""Bot actors: strategy tags, aggression, ephemeral memory, and trade decisions.

Actor memory is a process-local cache. It is created lazily the first time a
bot is selected and is lost on restart; nothing about it is persisted.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

from winzen.simulation.config import DEFAULT_BASE_AMOUNTS, SimulationConfig


class Strategy(str, Enum):
    RANDOM = "random"
    TREND_FOLLOWER = "trend_follower"
    CONTRARIAN = "contrarian"
    WHALE = "whale"
    CONSERVATIVE = "conservative"

    @classmethod
    def parse(cls, value: str | None) -> Strategy:
        try:
            return cls(value)
        except ValueError:
            return cls.RANDOM


class Aggression(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Side(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> Side:
        return Side.NO if self is Side.YES else Side.YES


@dataclass
class BotActorState:
    bot_id: str
    aggression: Aggression
    preferred_side: Side | None = None
    last_action_time: int | None = None


class ActorMemory:
    """In-memory actor state keyed by bot id. Aggression is assigned once per process."""

    def __init__(self, config: SimulationConfig, rng: random.Random) -> None:
        self.config = config
        self.rng = rng
        self._actors: dict[str, BotActorState] = {}

    def __len__(self) -> int:
        return len(self._actors)

    def __contains__(self, bot_id: str) -> bool:
        return bot_id in self._actors

    def get(self, bot_id: str) -> BotActorState:
        state = self._actors.get(bot_id)
        if state is None:
            state = BotActorState(bot_id=bot_id, aggression=self._pick_aggression())
            self._actors[bot_id] = state
        return state

    def _pick_aggression(self) -> Aggression:
        levels = list(Aggression)
        weights = [self.config.aggression_weights.get(a.value, 1.0) for a in levels]
        return self.rng.choices(levels, weights=weights, k=1)[0]

    def remember(self, state: BotActorState, side: Side, now_ms: int) -> None:
        state.last_action_time = now_ms
        if self.rng.random() < self.config.adopt_side_probability:
            state.preferred_side = side


def should_skip(
    strategy: Strategy, state: BotActorState, config: SimulationConfig, rng: random.Random
) -> bool:
    """Aggression-conditioned skip; whales skip a little more so their big bets stay rarer."""
    p = config.skip_probability.get(state.aggression.value, 0.0)
    if strategy is Strategy.WHALE:
        p += config.whale_extra_skip
    return rng.random() < min(1.0, p)


def strategy_side(strategy: Strategy, yes_probability: float, rng: random.Random) -> Side:
    if strategy is Strategy.TREND_FOLLOWER:
        return Side.YES if yes_probability >= 50 else Side.NO
    if strategy is Strategy.CONTRARIAN:
        return Side.NO if yes_probability >= 50 else Side.YES
    return Side.YES if rng.random() < 0.5 else Side.NO


def decide_side(
    strategy: Strategy,
    state: BotActorState,
    yes_probability: float,
    config: SimulationConfig,
    rng: random.Random,
    spike_side: Side | None = None,
) -> Side:
    """Stickiness first, then the spike's biased coin, then the strategy's own rule."""
    if state.preferred_side is not None and rng.random() < config.stickiness:
        return state.preferred_side
    if spike_side is not None:
        return spike_side if rng.random() < config.spike_side_bias else spike_side.opposite
    return strategy_side(strategy, yes_probability, rng)


def bet_amount(
    strategy: Strategy,
    state: BotActorState,
    balance: int,
    config: SimulationConfig,
    rng: random.Random,
    spike_multiplier: float = 1.0,
) -> int:
    """Strategy base range scaled by aggression and spike, capped at balance. May be 0."""
    lo, hi = config.base_amounts.get(strategy.value, DEFAULT_BASE_AMOUNTS[strategy.value])
    base = rng.randint(lo, hi)
    scale = config.aggression_size.get(state.aggression.value, 1.0) * spike_multiplier
    return max(0, min(int(base * scale), balance))
