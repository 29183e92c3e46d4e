"""Viral spike state machine: NORMAL -> SPIKE after a randomised quiet period, back after a fixed duration."""

from __future__ import annotations

import random
from dataclasses import dataclass

import structlog

from winzen.simulation.actors import Side
from winzen.simulation.config import SimulationConfig

log = structlog.get_logger(__name__)


@dataclass
class SpikeState:
    active: bool = False
    started_at: int | None = None
    end_time: int | None = None
    next_spike_at: int | None = None
    side: Side | None = None


class SpikeController:
    """Owns one SpikeState. Single writer: the scheduler calls update() once per tick."""

    def __init__(self, config: SimulationConfig, rng: random.Random, now_ms: int) -> None:
        self.config = config
        self.rng = rng
        self.state = SpikeState()
        self._schedule_next(now_ms)

    def _schedule_next(self, from_ms: int) -> None:
        delay = self.rng.randint(self.config.spike_delay_min_ms, self.config.spike_delay_max_ms)
        self.state.next_spike_at = from_ms + delay

    def update(self, now_ms: int) -> SpikeState:
        """Advance the state machine to ``now_ms``. Returns the (mutated) state."""
        s = self.state
        if s.active:
            if s.end_time is not None and now_ms >= s.end_time:
                log.info("spike_ended", side=s.side.value if s.side else None, duration_ms=now_ms - (s.started_at or now_ms))
                s.active = False
                s.side = None
                s.started_at = None
                s.end_time = None
                self._schedule_next(now_ms)
        elif s.next_spike_at is not None and now_ms >= s.next_spike_at:
            s.active = True
            s.started_at = now_ms
            s.end_time = now_ms + self.config.spike_duration_ms
            s.side = Side.YES if self.rng.random() < 0.5 else Side.NO
            s.next_spike_at = None
            log.info("spike_started", side=s.side.value, until=s.end_time)
        return s

    @property
    def active(self) -> bool:
        return self.state.active

    @property
    def side(self) -> Side | None:
        return self.state.side if self.state.active else None

    @property
    def size_multiplier(self) -> float:
        return self.config.spike_size_multiplier if self.state.active else 1.0

    @property
    def frequency_multiplier(self) -> float:
        return self.config.spike_frequency_multiplier if self.state.active else 1.0

    def actor_bounds(self) -> tuple[int, int]:
        if self.state.active:
            return self.config.spike_actors_min, self.config.spike_actors_max
        return self.config.actors_min, self.config.actors_max
