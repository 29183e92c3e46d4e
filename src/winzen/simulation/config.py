"""Simulation tuning constants, loaded from the [simulation] config section."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from winzen.config.settings import Settings

DEFAULT_BASE_AMOUNTS: dict[str, tuple[int, int]] = {
    "whale": (300, 1000),
    "conservative": (10, 50),
    "trend_follower": (30, 150),
    "contrarian": (30, 150),
    "random": (50, 200),
}


class SimulationConfig(BaseModel):
    """Every knob of the bot simulation. Defaults mirror config/default.toml."""

    tick_min_ms: int = Field(1000, ge=0)
    tick_max_ms: int = Field(3000, ge=0)
    log_interval_ms: int = Field(60_000, gt=0)
    activity_keep: int = Field(200, ge=0)
    bot_min_balance: int = Field(10, ge=1)
    actors_min: int = Field(1, ge=1)
    actors_max: int = Field(3, ge=1)
    spike_actors_min: int = Field(5, ge=1)
    spike_actors_max: int = Field(15, ge=1)
    spike_delay_min_ms: int = Field(300_000, ge=0)
    spike_delay_max_ms: int = Field(900_000, ge=0)
    spike_duration_ms: int = Field(60_000, gt=0)
    spike_size_multiplier: float = Field(2.0, gt=0)
    spike_frequency_multiplier: float = Field(3.0, gt=0)
    spike_side_bias: float = Field(0.75, ge=0, le=1)
    stickiness: float = Field(0.6, ge=0, le=1)
    adopt_side_probability: float = Field(0.3, ge=0, le=1)
    whale_extra_skip: float = Field(0.2, ge=0, le=1)
    recent_window_ms: int = Field(60_000, gt=0)
    latency_window: int = Field(50, ge=1)
    latency_healthy_ms: float = Field(250, gt=0)
    latency_degraded_ms: float = Field(1000, gt=0)
    skip_probability: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.5, "medium": 0.25, "high": 0.1}
    )
    aggression_weights: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.3, "medium": 0.5, "high": 0.2}
    )
    aggression_size: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.6, "medium": 1.0, "high": 1.6}
    )
    # Inclusive stake range per strategy, before aggression and spike scaling.
    base_amounts: dict[str, tuple[int, int]] = Field(default_factory=lambda: dict(DEFAULT_BASE_AMOUNTS))
    fund_balance_min: int = Field(100_000, ge=1)
    fund_balance_max: int = Field(500_000, ge=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> SimulationConfig:
        if self.tick_min_ms > self.tick_max_ms:
            raise ValueError("tick_min_ms must be <= tick_max_ms")
        if self.actors_min > self.actors_max or self.spike_actors_min > self.spike_actors_max:
            raise ValueError("actor count bounds are inverted")
        if self.spike_delay_min_ms > self.spike_delay_max_ms:
            raise ValueError("spike_delay_min_ms must be <= spike_delay_max_ms")
        if self.latency_healthy_ms > self.latency_degraded_ms:
            raise ValueError("latency_healthy_ms must be <= latency_degraded_ms")
        for strategy, (lo, hi) in self.base_amounts.items():
            if lo < 1 or lo > hi:
                raise ValueError(f"base_amounts.{strategy} must be 1 <= min <= max")
        if self.fund_balance_min > self.fund_balance_max:
            raise ValueError("fund_balance_min must be <= fund_balance_max")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> SimulationConfig:
        return cls.model_validate(settings.simulation)
