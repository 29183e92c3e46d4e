"""Tick-scheduled bot simulation.

All mutable simulation state (spike machine, actor memory, counters, rng,
clock) lives on a SimulationEngine instance, so independent engines can run
side by side in tests. Trades inside a tick run one after another: each
trade's price depends on the market state the previous trade left behind.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import duckdb
import structlog

from winzen.config.settings import Settings
from winzen.errors import WinzenError
from winzen.ledger.locks import MarketLocks, market_locks
from winzen.ledger.positions import open_position
from winzen.models import Activity, Market, User
from winzen.simulation.actors import (
    ActorMemory,
    Side,
    Strategy,
    bet_amount,
    decide_side,
    should_skip,
)
from winzen.simulation.config import SimulationConfig
from winzen.simulation.spike import SpikeController
from winzen.simulation.telemetry import TradeTelemetry
from winzen.storage.activity import append_activity, prune_activities
from winzen.storage.markets import list_open_binary_markets
from winzen.storage.positions import holdings
from winzen.storage.users import list_bots

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TickReport:
    tick: int
    spike_active: bool
    selected: int = 0
    trades: int = 0
    skipped: int = 0
    failed: int = 0
    pruned: int = 0
    health: dict[str, Any] | None = None


@dataclass
class _TickPlan:
    report: TickReport
    actors: list[User] = field(default_factory=list)
    markets: list[Market] = field(default_factory=list)
    held: dict[tuple[str, str], str] = field(default_factory=dict)


class SimulationEngine:
    """Scheduler owning spike state, actor memory, and telemetry for one simulation."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        config: SimulationConfig | None = None,
        *,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
        locks: MarketLocks | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or SimulationConfig()
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.clock = clock or _wall_clock_ms
        self.locks = locks or market_locks
        now = self.clock()
        self.spike = SpikeController(self.config, self.rng, now)
        self.memory = ActorMemory(self.config, self.rng)
        self.telemetry = TradeTelemetry(
            latency_window=self.config.latency_window,
            recent_window_ms=self.config.recent_window_ms,
            healthy_ms=self.config.latency_healthy_ms,
            degraded_ms=self.config.latency_degraded_ms,
        )
        self.last_health: dict[str, Any] | None = None
        self._last_health_at = now
        self._bot_count = 0

    # --- tick phases ---

    def _prepare(self) -> _TickPlan:
        now = self.clock()
        self.telemetry.ticks += 1
        self.spike.update(now)
        report = TickReport(tick=self.telemetry.ticks, spike_active=self.spike.active)
        if now - self._last_health_at >= self.config.log_interval_ms:
            report.health = self.emit_health(now)
        report.pruned = prune_activities(self.conn, keep=self.config.activity_keep)

        bots = list_bots(self.conn, min_balance=self.config.bot_min_balance)
        self._bot_count = len(bots)
        plan = _TickPlan(report=report)
        if not bots:
            log.warning("sim_no_bots", msg="No bots with sufficient balance. Run 'winzen sim seed'.")
            return plan
        plan.markets = list_open_binary_markets(self.conn, now)
        if not plan.markets:
            log.debug("sim_no_open_markets")
            return plan
        lo, hi = self.spike.actor_bounds()
        count = min(len(bots), self.rng.randint(lo, hi))
        plan.actors = self.rng.sample(bots, count)
        plan.held = holdings(self.conn, [b.user_id for b in plan.actors])
        report.selected = count
        return plan

    def _act(self, plan: _TickPlan, bot: User) -> None:
        report = plan.report
        strategy = Strategy.parse(bot.bot_strategy)
        state = self.memory.get(bot.user_id)
        if should_skip(strategy, state, self.config, self.rng):
            report.skipped += 1
            self.telemetry.skipped += 1
            return

        market = self.rng.choice(plan.markets)
        yes = market.yes_outcome
        no = next((o for o in market.outcomes if not o.is_yes), None)
        if yes is None or no is None:
            report.skipped += 1
            return
        held = plan.held.get((bot.user_id, market.market_id))
        if held is not None:
            side = Side.YES if held == yes.outcome_id else Side.NO
        else:
            side = decide_side(
                strategy, state, market.current_probability, self.config, self.rng, self.spike.side
            )
        amount = bet_amount(strategy, state, bot.balance, self.config, self.rng, self.spike.size_multiplier)
        if amount < 1:
            report.skipped += 1
            self.telemetry.skipped += 1
            return
        outcome = yes if side is Side.YES else no

        started = time.perf_counter()
        try:
            result = open_position(
                self.conn,
                bot.user_id,
                market.market_id,
                outcome.outcome_id,
                amount,
                now_ms=self.clock(),
                locks=self.locks,
                settings=self.settings,
            )
        except WinzenError as e:
            report.failed += 1
            self.telemetry.failed_trades += 1
            log.warning("sim_trade_failed", bot_id=bot.user_id, market_id=market.market_id, code=e.code, error=e.message)
            return
        append_activity(
            self.conn,
            Activity(
                type="TRADE",
                user_id=bot.user_id,
                username=bot.name,
                market_id=market.market_id,
                market_title=market.title,
                side=side.value,
                amount=amount,
                price=result.entry_probability,
            ),
        )
        latency_ms = (time.perf_counter() - started) * 1000
        now = self.clock()
        self.telemetry.record_trade(now, latency_ms)

        # Keep the tick's cached view in step with what was just committed.
        bot.balance -= amount
        market.current_probability = result.new_probability
        plan.held[(bot.user_id, market.market_id)] = outcome.outcome_id
        self.memory.remember(state, side, now)
        report.trades += 1
        log.debug(
            "sim_trade",
            bot=bot.name,
            strategy=strategy.value,
            aggression=state.aggression.value,
            side=side.value,
            amount=amount,
            entry_probability=round(result.entry_probability, 1),
            market=market.title[:42],
            spike=self.spike.active,
        )

    # --- public API ---

    def tick(self) -> TickReport:
        """Run one full tick synchronously."""
        plan = self._prepare()
        for bot in plan.actors:
            self._act(plan, bot)
        return plan.report

    def next_delay_ms(self) -> int:
        """Randomised pause before the next tick; spikes tick faster."""
        delay = self.rng.randint(self.config.tick_min_ms, self.config.tick_max_ms)
        return int(delay / self.spike.frequency_multiplier)

    def health(self, now_ms: int | None = None) -> dict[str, Any]:
        now_ms = now_ms if now_ms is not None else self.clock()
        s = self.spike.state
        return self.telemetry.snapshot(
            now_ms,
            bot_count=self._bot_count,
            known_actors=len(self.memory),
            spike_active=s.active,
            spike_side=s.side.value if s.side else None,
            spike_ends_at=s.end_time,
            next_spike_at=s.next_spike_at,
        )

    def emit_health(self, now_ms: int | None = None) -> dict[str, Any]:
        now_ms = now_ms if now_ms is not None else self.clock()
        snap = self.health(now_ms)
        self.last_health = snap
        self._last_health_at = now_ms
        log.info("sim_health", **snap)
        return snap

    async def run(self, stop_event: asyncio.Event | None = None, max_ticks: int | None = None) -> None:
        """Tick until stop_event is set (checked between ticks, never mid-tick)."""
        stop = stop_event or asyncio.Event()
        log.info("sim_started", interval_ms=(self.config.tick_min_ms, self.config.tick_max_ms))
        ticks = 0
        while not stop.is_set():
            try:
                # DuckDB calls block, so they run off the event loop (one at a time).
                plan = await asyncio.to_thread(self._prepare)
                for bot in plan.actors:
                    await asyncio.to_thread(self._act, plan, bot)
            except duckdb.Error:
                log.exception("sim_tick_failed", tick=self.telemetry.ticks)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.next_delay_ms() / 1000)
            except asyncio.TimeoutError:
                pass
        log.info("sim_stopped", **self.health())
