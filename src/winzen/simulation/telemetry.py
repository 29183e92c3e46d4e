"""Trade counters and rolling latency for the simulation health snapshot."""

from __future__ import annotations

from collections import deque
from typing import Any

IDLE = "Idle"
HEALTHY = "Healthy"
SLUGGISH = "Sluggish"
DEGRADING = "Degrading"


class TradeTelemetry:
    """Total/recent trade counts and a fixed-size latency window. Times are ms."""

    def __init__(
        self,
        latency_window: int = 50,
        recent_window_ms: int = 60_000,
        healthy_ms: float = 250,
        degraded_ms: float = 1000,
    ) -> None:
        self._latencies: deque[float] = deque(maxlen=latency_window)
        self._trade_times: deque[int] = deque()
        self.recent_window_ms = recent_window_ms
        self.healthy_ms = healthy_ms
        self.degraded_ms = degraded_ms
        self.total_trades = 0
        self.failed_trades = 0
        self.skipped = 0
        self.ticks = 0

    def _evict(self, now_ms: int) -> None:
        cutoff = now_ms - self.recent_window_ms
        while self._trade_times and self._trade_times[0] < cutoff:
            self._trade_times.popleft()

    def record_trade(self, now_ms: int, latency_ms: float) -> None:
        self.total_trades += 1
        self._trade_times.append(now_ms)
        self._latencies.append(latency_ms)
        self._evict(now_ms)

    def recent_trades(self, now_ms: int) -> int:
        self._evict(now_ms)
        return len(self._trade_times)

    def trades_per_minute(self, now_ms: int) -> float:
        return self.recent_trades(now_ms) * 60_000 / self.recent_window_ms

    @property
    def avg_latency_ms(self) -> float | None:
        if not self._latencies:
            return None
        return sum(self._latencies) / len(self._latencies)

    def status(self, now_ms: int) -> str:
        avg = self.avg_latency_ms
        if self.recent_trades(now_ms) == 0 or avg is None:
            return IDLE
        if avg < self.healthy_ms:
            return HEALTHY
        if avg < self.degraded_ms:
            return SLUGGISH
        return DEGRADING

    def snapshot(self, now_ms: int, **extra: Any) -> dict[str, Any]:
        avg = self.avg_latency_ms
        snap = {
            "ticks": self.ticks,
            "total_trades": self.total_trades,
            "recent_trades": self.recent_trades(now_ms),
            "trades_per_minute": round(self.trades_per_minute(now_ms), 2),
            "failed_trades": self.failed_trades,
            "skipped": self.skipped,
            "avg_latency_ms": round(avg, 1) if avg is not None else None,
            "status": self.status(now_ms),
        }
        snap.update(extra)
        return snap
