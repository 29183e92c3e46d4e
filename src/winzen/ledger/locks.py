"""Per-market and per-user mutual exclusion around DuckDB read-modify-write.

Locks are always taken before the DuckDB transaction begins, in one order:
market locks (sorted), then user locks (sorted). A transaction that starts
after the previous writer of a row has committed never hits a write-write
conflict on that row.
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from threading import Lock
from typing import Iterable, Iterator


class MarketLocks:
    """One lock per market id and one per user id. Trades on different markets never contend
    unless they touch the same user row."""

    def __init__(self) -> None:
        self._markets: dict[str, Lock] = {}
        self._users: dict[str, Lock] = {}
        self._guard = Lock()

    def _lookup(self, table: dict[str, Lock], key: str) -> Lock:
        with self._guard:
            lock = table.get(key)
            if lock is None:
                lock = Lock()
                table[key] = lock
            return lock

    def get(self, market_id: str) -> Lock:
        return self._lookup(self._markets, market_id)

    def user(self, user_id: str) -> Lock:
        return self._lookup(self._users, user_id)

    @contextmanager
    def hold_all(self, market_ids: Iterable[str] = (), user_ids: Iterable[str] = ()) -> Iterator[None]:
        with ExitStack() as stack:
            for market_id in sorted(set(market_ids)):
                stack.enter_context(self.get(market_id))
            for user_id in sorted(set(user_ids)):
                stack.enter_context(self.user(user_id))
            yield

    @contextmanager
    def hold(self, market_id: str, user_ids: Iterable[str] = ()) -> Iterator[None]:
        with self.hold_all([market_id], user_ids):
            yield

    def hold_users(self, user_ids: Iterable[str]):
        return self.hold_all((), user_ids)


# Process-wide registry shared by the API, CLI, and simulation.
market_locks = MarketLocks()
