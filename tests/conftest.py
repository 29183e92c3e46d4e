"""Shared fixtures: a throwaway DuckDB file per test plus user/market factories."""

import tempfile
import time
from pathlib import Path

import pytest

from winzen.config.settings import Settings
from winzen.ledger.locks import MarketLocks
from winzen.ledger.markets import create_market
from winzen.storage.db import get_connection, init_schema
from winzen.storage.users import insert_user

HOUR_MS = 60 * 60 * 1000


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def locks():
    return MarketLocks()


@pytest.fixture
def make_user(temp_db):
    def _make(name="alice", balance=1000, elo=1000, is_bot=False, strategy=None):
        return insert_user(temp_db, name=name, balance=balance, elo_rating=elo, is_bot=is_bot, bot_strategy=strategy)

    return _make


@pytest.fixture
def make_market(temp_db, settings):
    def _make(title="Will it rain tomorrow?", outcomes=("Yes", "No"), liquidity=5000.0, creator_id=None, hours=48):
        closes_at = int(time.time() * 1000) + hours * HOUR_MS
        return create_market(
            temp_db,
            creator_id,
            title,
            list(outcomes),
            closes_at,
            liquidity=liquidity,
            settings=settings,
        )

    return _make
