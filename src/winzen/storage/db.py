"""DuckDB connection, schema init, and transaction helper."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import duckdb

from winzen.errors import StateConflictError

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS snap_seq START 1;
CREATE SEQUENCE IF NOT EXISTS txn_seq START 1;
CREATE SEQUENCE IF NOT EXISTS activity_seq START 1;

-- Users (balance, rating, streak and aggregate counters)
CREATE TABLE IF NOT EXISTS users (
    user_id         VARCHAR PRIMARY KEY,
    name            VARCHAR NOT NULL,
    balance         BIGINT NOT NULL,
    elo_rating      INTEGER NOT NULL DEFAULT 1000,
    win_streak      INTEGER NOT NULL DEFAULT 0,
    total_wins      INTEGER NOT NULL DEFAULT 0,
    total_losses    INTEGER NOT NULL DEFAULT 0,
    total_profit    BIGINT NOT NULL DEFAULT 0,
    xp              INTEGER NOT NULL DEFAULT 0,
    level           INTEGER NOT NULL DEFAULT 1,
    is_bot          BOOLEAN NOT NULL DEFAULT FALSE,
    bot_strategy    VARCHAR,
    bot_slot        INTEGER,
    created_at      BIGINT NOT NULL
);

-- Markets (AMM state lives here, resolved_outcome_id is set once)
CREATE TABLE IF NOT EXISTS markets (
    market_id           VARCHAR PRIMARY KEY,
    title               VARCHAR NOT NULL,
    description         VARCHAR,
    market_type         VARCHAR NOT NULL,
    category            VARCHAR NOT NULL,
    current_probability DOUBLE NOT NULL,
    liquidity           DOUBLE NOT NULL,
    total_volume        BIGINT NOT NULL DEFAULT 0,
    participant_count   INTEGER NOT NULL DEFAULT 0,
    closes_at           BIGINT NOT NULL,
    created_at          BIGINT NOT NULL,
    creator_id          VARCHAR,
    creator_deposit     BIGINT NOT NULL DEFAULT 0,
    resolved_outcome_id VARCHAR,
    resolved_at         BIGINT
);

CREATE TABLE IF NOT EXISTS outcomes (
    outcome_id      VARCHAR PRIMARY KEY,
    market_id       VARCHAR NOT NULL,
    label           VARCHAR NOT NULL,
    sort_order      INTEGER NOT NULL,
    is_yes          BOOLEAN NOT NULL
);

-- Positions (bets). closed_at, exit_probability, payout are set only by cash-out
CREATE TABLE IF NOT EXISTS positions (
    position_id      VARCHAR PRIMARY KEY,
    user_id          VARCHAR NOT NULL,
    market_id        VARCHAR NOT NULL,
    outcome_id       VARCHAR NOT NULL,
    amount           BIGINT NOT NULL,
    entry_probability DOUBLE NOT NULL,
    shares           DOUBLE NOT NULL,
    is_bot           BOOLEAN NOT NULL DEFAULT FALSE,
    created_at       BIGINT NOT NULL,
    closed_at        BIGINT,
    exit_probability DOUBLE,
    payout           BIGINT
);

-- Probability audit trail (append-only)
CREATE TABLE IF NOT EXISTS probability_snapshots (
    id              BIGINT PRIMARY KEY DEFAULT nextval('snap_seq'),
    market_id       VARCHAR NOT NULL,
    outcome_id      VARCHAR NOT NULL,
    probability     DOUBLE NOT NULL,
    recorded_at     BIGINT NOT NULL
);

-- Currency ledger: one row per balance movement
CREATE TABLE IF NOT EXISTS transactions (
    id              BIGINT PRIMARY KEY DEFAULT nextval('txn_seq'),
    user_id         VARCHAR NOT NULL,
    type            VARCHAR NOT NULL,
    amount          BIGINT NOT NULL,
    balance_after   BIGINT,
    reference_id    VARCHAR,
    created_at      BIGINT NOT NULL
);

-- Activity feed (append-only for the core, pruned to the newest rows)
CREATE TABLE IF NOT EXISTS activities (
    id              BIGINT PRIMARY KEY DEFAULT nextval('activity_seq'),
    type            VARCHAR NOT NULL,
    user_id         VARCHAR,
    username        VARCHAR,
    market_id       VARCHAR NOT NULL,
    market_title    VARCHAR,
    side            VARCHAR,
    amount          BIGINT,
    price           DOUBLE,
    created_at      BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    ":memory:" opens a private in-memory database."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """BEGIN/COMMIT around the block; ROLLBACK and re-raise on any exception.

    A DuckDB write-write conflict (another connection committed a change to
    the same row first) surfaces as StateConflictError.
    """
    conn.begin()
    try:
        yield conn
    except duckdb.TransactionException as e:
        conn.rollback()
        raise StateConflictError("Concurrent update, please retry") from e
    except BaseException:
        conn.rollback()
        raise
    try:
        conn.commit()
    except duckdb.TransactionException as e:
        raise StateConflictError("Concurrent update, please retry") from e
