"""PostgreSQL database for backtest inputs and results.

Manages a single asyncpg connection pool shared by price/news reading and
result storage. Creates the price_bars / news_items input tables and the
backtest_runs / backtest_trades / backtest_equity result tables.
"""

from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS price_bars (
    symbol          VARCHAR(10) NOT NULL,
    timestamp       TIMESTAMPTZ NOT NULL,
    open            NUMERIC(20,6) NOT NULL,
    high            NUMERIC(20,6) NOT NULL,
    low             NUMERIC(20,6) NOT NULL,
    close           NUMERIC(20,6) NOT NULL,
    volume          BIGINT NOT NULL DEFAULT 0,
    PRIMARY KEY (symbol, timestamp)
);

CREATE TABLE IF NOT EXISTS news_items (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    content         TEXT NOT NULL DEFAULT '',
    published_at    TIMESTAMPTZ NOT NULL,
    sentiment_score DOUBLE PRECISION NOT NULL,
    sentiment_label VARCHAR(10) NOT NULL,
    symbols         JSONB NOT NULL DEFAULT '[]',
    source          TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_news_items_published
    ON news_items(published_at);

CREATE TABLE IF NOT EXISTS backtest_runs (
    id              TEXT PRIMARY KEY,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    strategy_config JSONB NOT NULL,
    performance     JSONB,
    executed_at     TIMESTAMPTZ,
    execution_time  DOUBLE PRECISION,
    error           TEXT,
    status          TEXT DEFAULT 'running'
);

CREATE TABLE IF NOT EXISTS backtest_trades (
    run_id          TEXT NOT NULL REFERENCES backtest_runs(id) ON DELETE CASCADE,
    seq             INTEGER NOT NULL,
    timestamp       TIMESTAMPTZ NOT NULL,
    symbol          VARCHAR(10) NOT NULL,
    action          VARCHAR(4) NOT NULL,
    quantity        NUMERIC(30,12) NOT NULL,
    price           NUMERIC(20,6) NOT NULL,
    value           NUMERIC(30,12) NOT NULL,
    cost            NUMERIC(30,12) NOT NULL,
    realized_pnl    NUMERIC(30,12),
    PRIMARY KEY (run_id, seq)
);

CREATE TABLE IF NOT EXISTS backtest_equity (
    run_id          TEXT NOT NULL REFERENCES backtest_runs(id) ON DELETE CASCADE,
    timestamp       TIMESTAMPTZ NOT NULL,
    value           NUMERIC(30,12) NOT NULL,
    PRIMARY KEY (run_id, timestamp)
);
"""


class BacktestDatabase:
    """Asyncpg connection pool for backtest operations.

    Shared by the Postgres price/news sources and the result repository.
    """

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._pool

    async def init(self) -> None:
        """Create connection pool and ensure tables exist."""
        self._pool = await asyncpg.create_pool(
            self._database_url,
            min_size=1,
            max_size=10,
            command_timeout=120,
        )
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Backtest database initialized")

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
