"""Backtest storage layer, independent of app/.

Price and news sources plus result repositories, each with in-memory,
file and PostgreSQL (shared asyncpg pool) implementations.
"""

from backtest.storage.database import BacktestDatabase
from backtest.storage.news_source import (
    InMemoryNewsSource,
    JsonNewsSource,
    NewsSource,
    PostgresNewsSource,
)
from backtest.storage.price_source import (
    CsvPriceSource,
    InMemoryPriceSource,
    PostgresPriceSource,
    PriceSource,
)
from backtest.storage.result_repo import (
    InMemoryResultRepository,
    JsonFileResultRepository,
    PostgresResultRepository,
    ResultRepository,
)

__all__ = [
    "BacktestDatabase",
    "NewsSource",
    "InMemoryNewsSource",
    "JsonNewsSource",
    "PostgresNewsSource",
    "PriceSource",
    "InMemoryPriceSource",
    "CsvPriceSource",
    "PostgresPriceSource",
    "ResultRepository",
    "InMemoryResultRepository",
    "JsonFileResultRepository",
    "PostgresResultRepository",
]
