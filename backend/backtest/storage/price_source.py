"""Price-history sources for backtesting.

Every source answers ``get_range(symbol, start, end)`` with bars in
ascending timestamp order, both bounds inclusive.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Protocol

import asyncpg

from core.models import PriceBar

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """Protocol for price-history access."""

    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]: ...


def _in_range(bars: Iterable[PriceBar], start: datetime, end: datetime) -> list[PriceBar]:
    return sorted(
        (b for b in bars if start <= b.timestamp <= end), key=lambda b: b.timestamp
    )


class InMemoryPriceSource:
    """Bars held in a dict, keyed by symbol."""

    def __init__(self, bars_by_symbol: dict[str, list[PriceBar]] | None = None):
        self._bars: dict[str, list[PriceBar]] = {
            symbol.upper(): list(bars) for symbol, bars in (bars_by_symbol or {}).items()
        }

    def add(self, bars: Iterable[PriceBar]) -> None:
        for bar in bars:
            self._bars.setdefault(bar.symbol, []).append(bar)

    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]:
        return _in_range(self._bars.get(symbol.upper(), []), start, end)


def _parse_timestamp(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw.strip())
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class CsvPriceSource:
    """One ``<SYMBOL>.csv`` per symbol under ``data_dir``.

    Columns: timestamp,open,high,low,close,volume (ISO-8601 timestamps,
    naive ones are taken as UTC).
    """

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)
        self._cache: dict[str, list[PriceBar]] = {}

    def _load(self, symbol: str) -> list[PriceBar]:
        if symbol in self._cache:
            return self._cache[symbol]

        path = self.data_dir / f"{symbol}.csv"
        if not path.exists():
            raise FileNotFoundError(f"No price file for {symbol}: {path}")

        bars = []
        with path.open(newline="") as f:
            for row in csv.DictReader(f):
                bars.append(
                    PriceBar(
                        symbol=symbol,
                        timestamp=_parse_timestamp(row["timestamp"]),
                        open=Decimal(row["open"]),
                        high=Decimal(row["high"]),
                        low=Decimal(row["low"]),
                        close=Decimal(row["close"]),
                        volume=int(float(row.get("volume") or 0)),
                    )
                )
        logger.debug(f"Loaded {len(bars)} bars for {symbol} from {path}")
        self._cache[symbol] = bars
        return bars

    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]:
        return _in_range(self._load(symbol.upper()), start, end)


class PostgresPriceSource:
    """Read bars from PostgreSQL via the shared asyncpg pool.

    asyncpg returns NUMERIC columns as Decimal natively.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]:
        """Fetch bars in ascending time order."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT symbol, timestamp, open, high, low, close, volume
                   FROM price_bars
                   WHERE symbol=$1 AND timestamp >= $2 AND timestamp <= $3
                   ORDER BY timestamp ASC""",
                symbol.upper(),
                start,
                end,
            )

        return [
            PriceBar(
                symbol=row["symbol"],
                timestamp=row["timestamp"],
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=row["volume"],
            )
            for row in rows
        ]
