"""Market data ingestion with bounded retries behind a circuit breaker.

Each upstream attempt goes through the breaker under one service key, so a
flapping provider opens the circuit for every symbol at once. Between failed
attempts the service waits ``retry_base_delay * attempt`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Protocol

from core.circuit_breaker import CircuitBreaker
from core.errors import BreakerOpenError
from core.models import PriceBar

from app.clients.market_data import MarketDataClient, MarketDataError, RateLimitedError
from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

MARKET_DATA_SERVICE = "alpha_vantage"


class BarStore(Protocol):
    """Where ingested bars are written."""

    async def save_bars(self, bars: list[PriceBar]) -> int: ...


@dataclass
class IngestionReport:
    fetched: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, MarketDataError):
        return False
    return True


class DataIngestionService:
    """Fetch bars for symbols, isolating per-symbol failures."""

    def __init__(
        self,
        client: MarketDataClient,
        breaker: CircuitBreaker,
        store: BarStore | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.breaker = breaker
        self.store = store
        self._sleep = sleep

    async def fetch_market_data(self, symbol: str) -> list[PriceBar]:
        """
        Fetch bars for one symbol with up to ``max_retries`` attempts.

        Raises:
            BreakerOpenError: circuit is open; no request was made
            MarketDataError: non-retryable provider error
            Exception: last error once attempts are exhausted
        """
        max_retries = self.settings.max_retries
        for attempt in range(1, max_retries + 1):
            logger.info(f"Fetching market data for {symbol} (attempt {attempt})")
            try:
                return await self.breaker.execute(
                    MARKET_DATA_SERVICE,
                    lambda: self.client.fetch_intraday(symbol),
                )
            except BreakerOpenError:
                raise
            except Exception as e:
                if not _is_retryable(e) or attempt >= max_retries:
                    logger.error(
                        f"Failed to fetch market data for {symbol} after "
                        f"{attempt} attempts: {e}"
                    )
                    raise
                delay = self.settings.retry_base_delay * attempt
                logger.warning(
                    f"Retry {attempt}/{max_retries} for {symbol} in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)

        raise ValueError(f"max_retries must be at least 1, got {max_retries}")

    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]:
        """Fetched bars within [start, end], ascending."""
        bars = await self.fetch_market_data(symbol)
        return [b for b in bars if start <= b.timestamp <= end]

    async def ingest(self, symbols: Iterable[str]) -> IngestionReport:
        """Fetch (and store) every symbol; one symbol's failure never stops the rest."""
        report = IngestionReport()
        for symbol in symbols:
            try:
                bars = await self.fetch_market_data(symbol)
                if self.store is not None and bars:
                    await self.store.save_bars(bars)
                report.fetched[symbol] = len(bars)
            except BreakerOpenError as e:
                report.failed[symbol] = str(e)
                logger.warning(f"Skipping {symbol}: {e}")
            except Exception as e:
                report.failed[symbol] = str(e)
                logger.error(f"Ingestion failed for {symbol}", exc_info=True)

        logger.info(
            f"Ingestion done: {len(report.fetched)} ok, {len(report.failed)} failed"
        )
        return report
