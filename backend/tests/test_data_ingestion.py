"""Tests for market data ingestion (retries + circuit breaker)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from core.circuit_breaker import BreakerState, CircuitBreaker
from core.errors import BreakerOpenError
from core.models import PriceBar
from app.clients.market_data import MarketDataError, RateLimitedError
from app.config import Settings
from app.services.data_ingestion import MARKET_DATA_SERVICE, DataIngestionService

T0 = datetime(2024, 1, 5, 15, 0, tzinfo=timezone.utc)


def _make_bars(symbol="AAPL", n=3) -> list[PriceBar]:
    return [
        PriceBar(
            symbol=symbol,
            timestamp=T0 + timedelta(minutes=5 * i),
            open=Decimal("100"),
            high=Decimal("101"),
            low=Decimal("99"),
            close=Decimal("100.5"),
            volume=1000,
        )
        for i in range(n)
    ]


def _make_service(fetch, breaker=None, store=None, **settings):
    client = MagicMock()
    client.fetch_intraday = fetch
    sleep = AsyncMock()
    service = DataIngestionService(
        client=client,
        breaker=breaker or CircuitBreaker(),
        store=store,
        settings=Settings(_env_file=None, **settings),
        sleep=sleep,
    )
    return service, sleep


@pytest.mark.asyncio
class TestFetchMarketData:

    async def test_success_first_try(self):
        bars = _make_bars()
        service, sleep = _make_service(AsyncMock(return_value=bars))

        assert await service.fetch_market_data("AAPL") == bars
        sleep.assert_not_awaited()

    async def test_retries_with_linear_backoff(self):
        bars = _make_bars()
        fetch = AsyncMock(side_effect=[httpx.ConnectError("boom"), RateLimitedError("slow down"), bars])
        service, sleep = _make_service(fetch)

        assert await service.fetch_market_data("AAPL") == bars
        assert fetch.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    async def test_gives_up_after_max_retries(self):
        fetch = AsyncMock(side_effect=httpx.ConnectError("boom"))
        service, sleep = _make_service(fetch)

        with pytest.raises(httpx.ConnectError):
            await service.fetch_market_data("AAPL")
        assert fetch.await_count == 3
        assert sleep.await_count == 2

    async def test_error_payload_not_retried(self):
        fetch = AsyncMock(side_effect=MarketDataError("Invalid API call"))
        service, sleep = _make_service(fetch)

        with pytest.raises(MarketDataError):
            await service.fetch_market_data("XXXX")
        assert fetch.await_count == 1
        sleep.assert_not_awaited()

    async def test_failures_counted_by_breaker(self):
        breaker = CircuitBreaker(failure_threshold=5)
        fetch = AsyncMock(side_effect=httpx.ConnectError("boom"))
        service, _ = _make_service(fetch, breaker=breaker)

        with pytest.raises(httpx.ConnectError):
            await service.fetch_market_data("AAPL")
        assert breaker.status(MARKET_DATA_SERVICE).consecutive_failures == 3

    async def test_open_breaker_stops_retries(self):
        breaker = CircuitBreaker(failure_threshold=2)
        fetch = AsyncMock(side_effect=httpx.ConnectError("boom"))
        service, sleep = _make_service(fetch, breaker=breaker)

        with pytest.raises(BreakerOpenError):
            await service.fetch_market_data("AAPL")
        # Two real attempts open the circuit; the third is short-circuited
        assert fetch.await_count == 2
        assert breaker.status(MARKET_DATA_SERVICE).state == BreakerState.OPEN

    async def test_zero_retries_rejected(self):
        service, _ = _make_service(AsyncMock(return_value=[]), max_retries=0)
        with pytest.raises(ValueError):
            await service.fetch_market_data("AAPL")

    async def test_get_range_filters(self):
        service, _ = _make_service(AsyncMock(return_value=_make_bars(n=5)))
        bars = await service.get_range("AAPL", T0 + timedelta(minutes=5), T0 + timedelta(minutes=10))
        assert [b.timestamp.minute for b in bars] == [5, 10]


@pytest.mark.asyncio
class TestIngest:

    async def test_one_symbol_failure_isolated(self):
        async def fetch(symbol):
            if symbol == "BAD":
                raise MarketDataError("Invalid API call")
            return _make_bars(symbol)

        store = MagicMock()
        store.save_bars = AsyncMock(return_value=3)
        service, _ = _make_service(AsyncMock(side_effect=fetch), store=store)

        report = await service.ingest(["AAPL", "BAD", "MSFT"])

        assert report.fetched == {"AAPL": 3, "MSFT": 3}
        assert list(report.failed) == ["BAD"]
        assert not report.ok
        assert store.save_bars.await_count == 2

    async def test_open_breaker_recorded(self):
        breaker = CircuitBreaker(failure_threshold=1)
        fetch = AsyncMock(side_effect=httpx.ConnectError("boom"))
        service, _ = _make_service(fetch, breaker=breaker, max_retries=1)

        report = await service.ingest(["AAPL", "MSFT"])

        assert set(report.failed) == {"AAPL", "MSFT"}
        assert "Circuit breaker open" in report.failed["MSFT"]
        assert fetch.await_count == 1

    async def test_all_ok(self):
        service, _ = _make_service(AsyncMock(return_value=_make_bars()))
        report = await service.ingest(["AAPL"])
        assert report.ok
