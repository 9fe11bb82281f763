"""Alpha Vantage REST client for intraday price bars."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo

import httpx
import pydantic

from core.models import PriceBar

logger = logging.getLogger(__name__)

DEFAULT_TIME_ZONE = "US/Eastern"


class MarketDataError(Exception):
    """Upstream returned an error payload or unusable data."""


class RateLimitedError(MarketDataError):
    """Upstream asked us to slow down; safe to retry later."""


def parse_intraday(symbol: str, payload: dict[str, Any]) -> list[PriceBar]:
    """
    Parse a TIME_SERIES_INTRADAY response into bars, oldest first.

    Raises:
        RateLimitedError: "Note" / "Information" payload
        MarketDataError: "Error Message" payload or no time series
    """
    if not payload:
        raise MarketDataError("Empty response from market data provider")
    if "Error Message" in payload:
        raise MarketDataError(f"Alpha Vantage error: {payload['Error Message']}")
    for key in ("Note", "Information"):
        if key in payload:
            raise RateLimitedError(f"Alpha Vantage rate limit: {payload[key]}")

    series_key = next((k for k in payload if "time series" in k.lower()), None)
    if series_key is None or not isinstance(payload[series_key], dict):
        raise MarketDataError(f"No time series data in response for {symbol}")

    meta = payload.get("Meta Data", {})
    tz_name = next(
        (v for k, v in meta.items() if k.lower().endswith("time zone")),
        DEFAULT_TIME_ZONE,
    )
    tz = ZoneInfo(tz_name)

    bars = []
    for raw_ts, values in payload[series_key].items():
        try:
            local = datetime.strptime(raw_ts, "%Y-%m-%d %H:%M:%S").replace(tzinfo=tz)
            bars.append(
                PriceBar(
                    symbol=symbol.upper(),
                    timestamp=local.astimezone(timezone.utc),
                    open=Decimal(values["1. open"]),
                    high=Decimal(values["2. high"]),
                    low=Decimal(values["3. low"]),
                    close=Decimal(values["4. close"]),
                    volume=int(values["5. volume"]),
                )
            )
        except (KeyError, ValueError, InvalidOperation, pydantic.ValidationError) as e:
            logger.warning(f"Skipping malformed bar for {symbol} at {raw_ts}: {e}")

    bars.sort(key=lambda b: b.timestamp)
    return bars


class MarketDataClient:
    """Intraday bar fetcher (one request per call, no retries)."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://www.alphavantage.co",
        interval: str = "5min",
        timeout: float = 10.0,
    ):
        self.api_key = api_key or "demo"
        self.base_url = base_url
        self.interval = interval
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"User-Agent": "signal-engine/1.0"},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_intraday(self, symbol: str) -> list[PriceBar]:
        """
        Fetch the latest intraday bars for a symbol.

        Raises:
            httpx.HTTPError: transport failure, timeout or non-2xx status
            RateLimitedError: provider rate limit
            MarketDataError: provider error payload
        """
        client = await self._get_client()
        response = await client.get(
            "/query",
            params={
                "function": "TIME_SERIES_INTRADAY",
                "symbol": symbol.upper(),
                "interval": self.interval,
                "apikey": self.api_key,
            },
        )
        response.raise_for_status()
        bars = parse_intraday(symbol, response.json())
        logger.debug(f"Fetched {len(bars)} bars for {symbol}")
        return bars
