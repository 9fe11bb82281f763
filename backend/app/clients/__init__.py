"""Market data clients."""

from app.clients.market_data import (
    MarketDataClient,
    MarketDataError,
    RateLimitedError,
    parse_intraday,
)

__all__ = [
    "MarketDataClient",
    "MarketDataError",
    "RateLimitedError",
    "parse_intraday",
]
