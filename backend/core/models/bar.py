"""Price bar (OHLCV candle) data models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PriceBar(BaseModel):
    """OHLCV price bar for one symbol at one timestamp."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: datetime
    open: Decimal = Field(ge=0)
    high: Decimal = Field(ge=0)
    low: Decimal = Field(ge=0)
    close: Decimal = Field(ge=0)
    volume: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "PriceBar":
        """low <= open, close <= high."""
        if not (self.low <= self.open <= self.high):
            raise ValueError(
                f"open {self.open} outside [{self.low}, {self.high}] for {self.symbol}"
            )
        if not (self.low <= self.close <= self.high):
            raise ValueError(
                f"close {self.close} outside [{self.low}, {self.high}] for {self.symbol}"
            )
        return self

    @property
    def is_bullish(self) -> bool:
        """Check if this is a bullish (green) bar."""
        return self.close > self.open

    @property
    def range_size(self) -> Decimal:
        """Get the full range (high - low) of the bar."""
        return self.high - self.low


def closes_of(bars: list[PriceBar]) -> list[Decimal]:
    """Get list of close prices."""
    return [b.close for b in bars]


def volumes_of(bars: list[PriceBar]) -> list[int]:
    """Get list of volumes."""
    return [b.volume for b in bars]
