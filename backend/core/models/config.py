"""Risk, fusion and backtest-run configuration models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.errors import ValidationError

MAX_SYMBOLS = 10
MIN_INITIAL_CAPITAL = Decimal("100")


class StrategyType(str, Enum):
    MOVING_AVERAGE_CROSSOVER = "movingAverageCrossover"
    RSI_MEAN_REVERSION = "rsiMeanReversion"
    NEWS_SENTIMENT = "newsSentiment"


class RiskConfig(BaseModel):
    """Risk gate limits and sizing fractions."""

    max_position_fraction: float = 0.10  # Max 10% of balance per position
    max_daily_loss_fraction: float = 0.05  # Risk budget for sizing
    stop_loss_fraction: float = 0.03
    take_profit_fraction: float = 0.06

    # Same symbol + type within this window is a duplicate
    duplicate_window: timedelta = timedelta(hours=2)

    # Allow doubling down up to this multiple of max_position_fraction
    position_headroom_multiplier: float = 2.0

    # Accept an opposite-direction signal on a held position as an exit
    allow_exit_signals: bool = False


class FuserConfig(BaseModel):
    """Thresholds used when turning news and indicators into signals."""

    sentiment_threshold: float = 0.7
    news_lookback: timedelta = timedelta(hours=24)
    min_news_bars: int = 6
    volume_spike_threshold: float = 2.0
    volume_lookback: int = 9
    min_confidence: float = 0.6

    rsi_period: int = 14
    oversold: float = 30.0
    overbought: float = 70.0
    rsi_confidence: float = 0.7

    fast_period: int = 10
    slow_period: int = 20
    crossover_strength: float = 0.8
    crossover_confidence: float = 0.75


class BacktestConfig(BaseModel):
    """Backtest run request.

    Accepts camelCase keys (``strategyName``, ``initialCapital``...) as well
    as snake_case field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    strategy_name: str = Field(min_length=1)
    symbols: list[str]
    start_date: datetime
    end_date: datetime
    initial_capital: Decimal = Field(ge=MIN_INITIAL_CAPITAL)
    strategy_type: StrategyType
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, value: list[str]) -> list[str]:
        symbols: list[str] = []
        for raw in value:
            symbol = raw.strip().upper()
            if not symbol.isalpha() or len(symbol) > 5:
                raise ValueError(f"invalid symbol {raw!r} (1-5 letters)")
            if symbol not in symbols:
                symbols.append(symbol)
        if not 1 <= len(symbols) <= MAX_SYMBOLS:
            raise ValueError(f"must provide 1-{MAX_SYMBOLS} symbols, got {len(symbols)}")
        return symbols

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Bar timestamps are UTC; a date without a zone is read as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_dates(self) -> "BacktestConfig":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


def validate_backtest_config(
    config: BacktestConfig | Mapping[str, Any],
) -> BacktestConfig:
    """Coerce a raw mapping into a BacktestConfig.

    Raises:
        ValidationError: on any schema or range violation
    """
    if isinstance(config, BacktestConfig):
        return config
    try:
        return BacktestConfig.model_validate(dict(config))
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e
