"""News-sentiment parameters."""

from datetime import timedelta

from pydantic import Field

from core.strategy.base import StrategyParams


class NewsSentimentParams(StrategyParams):
    sentiment_threshold: float = Field(default=0.7, ge=0.0, lt=1.0)
    min_confidence: float = Field(default=0.6, ge=0.0, lt=1.0)
    volume_spike_threshold: float = Field(default=2.0, gt=0.0)
    news_lookback: timedelta = timedelta(hours=24)
