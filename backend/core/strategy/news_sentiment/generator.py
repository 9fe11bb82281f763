"""News-sentiment strategy.

Emits one signal per impactful news item that mentions the symbol; see
core.signals.fuser for the confidence formula.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from core.indicators import IndicatorSnapshot
from core.models import NewsItem, PriceBar, Signal, StrategyType
from core.strategy.base import FuserStrategy
from core.strategy.news_sentiment.models import NewsSentimentParams
from core.strategy.registry import register_strategy


@register_strategy(StrategyType.NEWS_SENTIMENT)
class NewsSentimentStrategy(FuserStrategy):
    params_model = NewsSentimentParams
    strategy_name = StrategyType.NEWS_SENTIMENT.value

    @property
    def min_bars(self) -> int:
        return self.fuser.config.min_news_bars

    def indicator_snapshots(self, bars: Sequence[PriceBar]) -> None:
        return None

    def generate(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        news: Sequence[NewsItem],
        now: datetime,
        snapshot: IndicatorSnapshot | None = None,
    ) -> list[Signal]:
        if not news or len(bars) < self.min_bars:
            return []
        return self.fuser.news_signals(news, symbol, bars, now)
