"""RSI mean-reversion strategy.

- RSI < oversold (30) -> BUY, strength (30 - RSI) / 30
- RSI > overbought (70) -> SELL, strength (RSI - 70) / 30

This module is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from core.indicators import IndicatorSnapshot
from core.models import NewsItem, PriceBar, Signal, StrategyType
from core.strategy.base import FuserStrategy
from core.strategy.registry import register_strategy
from core.strategy.rsi_reversion.models import RsiParams


@register_strategy(StrategyType.RSI_MEAN_REVERSION)
class RsiMeanReversionStrategy(FuserStrategy):
    params_model = RsiParams
    strategy_name = StrategyType.RSI_MEAN_REVERSION.value

    @property
    def min_bars(self) -> int:
        return self.params.rsi_period + 1

    def generate(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        news: Sequence[NewsItem],
        now: datetime,
        snapshot: IndicatorSnapshot | None = None,
    ) -> list[Signal]:
        if len(bars) < self.min_bars:
            return []
        if snapshot is None:
            snapshot = self.fuser.snapshot(bars)
        if snapshot is None:
            return []
        signal = self.fuser.rsi_signal(symbol, snapshot, now, bars[-1].timestamp)
        return [signal] if signal else []
