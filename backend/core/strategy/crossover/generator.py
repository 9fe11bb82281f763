"""Moving-average crossover strategy.

- Fast SMA crosses above slow SMA -> BUY
- Fast SMA crosses below slow SMA -> SELL

Only the bar on which the cross happens emits a signal.
This module is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from core.indicators import IndicatorSnapshot
from core.models import NewsItem, PriceBar, Signal, StrategyType
from core.strategy.base import FuserStrategy
from core.strategy.crossover.models import CrossoverParams
from core.strategy.registry import register_strategy


@register_strategy(StrategyType.MOVING_AVERAGE_CROSSOVER)
class MovingAverageCrossoverStrategy(FuserStrategy):
    params_model = CrossoverParams
    strategy_name = StrategyType.MOVING_AVERAGE_CROSSOVER.value

    @property
    def min_bars(self) -> int:
        # Slow SMA on the current and the previous bar
        return self.params.slow_period + 1

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
        signal = self.fuser.crossover_signal(symbol, snapshot, now, bars[-1].timestamp)
        return [signal] if signal else []
