"""Strategy protocol defining the interface all strategies must implement.

A strategy turns the bars (and news) known at one instant into candidate
signals. Strategies are stateless between calls: everything they need is
passed in, so the same strategy instance can serve live generation and any
number of concurrent backtests.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, Sequence, runtime_checkable

from core.indicators import IndicatorSnapshot
from core.models import NewsItem, PriceBar, Signal


@runtime_checkable
class Strategy(Protocol):
    """Protocol that all signal strategies must implement."""

    @property
    def name(self) -> str:
        """Registered strategy identifier (e.g., 'rsiMeanReversion')."""
        ...

    @property
    def min_bars(self) -> int:
        """Bars of history needed before the strategy can emit anything."""
        ...

    @property
    def news_lookback(self) -> timedelta:
        """How long a news item stays relevant after publication."""
        ...

    def indicator_snapshots(
        self, bars: Sequence[PriceBar]
    ) -> Sequence[IndicatorSnapshot] | None:
        """Indicator snapshots for every bar of a full history, oldest first.

        A replay computes these once per symbol and hands snapshot ``i`` to
        ``generate`` when the history holds ``i + 1`` bars. Strategies that
        do not read indicators return None.
        """
        ...

    def generate(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        news: Sequence[NewsItem],
        now: datetime,
        snapshot: IndicatorSnapshot | None = None,
    ) -> list[Signal]:
        """Candidate signals for ``symbol`` at ``now``.

        Args:
            symbol: Ticker the bars belong to.
            bars: Bars up to and including ``now``, oldest first.
            news: News items published at or before ``now``.
            now: Generation time; stamped on every emitted signal.
            snapshot: Precomputed indicators at ``bars[-1]``; computed from
                ``bars`` when None.

        Returns:
            Zero or more candidate signals (not yet risk-checked).
        """
        ...
