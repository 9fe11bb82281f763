"""Signal generation across a set of symbols.

This module is pure business logic with no I/O dependencies. Bars and news
are fetched by the caller, so the same code serves the live signal service
and the backtest simulator.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from core.models import NewsItem, PriceBar, Signal, StrategyType
from core.strategy import Strategy, create_strategy

logger = logging.getLogger(__name__)


def build_strategy(
    strategy_type: StrategyType | str,
    parameters: Mapping[str, Any] | None = None,
) -> Strategy:
    """Instantiate a registered strategy from its type and raw parameters.

    Raises:
        KeyError: unknown strategy type
        ValidationError: invalid parameters
    """
    return create_strategy(strategy_type, parameters=parameters)


def news_for_symbol(
    news: Sequence[NewsItem], symbol: str, now: datetime
) -> list[NewsItem]:
    """News items mentioning ``symbol`` and published no later than ``now``."""
    return [n for n in news if n.published_at <= now and n.mentions(symbol)]


class SignalGenerator:
    """Runs one strategy over many symbols with per-symbol failure isolation."""

    def __init__(self, strategy: Strategy):
        self.strategy = strategy
        self.failed_symbols: set[str] = set()

    def generate_for_symbol(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        news: Sequence[NewsItem] = (),
        now: datetime | None = None,
    ) -> list[Signal]:
        """Candidates for one symbol. Exceptions propagate to the caller."""
        if not bars:
            return []
        if now is None:
            now = bars[-1].timestamp
        return self.strategy.generate(
            symbol, bars, news_for_symbol(news, symbol, now), now
        )

    def generate(
        self,
        bars_by_symbol: Mapping[str, Sequence[PriceBar]],
        news: Sequence[NewsItem] = (),
        now: datetime | None = None,
    ) -> list[Signal]:
        """
        Candidates for every symbol, in sorted symbol order.

        A symbol whose generation raises is logged, recorded in
        ``failed_symbols`` and skipped; the others still produce signals.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        signals: list[Signal] = []
        for symbol in sorted(bars_by_symbol):
            try:
                signals.extend(
                    self.generate_for_symbol(symbol, bars_by_symbol[symbol], news, now)
                )
            except Exception as e:
                self.failed_symbols.add(symbol)
                logger.error(
                    f"Signal generation failed for {symbol}: {e}", exc_info=True
                )
        return signals


def generate_signals(
    bars_by_symbol: Mapping[str, Sequence[PriceBar]],
    strategy_type: StrategyType | str,
    parameters: Mapping[str, Any] | None = None,
    news: Sequence[NewsItem] = (),
    now: datetime | None = None,
) -> list[Signal]:
    """One-shot helper: build the strategy and generate for all symbols."""
    generator = SignalGenerator(build_strategy(strategy_type, parameters))
    return generator.generate(bars_by_symbol, news, now)
