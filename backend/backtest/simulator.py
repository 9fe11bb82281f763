"""Portfolio simulator: replays strategy signals against price history.

Processing order for each timestamp (ascending, symbols in sorted order):
1. Ask the strategy for candidate signals from the bars seen so far
2. Run each candidate through the RiskGate; rejections are logged and dropped
3. Execute accepted BUY/SELL signals at the bar's close (NEUTRAL is ignored)
4. Revalue the portfolio and append one equity point

One simulator owns exactly one Portfolio; concurrent runs use separate
simulators and share only read-only bars and news.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Sequence

from core.errors import SimulationInvariantError
from core.indicators import IndicatorSnapshot
from core.models import NewsItem, Portfolio, PriceBar, Signal, SignalType, Trade
from core.risk import RiskGate
from core.signal_generator import news_for_symbol
from core.strategy import Strategy

logger = logging.getLogger(__name__)

DEFAULT_FEE = Decimal("0.001")
DEFAULT_BUY_FRACTION = Decimal("0.1")


@dataclass
class SimulationResult:
    """Ledger and bookkeeping produced by one simulation."""

    portfolio: Portfolio
    initial_capital: Decimal
    accepted_signals: list[Signal] = field(default_factory=list)
    rejected_count: int = 0
    failed_symbols: set[str] = field(default_factory=set)
    bars_processed: int = 0


def build_timeline(
    bars_by_symbol: Mapping[str, Sequence[PriceBar]],
) -> list[tuple[datetime, dict[str, PriceBar]]]:
    """Group bars by timestamp, ascending. Later duplicates win."""
    grouped: dict[datetime, dict[str, PriceBar]] = defaultdict(dict)
    for symbol, bars in bars_by_symbol.items():
        for bar in bars:
            grouped[bar.timestamp][symbol] = bar
    return sorted(grouped.items(), key=lambda item: item[0])


class PortfolioSimulator:
    """Sequential bar-by-bar execution of one strategy over many symbols."""

    def __init__(
        self,
        strategy: Strategy,
        initial_capital: Decimal,
        risk_gate: RiskGate | None = None,
        fee: Decimal = DEFAULT_FEE,
        buy_fraction: Decimal = DEFAULT_BUY_FRACTION,
        yield_every: int = 50,
    ):
        self.strategy = strategy
        self.initial_capital = Decimal(initial_capital)
        self.risk_gate = risk_gate or RiskGate()
        self.fee = fee
        self.buy_fraction = buy_fraction
        self.yield_every = max(1, yield_every)

        self.portfolio = Portfolio(cash=self.initial_capital)
        self._history: dict[str, list[PriceBar]] = defaultdict(list)
        self._snapshots: dict[str, Sequence[IndicatorSnapshot]] = {}
        self._last_prices: dict[str, Decimal] = {}
        self._recent: dict[str, list[Signal]] = defaultdict(list)
        self._result = SimulationResult(
            portfolio=self.portfolio, initial_capital=self.initial_capital
        )

    async def run(
        self,
        bars_by_symbol: Mapping[str, Sequence[PriceBar]],
        news: Sequence[NewsItem] = (),
    ) -> SimulationResult:
        """
        Replay all bars in timestamp order.

        Yields to the event loop every ``yield_every`` timestamps so a
        deadline set by the caller can cancel the run.

        Raises:
            SimulationInvariantError: ledger reached an impossible state
        """
        timeline = build_timeline(bars_by_symbol)
        logger.info(
            f"Simulating {self.strategy.name} over {len(timeline)} timestamps, "
            f"{len(bars_by_symbol)} symbols"
        )
        await self._precompute_indicators(timeline)

        for step, (timestamp, bars_at) in enumerate(timeline, start=1):
            self.process_timestamp(timestamp, bars_at, news)
            if step % self.yield_every == 0:
                await asyncio.sleep(0)

        logger.info(
            f"Simulation done: {len(self.portfolio.trades)} trades, "
            f"{len(self._result.accepted_signals)} accepted, "
            f"{self._result.rejected_count} rejected"
        )
        return self._result

    async def _precompute_indicators(
        self, timeline: list[tuple[datetime, dict[str, PriceBar]]]
    ) -> None:
        """Indicator snapshots for each symbol's full history, computed once.

        The per-symbol series follow the timeline, so snapshot ``i`` lines up
        with the history after ``i + 1`` bars of that symbol.
        """
        series: dict[str, list[PriceBar]] = defaultdict(list)
        for _, bars_at in timeline:
            for symbol, bar in bars_at.items():
                series[symbol].append(bar)

        for symbol in sorted(series):
            try:
                snapshots = self.strategy.indicator_snapshots(series[symbol])
            except Exception as e:
                self._result.failed_symbols.add(symbol)
                logger.error(
                    f"Indicators failed for {symbol}, excluding it from the run: {e}",
                    exc_info=True,
                )
                continue
            if snapshots is not None:
                self._snapshots[symbol] = snapshots
            await asyncio.sleep(0)

    def _snapshot_at(self, symbol: str) -> IndicatorSnapshot | None:
        snapshots = self._snapshots.get(symbol)
        index = len(self._history[symbol]) - 1
        if snapshots is None or index >= len(snapshots):
            return None
        return snapshots[index]

    def process_timestamp(
        self,
        timestamp: datetime,
        bars_at: Mapping[str, PriceBar],
        news: Sequence[NewsItem] = (),
    ) -> None:
        """Steps 1-4 for a single timestamp."""
        for symbol in sorted(bars_at):
            bar = bars_at[symbol]
            self._history[symbol].append(bar)
            self._last_prices[symbol] = bar.close
            self._result.bars_processed += 1

            if symbol in self._result.failed_symbols:
                continue
            try:
                self._process_symbol(symbol, bar, news, timestamp)
            except SimulationInvariantError:
                raise
            except Exception as e:
                self._result.failed_symbols.add(symbol)
                logger.error(
                    f"Symbol {symbol} failed at {timestamp.isoformat()}, "
                    f"excluding it from the rest of the run: {e}",
                    exc_info=True,
                )

        self.portfolio.record_value(timestamp, self._last_prices)

    def _process_symbol(
        self,
        symbol: str,
        bar: PriceBar,
        news: Sequence[NewsItem],
        timestamp: datetime,
    ) -> None:
        candidates = self.strategy.generate(
            symbol,
            self._history[symbol],
            news_for_symbol(news, symbol, timestamp),
            timestamp,
            snapshot=self._snapshot_at(symbol),
        )
        for signal in candidates:
            recent = self._prune_recent(symbol, timestamp)
            decision = self.risk_gate.validate_signal(
                signal, self.portfolio, recent, now=timestamp
            )
            if not decision.accepted:
                self._result.rejected_count += 1
                logger.info(
                    f"Signal rejected: {signal.symbol} {signal.signal_type.value} "
                    f"at {timestamp.isoformat()} ({decision.reason})"
                )
                continue

            self._recent[symbol].append(signal)
            self._result.accepted_signals.append(signal)
            self.execute(signal, bar.close, timestamp)

    def execute(
        self, signal: Signal, price: Decimal, timestamp: datetime
    ) -> Trade | None:
        """Apply an accepted signal to the ledger."""
        if signal.signal_type == SignalType.BUY:
            trade = self.portfolio.buy(
                signal.symbol,
                price,
                signal.strength,
                timestamp,
                self.fee,
                buy_fraction=self.buy_fraction,
                signal_type=SignalType.BUY,
            )
        elif signal.signal_type == SignalType.SELL:
            trade = self.portfolio.sell(signal.symbol, price, timestamp, self.fee)
        else:
            return None

        if trade is not None:
            logger.debug(
                f"{trade.action.value} {trade.quantity:.4f} {trade.symbol} "
                f"@ {trade.price} (cash {self.portfolio.cash:.2f})"
            )
        return trade

    def _prune_recent(self, symbol: str, now: datetime) -> list[Signal]:
        window = self.risk_gate.config.duplicate_window
        kept = [s for s in self._recent[symbol] if now - s.generated_at < window]
        self._recent[symbol] = kept
        return kept

    @property
    def last_prices(self) -> dict[str, Decimal]:
        return dict(self._last_prices)

