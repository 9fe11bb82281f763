"""Live signal service: generate candidates, gate them, store the accepted ones.

Bars and news are pulled through injected providers, so the service never
talks to HTTP or a database directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol

from core.errors import BreakerOpenError, RiskRejected
from core.models import NewsItem, PriceBar, Signal, SignalType, StrategyType
from core.risk import PortfolioState, RiskGate
from core.signal_generator import SignalGenerator, build_strategy

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = timedelta(days=5)


class BarProvider(Protocol):
    async def get_range(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceBar]: ...


class NewsProvider(Protocol):
    async def get_range(self, start: datetime, end: datetime) -> list[NewsItem]: ...


class SignalRepository(Protocol):
    """Persistence for accepted signals."""

    async def save(self, signal: Signal) -> None: ...

    async def recent(self, since: datetime) -> list[Signal]: ...


PortfolioProvider = Callable[[], Awaitable[PortfolioState | None]]


class InMemorySignalRepository:
    def __init__(self) -> None:
        self.signals: list[Signal] = []

    async def save(self, signal: Signal) -> None:
        self.signals.append(signal)

    async def recent(self, since: datetime) -> list[Signal]:
        return [s for s in self.signals if s.generated_at >= since]


@dataclass(frozen=True)
class TradePlan:
    """Suggested order for an accepted signal."""

    signal: Signal
    quantity: Decimal
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal


class SignalService:
    """generate_signals(symbols, strategy_type, parameters) for live use."""

    def __init__(
        self,
        bars: BarProvider,
        repository: SignalRepository,
        risk_gate: RiskGate | None = None,
        news: NewsProvider | None = None,
        portfolio_provider: PortfolioProvider | None = None,
        history: timedelta = DEFAULT_HISTORY,
    ):
        self.bars = bars
        self.news = news
        self.repository = repository
        self.risk_gate = risk_gate or RiskGate()
        self.portfolio_provider = portfolio_provider
        self.history = history

    async def generate_signals(
        self,
        symbols: Iterable[str],
        strategy_type: StrategyType | str,
        parameters: Mapping[str, Any] | None = None,
        now: datetime | None = None,
        bars_by_symbol: Mapping[str, list[PriceBar]] | None = None,
    ) -> list[Signal]:
        """
        Generate, risk-check and store signals for ``symbols``.

        ``bars_by_symbol`` reuses bars already loaded with ``load_bars``;
        when None the bars are fetched here.

        Raises:
            KeyError: unknown strategy type
            ValidationError: invalid strategy parameters
        """
        if now is None:
            now = datetime.now(timezone.utc)

        strategy = build_strategy(strategy_type, parameters)
        if bars_by_symbol is None:
            bars_by_symbol = await self.load_bars(symbols, now)
        else:
            wanted = {s.strip().upper() for s in symbols}
            bars_by_symbol = {s: b for s, b in bars_by_symbol.items() if s in wanted}
        news = await self._load_news(now, strategy.news_lookback)

        generator = SignalGenerator(strategy)
        candidates = generator.generate(bars_by_symbol, news, now)
        accepted = await self._gate(candidates, now)

        logger.info(
            f"{strategy.name}: {len(candidates)} candidates, {len(accepted)} accepted "
            f"across {len(bars_by_symbol)} symbols"
        )
        return accepted

    async def load_bars(
        self, symbols: Iterable[str], now: datetime
    ) -> dict[str, list[PriceBar]]:
        """History window per symbol; unavailable symbols are logged and left out."""
        bars_by_symbol: dict[str, list[PriceBar]] = {}
        for symbol in symbols:
            symbol = symbol.strip().upper()
            try:
                bars = await self.bars.get_range(symbol, now - self.history, now)
            except BreakerOpenError as e:
                logger.warning(f"Skipping {symbol}: {e}")
                continue
            except Exception:
                logger.error(f"Failed to load bars for {symbol}", exc_info=True)
                continue
            if bars:
                bars_by_symbol[symbol] = bars
        return bars_by_symbol

    async def _load_news(self, now: datetime, lookback: timedelta) -> list[NewsItem]:
        if self.news is None:
            return []
        try:
            return await self.news.get_range(now - lookback, now)
        except Exception:
            logger.error("Failed to load news, continuing without it", exc_info=True)
            return []

    async def _gate(self, candidates: list[Signal], now: datetime) -> list[Signal]:
        portfolio = None
        if self.portfolio_provider is not None:
            portfolio = await self.portfolio_provider()

        window = self.risk_gate.config.duplicate_window
        recent = await self.repository.recent(now - window)

        accepted: list[Signal] = []
        for signal in candidates:
            try:
                self.risk_gate.enforce(signal, portfolio, [*recent, *accepted], now)
            except RiskRejected as e:
                logger.info(f"{signal.symbol} {signal.signal_type.value}: {e.reason}")
                continue
            await self.repository.save(signal)
            accepted.append(signal)
        return accepted

    def trade_plan(
        self, signal: Signal, balance: Decimal, price: Decimal
    ) -> TradePlan | None:
        """Size and bracket an accepted signal. None for NEUTRAL or zero size."""
        if signal.signal_type == SignalType.NEUTRAL:
            return None
        quantity = self.risk_gate.position_size(balance, price)
        if quantity <= 0:
            return None
        stop_loss, take_profit = self.risk_gate.exit_levels(price, signal.signal_type)
        return TradePlan(
            signal=signal,
            quantity=quantity,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
