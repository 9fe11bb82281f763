"""Tests for the live signal service and the periodic generation job."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.errors import BreakerOpenError, ValidationError
from core.models import (
    NewsItem,
    Portfolio,
    Position,
    PriceBar,
    Signal,
    SignalSource,
    SignalType,
    StrategyType,
)
from app.services.signal_job import SignalGenerationJob
from app.services.signal_service import InMemorySignalRepository, SignalService

T0 = datetime(2024, 1, 2, 14, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)
NOW = T0 + 14 * HOUR


def _make_bars(closes, symbol) -> list[PriceBar]:
    return [
        PriceBar(
            symbol=symbol,
            timestamp=T0 + i * HOUR,
            open=Decimal(str(c)),
            high=Decimal(str(c)),
            low=Decimal(str(c)),
            close=Decimal(str(c)),
            volume=1000,
        )
        for i, c in enumerate(closes)
    ]


RISING = [100 + i for i in range(15)]
FALLING = [100 - i for i in range(15)]


class FakeBars:
    """Bar provider keyed by symbol; raises configured errors."""

    def __init__(self, bars, errors=None):
        self.bars = bars
        self.errors = errors or {}
        self.requests = []

    async def get_range(self, symbol, start, end):
        self.requests.append((symbol, start, end))
        if symbol in self.errors:
            raise self.errors[symbol]
        return [b for b in self.bars.get(symbol, []) if start <= b.timestamp <= end]


def _make_service(bars=None, **kwargs) -> tuple[SignalService, InMemorySignalRepository]:
    repo = InMemorySignalRepository()
    provider = FakeBars(bars or {
        "AAPL": _make_bars(FALLING, "AAPL"),
        "MSFT": _make_bars(RISING, "MSFT"),
    })
    return SignalService(provider, repo, **kwargs), repo


@pytest.mark.asyncio
class TestGenerateSignals:

    async def test_accepted_signals_saved(self):
        service, repo = _make_service()
        signals = await service.generate_signals(["aapl", "msft"], "rsiMeanReversion", now=NOW)

        assert [(s.symbol, s.signal_type) for s in signals] == [
            ("AAPL", SignalType.BUY),
            ("MSFT", SignalType.SELL),
        ]
        assert repo.signals == signals

    async def test_repeat_within_window_rejected(self):
        service, repo = _make_service()
        await service.generate_signals(["AAPL"], StrategyType.RSI_MEAN_REVERSION, now=NOW)
        again = await service.generate_signals(
            ["AAPL"], StrategyType.RSI_MEAN_REVERSION, now=NOW + HOUR
        )

        assert again == []
        assert len(repo.signals) == 1

    async def test_conflicting_position_rejected(self):
        portfolio = Portfolio(
            cash=Decimal("100000"),
            positions={
                "MSFT": Position(
                    symbol="MSFT",
                    quantity=Decimal("10"),
                    entry_price=Decimal("100"),
                    entry_date=T0,
                    signal_type=SignalType.BUY,
                )
            },
        )
        service, repo = _make_service(portfolio_provider=AsyncMock(return_value=portfolio))
        signals = await service.generate_signals(["AAPL", "MSFT"], "rsiMeanReversion", now=NOW)

        assert [s.symbol for s in signals] == ["AAPL"]

    async def test_unavailable_symbol_skipped(self):
        provider = FakeBars(
            {"AAPL": _make_bars(FALLING, "AAPL")},
            errors={"MSFT": BreakerOpenError("alpha_vantage"), "TSLA": TimeoutError()},
        )
        service = SignalService(provider, InMemorySignalRepository())

        signals = await service.generate_signals(["AAPL", "MSFT", "TSLA"], "rsiMeanReversion", now=NOW)
        assert [s.symbol for s in signals] == ["AAPL"]

    async def test_history_window(self):
        service, _ = _make_service(history=timedelta(days=2))
        await service.generate_signals(["AAPL"], "rsiMeanReversion", now=NOW)
        assert service.bars.requests == [("AAPL", NOW - timedelta(days=2), NOW)]

    async def test_news_strategy_reads_news_provider(self):
        news = MagicMock()
        news.get_range = AsyncMock(return_value=[
            NewsItem.from_article("MSFT cloud revenue surges", "", NOW - HOUR, 0.9),
        ])
        service, _ = _make_service(news=news)

        signals = await service.generate_signals(["MSFT"], "newsSentiment", now=NOW)

        assert [s.source for s in signals] == [SignalSource.NEWS_SENTIMENT]
        news.get_range.assert_awaited_once_with(NOW - timedelta(hours=24), NOW)

    async def test_news_failure_ignored(self):
        news = MagicMock()
        news.get_range = AsyncMock(side_effect=ConnectionError("down"))
        service, _ = _make_service(news=news)
        assert await service.generate_signals(["MSFT"], "newsSentiment", now=NOW) == []

    async def test_unknown_strategy(self):
        service, _ = _make_service()
        with pytest.raises(KeyError):
            await service.generate_signals(["AAPL"], "momentum", now=NOW)

    async def test_invalid_parameters(self):
        service, _ = _make_service()
        with pytest.raises(ValidationError):
            await service.generate_signals(["AAPL"], "rsiMeanReversion", {"period": 3}, now=NOW)


class TestTradePlan:

    def _make_signal(self, signal_type) -> Signal:
        return Signal(
            symbol="AAPL",
            signal_type=signal_type,
            strength=0.8,
            confidence=0.7,
            source=SignalSource.TECHNICAL_ANALYSIS,
            generated_at=NOW,
            expiration=NOW + 4 * HOUR,
            explanation="Technical indicator: OVERSOLD",
        )

    def test_long_plan(self):
        service, _ = _make_service()
        plan = service.trade_plan(self._make_signal(SignalType.BUY), Decimal("100000"), Decimal("100"))

        assert plan.quantity == Decimal("100")
        assert plan.entry_price == Decimal("100")
        assert plan.stop_loss == Decimal("97")
        assert plan.take_profit == Decimal("106")

    def test_neutral_has_no_plan(self):
        service, _ = _make_service()
        assert service.trade_plan(
            self._make_signal(SignalType.NEUTRAL), Decimal("100000"), Decimal("100")
        ) is None

    def test_zero_balance_has_no_plan(self):
        service, _ = _make_service()
        assert service.trade_plan(
            self._make_signal(SignalType.BUY), Decimal("0"), Decimal("100")
        ) is None


# Job runs stamp the wall clock; reach back far enough to see the fixture bars
LONG_HISTORY = timedelta(days=365 * 100)


def _make_job_service(generate=None) -> MagicMock:
    service = MagicMock()
    service.news = None
    service.load_bars = AsyncMock(return_value={})
    service.generate_signals = AsyncMock(side_effect=generate, return_value=[])
    return service


@pytest.mark.asyncio
class TestSignalGenerationJob:

    async def test_runs_every_strategy(self):
        service = _make_job_service()
        job = SignalGenerationJob(service, ["AAPL"])

        run = await job.run_once()

        assert run is not None
        assert [c.args[1] for c in service.generate_signals.await_args_list] == [
            StrategyType.RSI_MEAN_REVERSION,
            StrategyType.MOVING_AVERAGE_CROSSOVER,
        ]

    async def test_bars_fetched_once_per_run(self):
        service, _ = _make_service(history=LONG_HISTORY)
        job = SignalGenerationJob(service, ["AAPL", "MSFT"])

        run = await job.run_once()

        # One request per symbol, shared by both strategies
        assert sorted(r[0] for r in service.bars.requests) == ["AAPL", "MSFT"]
        assert {s.symbol for s in run.signals} == {"AAPL", "MSFT"}

    async def test_news_strategy_dropped_without_provider(self):
        service = _make_job_service()
        job = SignalGenerationJob(
            service, ["AAPL"], strategies=[StrategyType.NEWS_SENTIMENT, StrategyType.RSI_MEAN_REVERSION]
        )
        assert job.strategies == [StrategyType.RSI_MEAN_REVERSION]

    async def test_news_strategy_kept_with_provider(self):
        service = _make_job_service()
        service.news = MagicMock()
        job = SignalGenerationJob(
            service, ["AAPL"], strategies=[StrategyType.NEWS_SENTIMENT, StrategyType.RSI_MEAN_REVERSION]
        )
        assert job.strategies == [StrategyType.NEWS_SENTIMENT, StrategyType.RSI_MEAN_REVERSION]

    async def test_failing_strategy_isolated(self):
        service, _ = _make_service(history=LONG_HISTORY)
        job = SignalGenerationJob(service, ["AAPL", "MSFT"])
        original = service.generate_signals

        async def generate(symbols, strategy, now=None, bars_by_symbol=None):
            if strategy == StrategyType.MOVING_AVERAGE_CROSSOVER:
                raise ConnectionError("repository down")
            return await original(symbols, strategy, now=NOW, bars_by_symbol=bars_by_symbol)

        service.generate_signals = generate
        run = await job.run_once()

        assert run.failed_strategies == ["movingAverageCrossover"]
        assert {s.symbol for s in run.signals} == {"AAPL", "MSFT"}

    async def test_overlapping_run_skipped(self):
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow(symbols, strategy, now=None, bars_by_symbol=None):
            started.set()
            await release.wait()
            return []

        service = _make_job_service(generate=slow)
        job = SignalGenerationJob(service, ["AAPL"], strategies=[StrategyType.RSI_MEAN_REVERSION])

        first = asyncio.create_task(job.run_once())
        await started.wait()
        assert job.running

        assert await job.run_once() is None
        assert job.skipped_runs == 1

        release.set()
        assert await first is not None
        assert not job.running
        assert service.generate_signals.await_count == 1

    async def test_run_forever_stops(self):
        service = _make_job_service()
        job = SignalGenerationJob(service, ["AAPL"], strategies=[StrategyType.RSI_MEAN_REVERSION])

        task = asyncio.create_task(job.run_forever(interval=0.01))
        await asyncio.sleep(0.05)
        job.stop()
        await asyncio.wait_for(task, timeout=1)

        assert service.generate_signals.await_count >= 1
        assert not job.running


@pytest.mark.asyncio
class TestPreloadedBars:

    async def test_preloaded_bars_skip_fetch(self):
        service, _ = _make_service()
        bars = await service.load_bars(["AAPL", "MSFT"], NOW)
        service.bars.requests.clear()

        signals = await service.generate_signals(
            ["AAPL"], "rsiMeanReversion", now=NOW, bars_by_symbol=bars
        )

        assert service.bars.requests == []
        assert [s.symbol for s in signals] == ["AAPL"]
