"""BacktestRunner: orchestrates the full backtest pipeline.

Completely independent of app/. Uses:
- backtest/storage for price/news sources and result persistence
- backtest/simulator for the bar-by-bar ledger replay
- core/ for pure business logic

Each run gets a unique run_id for tracking and comparison, and an explicit
deadline after which it is cancelled.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from core.errors import BacktestTimeoutError, BreakerOpenError
from core.models import BacktestConfig, NewsItem, PriceBar, validate_backtest_config
from core.risk import RiskGate
from core.signal_generator import build_strategy

from backtest.config import BacktestSettings, get_backtest_settings
from backtest.simulator import PortfolioSimulator
from backtest.stats import BacktestResult, build_result
from backtest.storage import (
    InMemoryResultRepository,
    NewsSource,
    PriceSource,
    ResultRepository,
)

logger = logging.getLogger(__name__)


def generate_run_id(config: BacktestConfig) -> str:
    """Generate a unique run ID from config + timestamp."""
    key = (
        f"{config.strategy_name}"
        f":{config.strategy_type.value}"
        f":{config.start_date.isoformat()}"
        f":{config.end_date.isoformat()}"
        f":{','.join(sorted(config.symbols))}"
        f":{config.model_dump_json()}"
        f":{datetime.now(timezone.utc).isoformat()}"
    )
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class BacktestRunner:
    """Run one backtest: fetch, simulate, analyze, persist."""

    def __init__(
        self,
        config: BacktestConfig | Mapping[str, Any],
        price_source: PriceSource,
        news_source: NewsSource | None = None,
        result_repo: ResultRepository | None = None,
        settings: BacktestSettings | None = None,
    ):
        # Fails fast with ValidationError before anything is recorded
        self.config = validate_backtest_config(config)
        self.settings = settings or get_backtest_settings()
        self.strategy = build_strategy(self.config.strategy_type, self.config.parameters)
        self._price_source = price_source
        self._news_source = news_source
        self._result_repo = result_repo or InMemoryResultRepository()
        self.run_id = generate_run_id(self.config)
        self.failed_symbols: set[str] = set()

    async def run(self) -> BacktestResult:
        """
        Execute the full backtest pipeline under the run deadline.

        Raises:
            BacktestTimeoutError: deadline exceeded; the run is marked failed
            SimulationInvariantError: ledger bug; the run is marked failed
        """
        cfg = self.config
        logger.info(
            f"Starting backtest run={self.run_id}: {cfg.strategy_type.value} "
            f"{cfg.symbols} {cfg.start_date:%Y-%m-%d} → {cfg.end_date:%Y-%m-%d}"
        )
        await self._result_repo.create_run(self.run_id, cfg)

        timeout = self.settings.run_timeout_seconds
        try:
            result = await asyncio.wait_for(self._execute(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await self._result_repo.fail_run(self.run_id, f"timed out after {timeout}s")
            raise BacktestTimeoutError(
                f"Backtest run={self.run_id} exceeded {timeout}s deadline"
            ) from e
        except Exception as e:
            await self._result_repo.fail_run(self.run_id, str(e))
            raise

        await self._result_repo.complete_run(self.run_id, result)
        perf = result.performance
        logger.info(
            f"Backtest run={self.run_id} completed in {result.execution_time:.1f}s: "
            f"{len(result.trades)} trades, return {perf.total_return:.2%}, "
            f"max drawdown {perf.max_drawdown:.2%}"
        )
        return result

    async def _execute(self) -> BacktestResult:
        start_time = time.time()

        bars_by_symbol = await self._fetch_bars()
        news = await self._fetch_news()

        simulator = PortfolioSimulator(
            strategy=self.strategy,
            initial_capital=self.config.initial_capital,
            risk_gate=RiskGate(self.settings.risk_config()),
            fee=self.settings.transaction_cost,
            buy_fraction=self.settings.buy_fraction,
            yield_every=self.settings.yield_every_bars,
        )
        sim = await simulator.run(bars_by_symbol, news)
        self.failed_symbols |= sim.failed_symbols

        return build_result(
            config=self.config,
            initial_capital=sim.initial_capital,
            equity_curve=sim.portfolio.history,
            trades=sim.portfolio.trades,
            execution_time=time.time() - start_time,
            failed_symbols=self.failed_symbols,
        )

    async def _fetch_bars(self) -> dict[str, list[PriceBar]]:
        """Load bars per symbol; a failing symbol is logged and left out."""
        cfg = self.config
        bars_by_symbol: dict[str, list[PriceBar]] = {}
        for symbol in cfg.symbols:
            try:
                bars = await self._price_source.get_range(
                    symbol, cfg.start_date, cfg.end_date
                )
            except BreakerOpenError as e:
                self.failed_symbols.add(symbol)
                logger.warning(f"[{symbol}] Skipped, upstream unavailable: {e}")
                continue
            except Exception:
                self.failed_symbols.add(symbol)
                logger.error(f"[{symbol}] Failed to load bars", exc_info=True)
                continue

            if not bars:
                logger.warning(f"[{symbol}] No bars found in range")
                continue
            logger.info(f"[{symbol}] Loaded {len(bars):,} bars")
            bars_by_symbol[symbol] = bars

        if not bars_by_symbol:
            logger.warning(f"Backtest run={self.run_id} has no price data")
        return bars_by_symbol

    async def _fetch_news(self) -> list[NewsItem]:
        if self._news_source is None:
            return []
        try:
            news = await self._news_source.get_range(
                self.config.start_date - self.strategy.news_lookback,
                self.config.end_date,
            )
        except Exception:
            logger.error("Failed to load news, continuing without it", exc_info=True)
            return []
        logger.info(f"Loaded {len(news):,} news items")
        return news


async def run_backtest(
    config: BacktestConfig | Mapping[str, Any],
    price_source: PriceSource,
    news_source: NewsSource | None = None,
    result_repo: ResultRepository | None = None,
    settings: BacktestSettings | None = None,
) -> BacktestResult:
    """Validate ``config`` and run a single backtest."""
    runner = BacktestRunner(config, price_source, news_source, result_repo, settings)
    return await runner.run()


async def run_backtests(
    configs: Iterable[BacktestConfig | Mapping[str, Any]],
    price_source: PriceSource,
    news_source: NewsSource | None = None,
    result_repo: ResultRepository | None = None,
    settings: BacktestSettings | None = None,
) -> list[BacktestResult | BaseException]:
    """Run several backtests concurrently, at most ``max_concurrent_runs`` at once.

    Each run owns its own portfolio; a failed run yields its exception in
    the returned list instead of cancelling the others.
    """
    settings = settings or get_backtest_settings()
    semaphore = asyncio.Semaphore(settings.max_concurrent_runs)

    async def _guarded(config):
        async with semaphore:
            return await run_backtest(
                config, price_source, news_source, result_repo, settings
            )

    return await asyncio.gather(
        *(_guarded(c) for c in configs), return_exceptions=True
    )
