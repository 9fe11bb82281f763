"""Periodic signal generation that never overlaps its previous run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from core.models import Signal, StrategyType

from app.services.signal_service import SignalService

logger = logging.getLogger(__name__)

# Technical strategies only; newsSentiment needs a news provider on the service
DEFAULT_STRATEGIES = (
    StrategyType.RSI_MEAN_REVERSION,
    StrategyType.MOVING_AVERAGE_CROSSOVER,
)


@dataclass
class JobRun:
    started_at: datetime
    signals: list[Signal] = field(default_factory=list)
    failed_strategies: list[str] = field(default_factory=list)


class SignalGenerationJob:
    """Run every strategy over the symbol list; skip a tick while one is running.

    Bars are fetched once per tick and shared by all strategies.
    """

    def __init__(
        self,
        service: SignalService,
        symbols: Sequence[str],
        strategies: Sequence[StrategyType] = DEFAULT_STRATEGIES,
    ):
        self.service = service
        self.symbols = list(symbols)
        self.strategies = list(strategies)
        if service.news is None and StrategyType.NEWS_SENTIMENT in self.strategies:
            logger.warning("No news provider configured, dropping newsSentiment")
            self.strategies.remove(StrategyType.NEWS_SENTIMENT)
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()
        self.skipped_runs = 0

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> JobRun | None:
        """One pass over all strategies. None when the previous pass is still running."""
        if self._lock.locked():
            self.skipped_runs += 1
            logger.warning("Previous signal generation still running, skipping this run")
            return None

        async with self._lock:
            run = JobRun(started_at=datetime.now(timezone.utc))
            logger.info("Starting signal generation job")
            bars = await self.service.load_bars(self.symbols, run.started_at)
            for strategy in self.strategies:
                try:
                    signals = await self.service.generate_signals(
                        self.symbols,
                        strategy,
                        now=run.started_at,
                        bars_by_symbol=bars,
                    )
                    run.signals.extend(signals)
                except Exception:
                    run.failed_strategies.append(strategy.value)
                    logger.error(
                        f"Signal generation failed for {strategy.value}", exc_info=True
                    )
            logger.info(f"Signal generation completed: {len(run.signals)} signals")
            return run

    async def run_forever(self, interval: float) -> None:
        """Fire ``run_once`` every ``interval`` seconds until ``stop`` is called.

        Ticks are scheduled as tasks so a slow run does not delay the clock;
        overlapping ticks are skipped by ``run_once``.
        """
        tasks: set[asyncio.Task] = set()
        self._stopped.clear()
        logger.info(f"Signal generation job started (every {interval:.0f}s)")
        try:
            while not self._stopped.is_set():
                task = asyncio.create_task(self.run_once())
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Signal generation job stopped")

    def stop(self) -> None:
        self._stopped.set()
