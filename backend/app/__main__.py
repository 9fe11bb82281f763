"""Run the live signal generation job.

Usage:
    python -m app                      # loop every SIGNAL_JOB_INTERVAL_SECONDS
    python -m app --once               # single pass, print accepted signals
    python -m app --symbols AAPL,TSLA --strategy rsiMeanReversion --once
"""

import argparse
import asyncio
import logging
import signal
import sys

from core.circuit_breaker import CircuitBreaker
from core.models import RiskConfig, StrategyType
from core.risk import RiskGate

from app.clients.market_data import MarketDataClient
from app.config import Settings, get_settings
from app.services.data_ingestion import DataIngestionService
from app.services.signal_job import DEFAULT_STRATEGIES, SignalGenerationJob
from app.services.signal_service import InMemorySignalRepository, SignalService


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live signal generation")
    parser.add_argument(
        "--symbols",
        type=str,
        default=None,
        help="Comma-separated symbols (default: DEFAULT_SYMBOLS setting)",
    )
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in StrategyType],
        action="append",
        default=None,
        help="Strategy to run (repeatable, default: all)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def build_job(
    settings: Settings,
    symbols: list[str],
    strategies: list[StrategyType],
) -> tuple[SignalGenerationJob, MarketDataClient]:
    client = MarketDataClient(
        api_key=settings.alpha_vantage_api_key,
        base_url=settings.market_data_base_url,
        interval=settings.market_data_interval,
        timeout=settings.request_timeout_seconds,
    )
    breaker = CircuitBreaker(
        failure_threshold=settings.breaker_failure_threshold,
        reset_timeout=settings.breaker_reset_timeout,
    )
    ingestion = DataIngestionService(client, breaker, settings=settings)
    risk_gate = RiskGate(
        RiskConfig(
            max_position_fraction=settings.max_position_fraction,
            max_daily_loss_fraction=settings.max_daily_loss_fraction,
        )
    )
    service = SignalService(
        bars=ingestion,
        repository=InMemorySignalRepository(),
        risk_gate=risk_gate,
    )
    return SignalGenerationJob(service, symbols, strategies), client


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    settings = get_settings()
    symbols = (
        [s.strip().upper() for s in args.symbols.split(",") if s.strip()]
        if args.symbols
        else settings.default_symbols
    )
    strategies = (
        [StrategyType(s) for s in args.strategy] if args.strategy else list(DEFAULT_STRATEGIES)
    )
    job, client = build_job(settings, symbols, strategies)

    try:
        if args.once:
            run = await job.run_once()
            for s in run.signals if run else []:
                print(
                    f"{s.generated_at:%Y-%m-%d %H:%M} {s.symbol:<6} {s.signal_type.value:<7} "
                    f"strength={s.strength:.2f} confidence={s.confidence:.2f}  {s.explanation}"
                )
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, job.stop)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass
        await job.run_forever(settings.signal_job_interval_seconds)
        return 0
    finally:
        await client.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
