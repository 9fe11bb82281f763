"""CLI entry point for the backtesting system.

Completely independent of app/. Reads bars from ``<data-dir>/<SYMBOL>.csv``
(and optional news from a JSON-lines file), or from PostgreSQL when
BACKTEST_DATABASE_URL is set.

Usage:
    python -m backtest --symbols AAPL,MSFT --start 2024-01-01 --end 2024-06-30
    python -m backtest --strategy movingAverageCrossover --param fastPeriod=5 ...
    python -m backtest --strategy newsSentiment --news data/news.jsonl ...
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from core.errors import BacktestTimeoutError, ValidationError
from core.models import StrategyType

from backtest.config import BacktestSettings, get_backtest_settings
from backtest.report import ReportFormatter
from backtest.runner import BacktestRunner
from backtest.storage import (
    BacktestDatabase,
    CsvPriceSource,
    JsonFileResultRepository,
    JsonNewsSource,
    PostgresNewsSource,
    PostgresPriceSource,
    PostgresResultRepository,
)

DEFAULT_SYMBOLS = "AAPL,MSFT,GOOGL"
DEFAULT_STRATEGY = StrategyType.RSI_MEAN_REVERSION.value


def parse_date(date_str: str) -> datetime:
    """Parse YYYY-MM-DD to timezone-aware datetime."""
    try:
        dt = datetime.strptime(date_str, "%Y-%m-%d")
        return dt.replace(tzinfo=timezone.utc)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {date_str} (expected YYYY-MM-DD)"
        )


def parse_param(raw: str) -> tuple[str, object]:
    """Parse KEY=VALUE; VALUE is decoded as JSON when possible."""
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"Invalid parameter: {raw} (expected KEY=VALUE)")
    key, value = raw.split("=", 1)
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backtest a signal strategy over historical bars",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m backtest --start 2024-01-01 --end 2024-06-30
  python -m backtest --symbols AAPL --strategy movingAverageCrossover --start 2024-01-01 --end 2024-12-31
  python -m backtest --strategy newsSentiment --news data/news.jsonl --start 2024-03-01 --end 2024-03-31
        """,
    )
    parser.add_argument(
        "--symbols",
        type=str,
        default=DEFAULT_SYMBOLS,
        help=f"Comma-separated symbols (default: {DEFAULT_SYMBOLS})",
    )
    parser.add_argument("--start", type=parse_date, required=True, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, required=True, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in StrategyType],
        default=DEFAULT_STRATEGY,
        help=f"Strategy type (default: {DEFAULT_STRATEGY})",
    )
    parser.add_argument(
        "--name",
        type=str,
        default=None,
        help="Strategy name recorded with the result (default: strategy type)",
    )
    parser.add_argument(
        "--param",
        type=parse_param,
        action="append",
        default=[],
        help="Strategy parameter KEY=VALUE (repeatable)",
    )
    parser.add_argument(
        "--capital",
        type=Decimal,
        default=Decimal("100000"),
        help="Initial capital (default: 100000)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory with <SYMBOL>.csv price files (default: BACKTEST_DATA_DIR)",
    )
    parser.add_argument(
        "--news",
        type=Path,
        default=None,
        help="JSON-lines news file with precomputed sentiment",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> dict:
    # End date should include the full day
    end_date = args.end.replace(hour=23, minute=59, second=59)
    return {
        "strategyName": args.name or args.strategy,
        "symbols": [s.strip() for s in args.symbols.split(",") if s.strip()],
        "startDate": args.start,
        "endDate": end_date,
        "initialCapital": args.capital,
        "strategyType": args.strategy,
        "parameters": dict(args.param),
    }


async def cmd_run_backtest(args: argparse.Namespace, settings: BacktestSettings) -> int:
    """Run a backtest. Returns the process exit code."""
    config = build_config(args)
    print(f"\nBacktest: {', '.join(config['symbols'])} ({args.strategy})")
    print(f"Period: {args.start:%Y-%m-%d} → {config['endDate']:%Y-%m-%d}")

    db: BacktestDatabase | None = None
    if settings.database_url:
        db = BacktestDatabase(settings.database_url)
        await db.init()
        price_source = PostgresPriceSource(db.pool)
        news_source = PostgresNewsSource(db.pool)
        result_repo = PostgresResultRepository(db.pool)
    else:
        price_source = CsvPriceSource(args.data_dir or settings.data_dir)
        news_source = JsonNewsSource(args.news) if args.news else None
        result_repo = JsonFileResultRepository(settings.results_dir)

    try:
        runner = BacktestRunner(
            config=config,
            price_source=price_source,
            news_source=news_source,
            result_repo=result_repo,
            settings=settings,
        )
        print(f"\nRunning backtest (run={runner.run_id})...")
        result = await runner.run()
    except (ValidationError, KeyError) as e:
        print(f"Error: {e}")
        return 2
    except BacktestTimeoutError as e:
        print(f"Error: {e}")
        return 1
    finally:
        if db is not None:
            await db.close()

    ReportFormatter.print_console(result)
    if args.output:
        ReportFormatter.save_json(result, args.output)
    return 0


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return await cmd_run_backtest(args, get_backtest_settings())


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
