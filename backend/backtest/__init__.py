"""Strategy backtesting system.

Fully independent of app/; only depends on core/ for business logic.

Storage:
- Bars: CSV files per symbol, or PostgreSQL via asyncpg
- News: JSON-lines file, or PostgreSQL
- Results: JSON files per run, or PostgreSQL with run_id tracking

Usage:
    python -m backtest --symbols AAPL,MSFT --start 2024-01-01 --end 2024-06-30
"""

from backtest.runner import BacktestRunner, run_backtest, run_backtests
from backtest.simulator import PortfolioSimulator
from backtest.stats import BacktestResult, PerformanceAnalyzer, PerformanceMetrics

__all__ = [
    "BacktestRunner",
    "run_backtest",
    "run_backtests",
    "PortfolioSimulator",
    "BacktestResult",
    "PerformanceAnalyzer",
    "PerformanceMetrics",
]
