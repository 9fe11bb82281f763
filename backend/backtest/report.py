"""Report formatting for backtest results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

import json
import math
from collections import Counter
from datetime import datetime
from decimal import Decimal

from core.models import TradeAction

from backtest.stats import BacktestResult


class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def _ratio(value: float) -> str:
    return "inf" if math.isinf(value) else f"{value:.2f}"


class ReportFormatter:
    """Format backtest results for display and export."""

    @staticmethod
    def print_console(result: BacktestResult) -> None:
        """Print formatted report to console."""
        cfg = result.strategy_config
        perf = result.performance

        print("\n" + "=" * 70)
        print(f"  BACKTEST RESULTS — {cfg.strategy_name} ({cfg.strategy_type.value})")
        print("=" * 70)
        print(f"  Period: {cfg.start_date:%Y-%m-%d} → {cfg.end_date:%Y-%m-%d}")
        print(f"  Symbols: {', '.join(cfg.symbols)}")
        if result.failed_symbols:
            print(f"  Failed symbols: {', '.join(result.failed_symbols)}")

        # Performance
        print("\n" + "-" * 70)
        print("  PERFORMANCE")
        print("-" * 70)
        print(f"  Initial capital:   {perf.initial_capital:,.2f}")
        print(f"  Final value:       {perf.final_value:,.2f}")
        print(f"  Total return:      {perf.total_return:+.2%}")
        print(f"  Annualized return: {perf.annualized_return:+.2%}")
        print(f"  Sharpe ratio:      {perf.sharpe_ratio:.2f}")
        print(f"  Volatility:        {perf.volatility:.2%}")
        print(f"  Max drawdown:      {perf.max_drawdown:.2%}")
        print(f"  Win rate:          {perf.win_rate:.1%}")
        print(f"  Profit factor:     {_ratio(perf.profit_factor)}")

        # By Symbol
        if result.trades:
            buys = Counter(t.symbol for t in result.trades if t.action == TradeAction.BUY)
            sells = Counter(t.symbol for t in result.trades if t.action == TradeAction.SELL)
            pnl: dict[str, Decimal] = {}
            for t in result.trades:
                if t.realized_pnl is not None:
                    pnl[t.symbol] = pnl.get(t.symbol, Decimal("0")) + t.realized_pnl

            print("\n" + "-" * 70)
            print("  BY SYMBOL")
            print("-" * 70)
            print(f"  {'Symbol':<12} {'Buys':>6} {'Sells':>6} {'Realized P&L':>16}")
            for symbol in sorted(set(buys) | set(sells)):
                realized = pnl.get(symbol, Decimal("0"))
                print(f"  {symbol:<12} {buys[symbol]:>6} {sells[symbol]:>6} {realized:>+16,.2f}")

        # Last trades
        if result.trades:
            print("\n" + "-" * 70)
            print("  TRADES (last 10)")
            print("-" * 70)
            print(f"  {'Time':<17} {'Symbol':<8} {'Action':<6} {'Qty':>12} {'Price':>10} {'Value':>12}")
            for t in result.trades[-10:]:
                print(
                    f"  {t.timestamp:%Y-%m-%d %H:%M} {t.symbol:<8} {t.action.value:<6} "
                    f"{t.quantity:>12.4f} {t.price:>10.2f} {t.value:>12.2f}"
                )

        print(f"\n  Executed in {result.execution_time:.2f}s at {result.executed_at:%Y-%m-%d %H:%M:%S}")
        print("=" * 70)

    @staticmethod
    def to_dict(result: BacktestResult) -> dict:
        """Convert results to a camelCase dict (Decimals kept for the encoder)."""
        return result.model_dump(by_alias=True)

    @staticmethod
    def save_json(result: BacktestResult, filepath: str) -> None:
        """Save results to JSON file."""
        data = ReportFormatter.to_dict(result)
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2, cls=DecimalEncoder)
        print(f"\nResults saved to {filepath}")
