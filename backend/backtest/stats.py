"""Performance statistics for a simulated portfolio.

All ratios are fractions (0.05 == 5%). Over the equity curve's simple
per-bar returns r_t:

  periods_per_year = len(r) / calendar years spanned (252 if span is zero)
  volatility       = std(r, ddof=1) * sqrt(periods_per_year)
  sharpe_ratio     = mean(r) / std(r, ddof=1) * sqrt(periods_per_year)
  annualized       = (1 + total_return) ** (1 / years) - 1
  max_drawdown     = max over t of (peak_t - value_t) / peak_t

Win rate and profit factor are computed over closed (SELL) trades using
their realized PnL.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.models import BacktestConfig, EquityPoint, Trade, TradeAction

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
SECONDS_PER_YEAR = 365.25 * 24 * 3600


class PerformanceMetrics(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    max_drawdown: float = Field(ge=0.0, le=1.0)
    volatility: float
    win_rate: float = Field(ge=0.0, le=1.0)
    profit_factor: float
    final_value: Decimal
    initial_capital: Decimal


class BacktestResult(BaseModel):
    """Terminal, immutable output of one backtest run."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    strategy_config: BacktestConfig
    performance: PerformanceMetrics
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    executed_at: datetime
    execution_time: float  # seconds
    failed_symbols: list[str] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """camelCase, JSON-safe dump."""
        return self.model_dump(mode="json", by_alias=True)


def max_drawdown(values: Sequence[Decimal | float]) -> float:
    """Largest peak-to-trough decline, single left-to-right pass."""
    peak: float | None = None
    worst = 0.0
    for raw in values:
        value = float(raw)
        if peak is None or value > peak:
            peak = value
        if peak > 0:
            worst = max(worst, (peak - value) / peak)
    return min(worst, 1.0)


def simple_returns(values: Sequence[Decimal | float]) -> np.ndarray:
    arr = np.asarray([float(v) for v in values], dtype=np.float64)
    if arr.size < 2:
        return np.empty(0, dtype=np.float64)
    prev = arr[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.where(prev > 0, (arr[1:] - prev) / prev, 0.0)
    return returns


def _years_spanned(curve: Sequence[EquityPoint]) -> float:
    if len(curve) < 2:
        return 0.0
    seconds = (curve[-1].timestamp - curve[0].timestamp).total_seconds()
    return max(seconds, 0.0) / SECONDS_PER_YEAR


class PerformanceAnalyzer:
    """Turn a ledger's trades and equity curve into PerformanceMetrics."""

    def analyze(
        self,
        initial_capital: Decimal,
        equity_curve: Sequence[EquityPoint],
        trades: Sequence[Trade],
    ) -> PerformanceMetrics:
        initial = Decimal(initial_capital)
        final = equity_curve[-1].value if equity_curve else initial
        total_return = float((final - initial) / initial) if initial > 0 else 0.0

        values = [p.value for p in equity_curve]
        returns = simple_returns(values)
        years = _years_spanned(equity_curve)
        periods_per_year = (
            returns.size / years if years > 0 and returns.size > 0 else TRADING_DAYS_PER_YEAR
        )

        return PerformanceMetrics(
            total_return=total_return,
            annualized_return=self._annualized(total_return, years),
            sharpe_ratio=self._sharpe(returns, periods_per_year),
            max_drawdown=max_drawdown(values),
            volatility=self._volatility(returns, periods_per_year),
            win_rate=self._win_rate(trades),
            profit_factor=self._profit_factor(trades),
            final_value=final,
            initial_capital=initial,
        )

    @staticmethod
    def _annualized(total_return: float, years: float) -> float:
        if years <= 0:
            return total_return
        growth = 1.0 + total_return
        if growth <= 0:
            return -1.0
        return growth ** (1.0 / years) - 1.0

    @staticmethod
    def _volatility(returns: np.ndarray, periods_per_year: float) -> float:
        if returns.size < 2:
            return 0.0
        return float(np.std(returns, ddof=1) * math.sqrt(periods_per_year))

    @staticmethod
    def _sharpe(returns: np.ndarray, periods_per_year: float) -> float:
        if returns.size < 2:
            return 0.0
        std = float(np.std(returns, ddof=1))
        if std == 0 or math.isnan(std):
            return 0.0
        return float(np.mean(returns)) / std * math.sqrt(periods_per_year)

    @staticmethod
    def _closed(trades: Sequence[Trade]) -> list[Decimal]:
        return [
            t.realized_pnl
            for t in trades
            if t.action == TradeAction.SELL and t.realized_pnl is not None
        ]

    def _win_rate(self, trades: Sequence[Trade]) -> float:
        closed = self._closed(trades)
        if not closed:
            return 0.0
        return sum(1 for pnl in closed if pnl > 0) / len(closed)

    def _profit_factor(self, trades: Sequence[Trade]) -> float:
        closed = self._closed(trades)
        gross_profit = sum((pnl for pnl in closed if pnl > 0), Decimal("0"))
        gross_loss = -sum((pnl for pnl in closed if pnl < 0), Decimal("0"))
        if gross_loss > 0:
            return float(gross_profit / gross_loss)
        return float("inf") if gross_profit > 0 else 0.0


def build_result(
    config: BacktestConfig,
    initial_capital: Decimal,
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[Trade],
    execution_time: float,
    failed_symbols: Sequence[str] = (),
    analyzer: PerformanceAnalyzer | None = None,
) -> BacktestResult:
    analyzer = analyzer or PerformanceAnalyzer()
    return BacktestResult(
        strategy_config=config,
        performance=analyzer.analyze(initial_capital, equity_curve, trades),
        trades=list(trades),
        equity_curve=list(equity_curve),
        executed_at=datetime.now(timezone.utc),
        execution_time=execution_time,
        failed_symbols=sorted(failed_symbols),
    )
