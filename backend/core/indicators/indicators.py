"""Technical indicators for signal generation.

Single canonical implementation of SMA, EMA, RSI, MACD and Bollinger Bands.
Strategies, the signal fuser and preview endpoints all call these functions,
so a previewed value and an executed value can never drift apart.

Series are ordered oldest-first. Inputs may be Decimal, float or int; all
math runs on float64 NumPy arrays and results are returned as float.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from core.errors import InsufficientDataError

Number = Union[Decimal, float, int]

RSI_NEUTRAL = 50.0


def _to_array(values: Sequence[Number]) -> np.ndarray:
    return np.array([float(v) for v in values], dtype=np.float64)


# =============================================================================
# Full-length series (NaN-padded until the lookback is filled)
# =============================================================================

def sma_series(values: Sequence[Number], period: int) -> list[float]:
    """Rolling SMA, same length as input with NaN for the warmup bars."""
    if len(values) < period:
        return [math.nan] * len(values)

    arr = _to_array(values)
    result = np.full(len(arr), np.nan)
    result[period - 1:] = sliding_window_view(arr, period).mean(axis=1)

    return result.tolist()


def ema_series(values: Sequence[Number], period: int) -> list[float]:
    """EMA seeded with the SMA of the first ``period`` points."""
    if len(values) < period:
        return [math.nan] * len(values)

    arr = _to_array(values)
    multiplier = 2.0 / (period + 1)

    result = np.empty_like(arr)
    result[:period - 1] = np.nan
    result[period - 1] = np.mean(arr[:period])

    for i in range(period, len(arr)):
        result[i] = (arr[i] - result[i - 1]) * multiplier + result[i - 1]

    return result.tolist()


def rsi_series(values: Sequence[Number], period: int = 14) -> list[float]:
    """RSI at every point; element ``i`` equals ``rsi(values[:i + 1], period)``."""
    result = [RSI_NEUTRAL] * len(values)
    if len(values) < period + 1:
        return result

    deltas = np.diff(_to_array(values))
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i + 1] = _rsi_value(avg_gain, avg_loss)

    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


# =============================================================================
# Latest-value indicators
# =============================================================================

def sma(values: Sequence[Number], period: int) -> float:
    """
    Simple Moving Average of the last ``period`` values.

    Raises:
        InsufficientDataError: if fewer than ``period`` values are given
    """
    if period <= 0 or len(values) < period:
        raise InsufficientDataError("SMA", period, len(values))
    return float(np.mean(_to_array(values[-period:])))


def ema(values: Sequence[Number], period: int) -> float:
    """
    Exponential Moving Average at the last value.

    Raises:
        InsufficientDataError: if fewer than ``period`` values are given
    """
    if period <= 0 or len(values) < period:
        raise InsufficientDataError("EMA", period, len(values))
    return ema_series(values, period)[-1]


def rsi(values: Sequence[Number], period: int = 14) -> float:
    """
    Relative Strength Index using Wilder's smoothing.

    The first average gain/loss is the plain mean over the first ``period``
    deltas; each later delta updates ``avg = (avg * (period - 1) + x) / period``.

    Returns 50 (neutral) when fewer than ``period + 1`` values are available,
    and 100 when the average loss is zero.
    """
    if len(values) < period + 1:
        return RSI_NEUTRAL
    return rsi_series(values, period)[-1]


@dataclass(frozen=True)
class MacdResult:
    macd: float
    signal: float
    histogram: float


def macd(
    values: Sequence[Number],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MacdResult:
    """
    MACD line, signal line and histogram at the last value.

    MACD = EMA(fast) - EMA(slow); signal = EMA(signal_period) of the MACD
    line. Fewer than ``slow_period`` values returns all zeros. While the MACD
    line is still shorter than ``signal_period`` the signal line is the mean
    of the MACD values available so far.
    """
    if len(values) < slow_period:
        return _MACD_ZERO
    return macd_series(values, fast_period, slow_period, signal_period)[-1]


_MACD_ZERO = MacdResult(macd=0.0, signal=0.0, histogram=0.0)


def macd_series(
    values: Sequence[Number],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> list[MacdResult]:
    """MACD at every point; element ``i`` equals ``macd(values[:i + 1])``."""
    if len(values) < slow_period:
        return [_MACD_ZERO] * len(values)

    fast = np.array(ema_series(values, fast_period))
    slow = np.array(ema_series(values, slow_period))
    line = (fast - slow)[slow_period - 1 :]

    signal = np.empty_like(line)
    for j in range(min(signal_period - 1, len(line))):
        signal[j] = np.mean(line[: j + 1])
    if len(line) >= signal_period:
        ema_line = ema_series(line.tolist(), signal_period)
        signal[signal_period - 1 :] = ema_line[signal_period - 1 :]

    results = [_MACD_ZERO] * (slow_period - 1)
    for macd_value, signal_value in zip(line.tolist(), signal.tolist()):
        results.append(
            MacdResult(
                macd=macd_value,
                signal=signal_value,
                histogram=macd_value - signal_value,
            )
        )
    return results


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


def bollinger_bands(
    values: Sequence[Number],
    period: int = 20,
    k: float = 2.0,
) -> BollingerBands:
    """
    Bollinger Bands: SMA(period) +/- k * population stddev(period).

    With fewer than ``period`` values all three bands collapse to the latest
    value.

    Raises:
        InsufficientDataError: on an empty series
    """
    if len(values) == 0:
        raise InsufficientDataError("BollingerBands", 1, 0)

    if len(values) < period:
        latest = float(values[-1])
        return BollingerBands(upper=latest, middle=latest, lower=latest)

    window = _to_array(values[-period:])
    middle = float(np.mean(window))
    std = float(np.std(window))
    return BollingerBands(
        upper=middle + k * std,
        middle=middle,
        lower=middle - k * std,
    )


def bollinger_series(
    values: Sequence[Number],
    period: int = 20,
    k: float = 2.0,
) -> list[BollingerBands]:
    """Bands at every point; element ``i`` equals ``bollinger_bands(values[:i + 1])``."""
    arr = _to_array(values)
    bands = [
        BollingerBands(upper=v, middle=v, lower=v) for v in arr[: period - 1].tolist()
    ]
    if len(arr) >= period:
        windows = sliding_window_view(arr, period)
        middles = windows.mean(axis=1).tolist()
        stds = windows.std(axis=1).tolist()
        bands.extend(
            BollingerBands(upper=m + k * s, middle=m, lower=m - k * s)
            for m, s in zip(middles, stds)
        )
    return bands


# =============================================================================
# IndicatorCalculator class
# =============================================================================

@dataclass(frozen=True)
class IndicatorSnapshot:
    """All indicator values at the latest bar.

    SMA fields are None when the series is too short for that period; the
    ``prev_*`` fields hold the SMAs one bar earlier for crossover detection.
    """

    close: float
    rsi: float
    sma_fast: float | None
    sma_slow: float | None
    prev_sma_fast: float | None
    prev_sma_slow: float | None
    macd: MacdResult
    bands: BollingerBands


class IndicatorCalculator:
    """Calculator for every indicator the signal fuser needs."""

    def __init__(
        self,
        rsi_period: int = 14,
        fast_period: int = 10,
        slow_period: int = 20,
        bb_period: int = 20,
        bb_k: float = 2.0,
    ):
        self.rsi_period = rsi_period
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.bb_period = bb_period
        self.bb_k = bb_k

    def calculate_latest(self, closes: Sequence[Number]) -> IndicatorSnapshot | None:
        """
        Calculate indicators for the latest bar only.

        Args:
            closes: Close prices, oldest first

        Returns:
            IndicatorSnapshot, or None for an empty series
        """
        if len(closes) == 0:
            return None

        fast_values = sma_series(closes, self.fast_period)
        slow_values = sma_series(closes, self.slow_period)

        return IndicatorSnapshot(
            close=float(closes[-1]),
            rsi=rsi(closes, self.rsi_period),
            sma_fast=_last(fast_values, 1),
            sma_slow=_last(slow_values, 1),
            prev_sma_fast=_last(fast_values, 2),
            prev_sma_slow=_last(slow_values, 2),
            macd=macd(closes),
            bands=bollinger_bands(closes, self.bb_period, self.bb_k),
        )

    def calculate_series(self, closes: Sequence[Number]) -> list[IndicatorSnapshot]:
        """
        Snapshots for every bar in one pass.

        Element ``i`` holds the same values as ``calculate_latest(closes[:i + 1])``,
        so a replay can index into it instead of recomputing the whole history
        on each bar.
        """
        fast_values = sma_series(closes, self.fast_period)
        slow_values = sma_series(closes, self.slow_period)
        rsi_values = rsi_series(closes, self.rsi_period)
        macd_values = macd_series(closes)
        bands = bollinger_series(closes, self.bb_period, self.bb_k)

        return [
            IndicatorSnapshot(
                close=close,
                rsi=rsi_values[i],
                sma_fast=_at(fast_values, i),
                sma_slow=_at(slow_values, i),
                prev_sma_fast=_at(fast_values, i - 1),
                prev_sma_slow=_at(slow_values, i - 1),
                macd=macd_values[i],
                bands=bands[i],
            )
            for i, close in enumerate(_to_array(closes).tolist())
        ]


def _at(values: list[float], index: int) -> float | None:
    """Return values[index], or None when before the start or NaN."""
    if index < 0:
        return None
    value = values[index]
    return None if math.isnan(value) else value


def _last(values: list[float], offset: int) -> float | None:
    """Return values[-offset], or None when missing or NaN."""
    if len(values) < offset:
        return None
    value = values[-offset]
    return None if math.isnan(value) else value
