"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    sma,
    ema,
    rsi,
    macd,
    bollinger_bands,
    sma_series,
    ema_series,
    rsi_series,
    macd_series,
    bollinger_series,
    BollingerBands,
    MacdResult,
    IndicatorCalculator,
    IndicatorSnapshot,
    RSI_NEUTRAL,
)

__all__ = [
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "sma_series",
    "ema_series",
    "rsi_series",
    "macd_series",
    "bollinger_series",
    "BollingerBands",
    "MacdResult",
    "IndicatorCalculator",
    "IndicatorSnapshot",
    "RSI_NEUTRAL",
]
