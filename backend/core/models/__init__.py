"""Data models shared by signal generation and backtesting."""

from core.models.bar import PriceBar, closes_of, volumes_of
from core.models.config import (
    BacktestConfig,
    FuserConfig,
    RiskConfig,
    StrategyType,
    validate_backtest_config,
)
from core.models.news import (
    NewsItem,
    SentimentLabel,
    extract_symbols,
    label_for_score,
)
from core.models.portfolio import (
    EquityPoint,
    Portfolio,
    Position,
    Trade,
    TradeAction,
)
from core.models.signal import (
    NEWS_SIGNAL_TTL,
    TECHNICAL_SIGNAL_TTL,
    Signal,
    SignalSource,
    SignalType,
)

__all__ = [
    "PriceBar",
    "closes_of",
    "volumes_of",
    "BacktestConfig",
    "FuserConfig",
    "RiskConfig",
    "StrategyType",
    "validate_backtest_config",
    "NewsItem",
    "SentimentLabel",
    "extract_symbols",
    "label_for_score",
    "EquityPoint",
    "Portfolio",
    "Position",
    "Trade",
    "TradeAction",
    "NEWS_SIGNAL_TTL",
    "TECHNICAL_SIGNAL_TTL",
    "Signal",
    "SignalSource",
    "SignalType",
]
