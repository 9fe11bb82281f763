"""Strategy plugin system.

Public API:
- Strategy: Protocol that all strategies must implement
- register_strategy: Decorator to register a strategy class
- create_strategy: Factory function to instantiate strategies by name
- list_strategies: Discover all registered strategies
- get_strategy_class: Get strategy class by name without instantiating

Importing this package auto-registers all built-in strategies.
"""

from core.strategy.base import FuserStrategy, StrategyParams, parse_params
from core.strategy.protocol import Strategy
from core.strategy.registry import (
    register_strategy,
    create_strategy,
    list_strategies,
    get_strategy_class,
)

# Import built-in strategies to trigger auto-registration
import core.strategy.crossover  # noqa: F401
import core.strategy.rsi_reversion  # noqa: F401
import core.strategy.news_sentiment  # noqa: F401

__all__ = [
    "Strategy",
    "FuserStrategy",
    "StrategyParams",
    "parse_params",
    "register_strategy",
    "create_strategy",
    "list_strategies",
    "get_strategy_class",
]
