"""Strategy registry for discovering and instantiating strategies.

Usage:
    @register_strategy("rsiMeanReversion")
    class RsiMeanReversionStrategy:
        ...

    strategy = create_strategy("rsiMeanReversion", parameters={"period": 14})
    strategies = list_strategies()
"""

from __future__ import annotations

import logging
from typing import Any

from core.models import StrategyType

logger = logging.getLogger(__name__)

# Global registry: strategy_name -> strategy_class
_REGISTRY: dict[str, type] = {}


def _key(name: str | StrategyType) -> str:
    return name.value if isinstance(name, StrategyType) else name


def register_strategy(name: str | StrategyType):
    """Decorator to register a strategy class under a given name.

    Raises:
        ValueError: If a strategy with the same name is already registered.
    """
    key = _key(name)

    def decorator(cls):
        if key in _REGISTRY:
            raise ValueError(
                f"Strategy '{key}' is already registered by {_REGISTRY[key].__name__}"
            )
        _REGISTRY[key] = cls
        logger.debug("Registered strategy: %s -> %s", key, cls.__name__)
        return cls

    return decorator


def get_strategy_class(name: str | StrategyType) -> type:
    """Get the strategy class by name (without instantiating).

    Raises:
        KeyError: If no strategy is registered under the given name.
    """
    key = _key(name)
    cls = _REGISTRY.get(key)
    if cls is None:
        available = ", ".join(sorted(_REGISTRY.keys())) or "(none)"
        raise KeyError(f"Unknown strategy '{key}'. Available: {available}")
    return cls


def create_strategy(name: str | StrategyType, **kwargs: Any):
    """Create a strategy instance by name.

    Args:
        name: Registered strategy name or StrategyType.
        **kwargs: Arguments passed to the strategy constructor.

    Raises:
        KeyError: If no strategy is registered under the given name.
    """
    return get_strategy_class(name)(**kwargs)


def list_strategies() -> list[str]:
    """Return a sorted list of registered strategy names."""
    return sorted(_REGISTRY.keys())
