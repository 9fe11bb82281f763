"""Moving-average crossover strategy package.

Importing this package registers MovingAverageCrossoverStrategy.
"""

from core.strategy.crossover.generator import MovingAverageCrossoverStrategy
from core.strategy.crossover.models import CrossoverParams

__all__ = ["MovingAverageCrossoverStrategy", "CrossoverParams"]
