"""RSI mean-reversion strategy package.

Importing this package registers RsiMeanReversionStrategy.
"""

from core.strategy.rsi_reversion.generator import RsiMeanReversionStrategy
from core.strategy.rsi_reversion.models import RsiParams

__all__ = ["RsiMeanReversionStrategy", "RsiParams"]
