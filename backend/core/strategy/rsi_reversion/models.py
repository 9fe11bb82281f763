"""RSI mean-reversion parameters."""

from pydantic import Field, model_validator

from core.strategy.base import StrategyParams


class RsiParams(StrategyParams):
    rsi_period: int = Field(default=14, ge=2)
    oversold: float = Field(default=30.0, gt=0.0, lt=100.0)
    overbought: float = Field(default=70.0, gt=0.0, lt=100.0)
    rsi_confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered_bounds(self) -> "RsiParams":
        if self.oversold >= self.overbought:
            raise ValueError("oversold must be below overbought")
        return self
