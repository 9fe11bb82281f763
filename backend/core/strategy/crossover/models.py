"""Moving-average crossover parameters."""

from pydantic import Field, model_validator

from core.strategy.base import StrategyParams


class CrossoverParams(StrategyParams):
    fast_period: int = Field(default=10, ge=1)
    slow_period: int = Field(default=20, ge=2)
    crossover_strength: float = Field(default=0.8, ge=0.0, le=1.0)
    crossover_confidence: float = Field(default=0.75, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _fast_below_slow(self) -> "CrossoverParams":
        if self.fast_period >= self.slow_period:
            raise ValueError("fast_period must be shorter than slow_period")
        return self
