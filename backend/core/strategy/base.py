"""Shared plumbing for strategies built on the SignalFuser."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, ClassVar, Mapping, Sequence, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from core.errors import ValidationError
from core.indicators import IndicatorSnapshot
from core.models import FuserConfig, PriceBar
from core.signals import SignalFuser

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="StrategyParams")


class StrategyParams(BaseModel):
    """Base for per-strategy parameter models.

    Built from the free-form ``parameters`` mapping of a run request; keys may
    be camelCase or snake_case. Unknown keys are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True
    )

    def fuser_overrides(self) -> dict[str, Any]:
        """FuserConfig fields this parameter set controls."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if name in FuserConfig.model_fields
        }


def parse_params(model: type[P], parameters: Mapping[str, Any] | None) -> P:
    """Validate ``parameters`` against ``model``.

    Raises:
        ValidationError: unknown key or out-of-range value
    """
    try:
        return model.model_validate(dict(parameters or {}))
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid {model.__name__}: {e}") from e


class FuserStrategy:
    """Base class: parses parameters and owns a configured SignalFuser."""

    params_model: ClassVar[type[StrategyParams]] = StrategyParams
    strategy_name: ClassVar[str] = ""

    def __init__(self, parameters: Mapping[str, Any] | None = None):
        self.params = parse_params(self.params_model, parameters)
        self.fuser = SignalFuser(FuserConfig(**self.params.fuser_overrides()))

    @property
    def name(self) -> str:
        return self.strategy_name

    @property
    def news_lookback(self) -> timedelta:
        return self.fuser.config.news_lookback

    def indicator_snapshots(
        self, bars: Sequence[PriceBar]
    ) -> Sequence[IndicatorSnapshot] | None:
        return self.fuser.snapshots(bars)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params!r})"
