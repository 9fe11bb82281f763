"""Signal data models."""

import hashlib
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SignalType(str, Enum):
    """Trade direction of a signal."""

    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


class SignalSource(str, Enum):
    """Where a signal came from."""

    NEWS_SENTIMENT = "news_sentiment"
    TECHNICAL_ANALYSIS = "technical_analysis"
    MARKET_PATTERN = "market_pattern"
    MANUAL = "manual"


# Time-to-live per source
NEWS_SIGNAL_TTL = timedelta(hours=2)
TECHNICAL_SIGNAL_TTL = timedelta(hours=4)


def _generate_signal_id(
    symbol: str,
    signal_type: str,
    source: str,
    generated_at: datetime,
    explanation: str,
) -> str:
    """Generate deterministic signal ID based on signal attributes.

    Replaying the same bars produces the same IDs, so duplicates can be
    detected across runs.
    """
    ts_str = generated_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{signal_type}:{source}:{ts_str}:{explanation}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class Signal(BaseModel):
    """Trading signal. Read-only once created; expires by time."""

    model_config = ConfigDict(frozen=True)

    id: str = ""  # Will be set in model_post_init
    symbol: str
    signal_type: SignalType
    strength: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    source: SignalSource
    generated_at: datetime
    expiration: datetime
    explanation: str = Field(min_length=1)
    news_id: str | None = None  # Originating NewsItem
    bar_timestamp: datetime | None = None  # Originating PriceBar

    @model_validator(mode="after")
    def _check_fields(self) -> "Signal":
        if self.expiration <= self.generated_at:
            raise ValueError("expiration must be after generated_at")
        if not self.explanation.strip():
            raise ValueError("explanation must not be blank")
        return self

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_signal_id(
                    self.symbol,
                    self.signal_type.value,
                    self.source.value,
                    self.generated_at,
                    self.explanation,
                ),
            )

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` is past the expiration."""
        return now > self.expiration

    @property
    def is_actionable(self) -> bool:
        """NEUTRAL signals carry information but never trade."""
        return self.signal_type != SignalType.NEUTRAL
