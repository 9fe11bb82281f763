"""News item model and the pure derivations applied before storage.

Sentiment label and associated symbols are derived by explicit function
calls (``label_for_score``, ``extract_symbols``), never by a save hook.
"""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Uppercase tokens that look like tickers but are not
SYMBOL_STOP_LIST = frozenset({"IPO", "CEO", "CFO", "ETF", "USD", "SEC", "AI", "IT"})

_SYMBOL_PATTERN = re.compile(r"\b([A-Z]{2,5})\b")

POSITIVE_LABEL_THRESHOLD = 0.3
NEGATIVE_LABEL_THRESHOLD = -0.3


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


def label_for_score(score: float) -> SentimentLabel:
    """Map a sentiment score in [-1, 1] to its label."""
    if score > POSITIVE_LABEL_THRESHOLD:
        return SentimentLabel.POSITIVE
    if score < NEGATIVE_LABEL_THRESHOLD:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


def extract_symbols(text: str) -> frozenset[str]:
    """Extract ticker-like tokens (2-5 uppercase letters) minus the stop-list."""
    return frozenset(
        token for token in _SYMBOL_PATTERN.findall(text)
        if token not in SYMBOL_STOP_LIST
    )


class NewsItem(BaseModel):
    """News article with precomputed sentiment."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    title: str
    content: str = ""
    published_at: datetime
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    sentiment_label: SentimentLabel
    symbols: frozenset[str] = frozenset()
    source: str = ""

    @classmethod
    def from_article(
        cls,
        title: str,
        content: str,
        published_at: datetime,
        sentiment_score: float,
        symbols: frozenset[str] | set[str] | None = None,
        **extra,
    ) -> "NewsItem":
        """Build a NewsItem, deriving label and symbols when not given."""
        if not symbols:
            symbols = extract_symbols(f"{title} {content}")
        return cls(
            title=title,
            content=content,
            published_at=published_at,
            sentiment_score=sentiment_score,
            sentiment_label=label_for_score(sentiment_score),
            symbols=frozenset(s.upper() for s in symbols),
            **extra,
        )

    def mentions(self, symbol: str) -> bool:
        return symbol.upper() in self.symbols
