"""News-sentiment strategy package.

Importing this package registers NewsSentimentStrategy.
"""

from core.strategy.news_sentiment.generator import NewsSentimentStrategy
from core.strategy.news_sentiment.models import NewsSentimentParams

__all__ = ["NewsSentimentStrategy", "NewsSentimentParams"]
