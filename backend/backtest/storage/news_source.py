"""News sources for backtesting (sentiment already computed)."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

import asyncpg

from core.models import NewsItem

logger = logging.getLogger(__name__)


class NewsSource(Protocol):
    """Protocol for news access."""

    async def get_range(self, start: datetime, end: datetime) -> list[NewsItem]: ...


def _in_range(items: Iterable[NewsItem], start: datetime, end: datetime) -> list[NewsItem]:
    return sorted(
        (n for n in items if start <= n.published_at <= end),
        key=lambda n: n.published_at,
    )


class InMemoryNewsSource:
    def __init__(self, items: Iterable[NewsItem] = ()):
        self._items = list(items)

    async def get_range(self, start: datetime, end: datetime) -> list[NewsItem]:
        return _in_range(self._items, start, end)


class JsonNewsSource:
    """JSON-lines file, one article per line.

    Each line needs ``title``, ``publishedAt`` (or ``published_at``) and
    ``sentimentScore`` (or ``sentiment_score``); label and symbols are
    derived when missing.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._items: list[NewsItem] | None = None

    def _load(self) -> list[NewsItem]:
        if self._items is not None:
            return self._items
        items = []
        if self.path.exists():
            with self.path.open() as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    raw = json.loads(line)
                    items.append(
                        NewsItem.from_article(
                            title=raw["title"],
                            content=raw.get("content", ""),
                            published_at=raw.get("publishedAt") or raw["published_at"],
                            sentiment_score=raw.get("sentimentScore", raw.get("sentiment_score")),
                            symbols=raw.get("symbols"),
                            id=raw.get("id", ""),
                            source=raw.get("source", ""),
                        )
                    )
        else:
            logger.warning(f"News file not found: {self.path}")
        self._items = items
        return items

    async def get_range(self, start: datetime, end: datetime) -> list[NewsItem]:
        return _in_range(self._load(), start, end)


class PostgresNewsSource:
    """Read news items from PostgreSQL via the shared asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get_range(self, start: datetime, end: datetime) -> list[NewsItem]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT id, title, content, published_at, sentiment_score,
                          sentiment_label, symbols, source
                   FROM news_items
                   WHERE published_at >= $1 AND published_at <= $2
                   ORDER BY published_at ASC""",
                start,
                end,
            )

        return [
            NewsItem(
                id=row["id"],
                title=row["title"],
                content=row["content"],
                published_at=row["published_at"],
                sentiment_score=row["sentiment_score"],
                sentiment_label=row["sentiment_label"],
                symbols=frozenset(json.loads(row["symbols"])),
                source=row["source"],
            )
            for row in rows
        ]
