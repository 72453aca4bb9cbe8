"""Test doubles shared across the suite."""

import asyncio
from typing import Any

from contentcache import Page, QueryOptions


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def seconds(self) -> float:
        return self.now / 1000


class FakeSource:
    """In-memory paginated content source that counts calls."""

    def __init__(
        self,
        records: dict[str, list[dict[str, Any]]] | None = None,
        *,
        page_size: int = 2,
        delay: float = 0.0,
    ) -> None:
        self.records = records or {}
        self.page_size = page_size
        self.delay = delay
        self.calls: list[tuple[str, str | None]] = []
        self.error: Exception | None = None

    async def query(
        self, collection: str, options: QueryOptions, cursor: str | None = None
    ) -> Page:
        self.calls.append((collection, cursor))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        rows = self.records.get(collection, [])
        start = int(cursor) if cursor else 0
        end = start + self.page_size
        has_more = end < len(rows)
        return Page(
            results=rows[start:end],
            has_more=has_more,
            next_cursor=str(end) if has_more else None,
        )


def article(id: str, title: str | None = None) -> dict[str, Any]:
    """A raw record shaped like a Notion page."""
    return {
        "id": id,
        "properties": {"Title": {"title": [{"text": {"content": title or f"Article {id}"}}]}},
    }


def map_article(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["id"],
        "title": record["properties"]["Title"]["title"][0]["text"]["content"],
    }
