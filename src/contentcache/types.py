"""Core types for the contentcache library."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Raw CMS record (a Notion page object, or whatever the source returns)
RawRecord = dict[str, Any]

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds


def now_ms() -> int:
    """Current wall-clock time as Unix milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with metadata."""

    value: T
    stored_at: int  # Unix timestamp ms
    ttl_ms: int

    @property
    def expires_at(self) -> int:
        return self.stored_at + self.ttl_ms

    def is_valid(self, now: int) -> bool:
        """An entry is valid iff ``now - stored_at < ttl_ms``."""
        return now - self.stored_at < self.ttl_ms

    def remaining_ms(self, now: int) -> int:
        return max(0, self.expires_at - now)


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Per content type caching policy."""

    ttl_ms: int
    use_l2: bool = False
    l2_ttl_seconds: int | None = None  # defaults to ttl rounded up to seconds


@dataclass(frozen=True, slots=True)
class QueryOptions:
    """Filter, sorts and page size for a collection query."""

    filter: dict[str, Any] | None = None
    sorts: list[dict[str, Any]] = field(default_factory=list)
    page_size: int = 100

    def fingerprint(self) -> dict[str, Any]:
        """JSON-safe view used to derive cache keys."""
        return {
            "filter": self.filter,
            "sorts": self.sorts,
            "page_size": self.page_size,
        }


@dataclass(frozen=True, slots=True)
class Page:
    """One page of raw records returned by a content source."""

    results: list[RawRecord]
    has_more: bool = False
    next_cursor: str | None = None


class DrainStatus(str, enum.Enum):
    COMPLETE = "complete"
    TRUNCATED = "truncated"


@dataclass(frozen=True, slots=True)
class DrainResult:
    """Outcome of walking every page of a collection."""

    records: list[RawRecord]
    status: DrainStatus
    pages_fetched: int
    restarts: int = 0

    @property
    def truncated(self) -> bool:
        return self.status is DrainStatus.TRUNCATED


@dataclass(frozen=True, slots=True)
class InvalidationEvent:
    """A parsed content change notification."""

    collection_key: str
    changed_record_id: str
    received_at: int  # Unix timestamp ms
    event_type: str = "page.updated"


@dataclass(frozen=True, slots=True)
class InvalidationNotice:
    """Delivered to invalidation subscribers after entries are removed."""

    prefix: str
    record_id: str | None
    timestamp: int  # Unix timestamp ms
    removed: int = 0


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of cache counters."""

    hits: int = 0
    misses: int = 0
    l2_hits: int = 0
    evictions: int = 0
    expirations: int = 0
    l2_errors: int = 0
    invalidated: int = 0
    entries: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage."""
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total else 0.0
