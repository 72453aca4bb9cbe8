"""In-process (L1) tier."""

from collections import OrderedDict

from contentcache.types import CacheEntry


class LocalTier:
    """Bounded in-memory tier with FIFO eviction.

    Order is insertion order only; reads never refresh it. Content-type keys
    are low-cardinality, so tracking recency buys nothing here. All methods
    are synchronous and never yield to the event loop.
    """

    def __init__(self, max_entries: int = 100) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: OrderedDict[str, CacheEntry[object]] = OrderedDict()
        self._max_entries = max_entries
        self.expirations = 0

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str, now: int) -> CacheEntry[object] | None:
        """Return the entry if present and valid. Expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(now):
            del self._entries[key]
            self.expirations += 1
            return None
        return entry

    def set(self, key: str, entry: CacheEntry[object]) -> list[str]:
        """Store an entry, returning the keys evicted to make room."""
        # Overwrite re-inserts at the newest position
        self._entries.pop(key, None)
        evicted: list[str] = []
        while len(self._entries) >= self._max_entries:
            oldest, _ = self._entries.popitem(last=False)
            evicted.append(oldest)
        self._entries[key] = entry
        return evicted

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def purge_expired(self, now: int) -> int:
        """Drop every expired entry."""
        doomed = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for k in doomed:
            del self._entries[k]
        self.expirations += len(doomed)
        return len(doomed)

    def keys(self) -> list[str]:
        """Keys in insertion order."""
        return list(self._entries)

    def snapshot(self) -> dict[str, CacheEntry[object]]:
        """Shallow copy of the current mapping, for debugging and tests."""
        return dict(self._entries)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count
