"""In-process stand-in for a shared key/value tier.

Stores encoded JSON payloads with an expiry deadline, exactly like a real
KV store would, so serialization behaves the same in local runs and tests.
"""

import asyncio
import time
from collections.abc import Callable

from contentcache.adapters.base import decode_entry, encode_entry
from contentcache.types import CacheEntry


class MemoryKeyValueTier:
    """Async in-memory key/value tier with per-key expiry."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Fetch and decode one entry; None if absent or expired."""
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            payload, deadline = item
            if self._clock() >= deadline:
                del self._data[key]
                return None
        return decode_entry(payload)

    async def set(self, key: str, entry: CacheEntry[object], ttl_seconds: int) -> None:
        """Store a cache entry with expiration."""
        payload = encode_entry(entry)
        async with self._lock:
            self._data[key] = (payload, self._clock() + ttl_seconds)

    async def set_raw(self, key: str, payload: str, ttl_seconds: int = 60) -> None:
        """Store an arbitrary payload (for simulating foreign writers)."""
        async with self._lock:
            self._data[key] = (payload, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        """Remove one key from the shared tier."""
        async with self._lock:
            self._data.pop(key, None)

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete all entries whose key starts with prefix."""
        async with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
            return len(doomed)

    async def keys(self) -> list[str]:
        async with self._lock:
            return sorted(self._data)

    async def clear(self) -> None:
        """Drop every stored payload."""
        async with self._lock:
            self._data.clear()

    async def disconnect(self) -> None:
        """Nothing to release."""
        pass
