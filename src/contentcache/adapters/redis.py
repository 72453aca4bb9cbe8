"""Redis shared tier."""

from __future__ import annotations

from typing import Any

from contentcache.adapters.base import decode_entry, encode_entry, glob_escape
from contentcache.types import CacheEntry


class RedisKeyValueTier:
    """Async Redis key/value tier."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "notion-cache",
        scan_count: int = 100,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "notion-cache") -> RedisKeyValueTier:
        """Create a tier backed by a new ``redis.asyncio`` connection pool."""
        import redis.asyncio as redis

        return cls(redis.from_url(url), prefix=prefix)

    def _cache_key(self, key: str) -> str:
        """Namespaced Redis key (``notion-cache:articles:all``)."""
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Fetch and decode one entry; None if absent or expired."""
        data = await self._client.get(self._cache_key(key))
        if data is None:
            return None
        return decode_entry(data)

    async def set(self, key: str, entry: CacheEntry[object], ttl_seconds: int) -> None:
        """Write an entry with ``EX`` expiry."""
        await self._client.set(
            self._cache_key(key),
            encode_entry(entry),
            ex=ttl_seconds,
        )

    async def delete(self, key: str) -> None:
        """Remove one key from the shared tier."""
        await self._client.delete(self._cache_key(key))

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete all entries whose cache key starts with prefix."""
        return await self._scan_delete(f"{glob_escape(self._cache_key(prefix))}*")

    async def clear(self) -> None:
        """Clear all cached entries under this tier's prefix."""
        await self._scan_delete(f"{glob_escape(self._prefix)}:*")

    async def _scan_delete(self, pattern: str) -> int:
        # SCAN instead of KEYS so large keyspaces don't block the server.
        # Collect before deleting: removing keys mid-scan may hide others.
        found: dict[Any, None] = {}
        cursor = 0
        while True:
            cursor, batch = await self._client.scan(
                cursor, match=pattern, count=self._scan_count
            )
            found.update(dict.fromkeys(batch))
            if int(cursor) == 0:
                break
        keys = list(found)
        deleted = 0
        for start in range(0, len(keys), self._scan_count):
            deleted += int(await self._client.delete(*keys[start : start + self._scan_count]))
        return deleted

    async def disconnect(self) -> None:
        """Release the connection pool."""
        await self._client.aclose()
