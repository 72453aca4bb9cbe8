"""Remote tier used when no shared KV store is configured."""

from contentcache.types import CacheEntry


class NoRemoteTier:
    """Every read misses, every write is dropped."""

    async def get(self, key: str) -> CacheEntry[object] | None:
        return None

    async def set(self, key: str, entry: CacheEntry[object], ttl_seconds: int) -> None:
        pass

    async def delete(self, key: str) -> None:
        pass

    async def delete_by_prefix(self, prefix: str) -> int:
        return 0

    async def clear(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass
