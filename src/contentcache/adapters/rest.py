"""REST key/value tier (Upstash / Vercel KV command protocol)."""

from __future__ import annotations

from typing import Any

import httpx

from contentcache.adapters.base import decode_entry, encode_entry, glob_escape
from contentcache.types import CacheEntry


class RestKeyValueTier:
    """Async shared tier speaking the Redis-over-HTTP command protocol.

    Every command is a POST of a JSON array (``["SET", key, value, "EX", 60]``)
    to the base URL, answered with ``{"result": ...}`` or ``{"error": ...}``.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        prefix: str = "notion-cache",
        timeout: float = 5.0,
        scan_count: int = 100,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        self._prefix = prefix
        self._scan_count = scan_count

    def _cache_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def _command(self, *args: Any) -> Any:
        """Execute one command and return its ``result``."""
        response = await self._client.post("/", json=[str(a) for a in args])
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if not response.is_success or "error" in body:
            error = body.get("error") or f"HTTP {response.status_code}"
            raise RuntimeError(f"KV command {args[0]} failed: {error}")
        return body.get("result")

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Fetch and decode one entry; None if absent or expired."""
        data = await self._command("GET", self._cache_key(key))
        if data is None:
            return None
        return decode_entry(data)

    async def set(self, key: str, entry: CacheEntry[object], ttl_seconds: int) -> None:
        """Write an entry with ``EX`` expiry."""
        await self._command(
            "SET", self._cache_key(key), encode_entry(entry), "EX", ttl_seconds
        )

    async def delete(self, key: str) -> None:
        """Remove one key from the shared tier."""
        await self._command("DEL", self._cache_key(key))

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete all entries whose cache key starts with prefix."""
        return await self._scan_delete(self._cache_key(prefix))

    async def clear(self) -> None:
        """Clear all cached entries under this tier's prefix."""
        await self._scan_delete(f"{self._prefix}:")

    async def _scan_delete(self, key_prefix: str) -> int:
        pattern = f"{glob_escape(key_prefix)}*"
        found: dict[str, None] = {}
        cursor = "0"
        while True:
            result = await self._command(
                "SCAN", cursor, "MATCH", pattern, "COUNT", self._scan_count
            )
            cursor = str(result[0])
            found.update(dict.fromkeys(k for k in result[1] if k.startswith(key_prefix)))
            if cursor == "0":
                break
        keys = list(found)
        deleted = 0
        for start in range(0, len(keys), self._scan_count):
            deleted += int(await self._command("DEL", *keys[start : start + self._scan_count]))
        return deleted

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
