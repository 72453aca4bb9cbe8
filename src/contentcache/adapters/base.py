"""Shared (L2) tier protocol and payload codec."""

import json
import re
from typing import Protocol, runtime_checkable

from contentcache.errors import CacheSerializationError
from contentcache.types import CacheEntry

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def glob_escape(value: str) -> str:
    """Escape Redis MATCH glob metacharacters."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


@runtime_checkable
class RemoteTier(Protocol):
    """Async shared key/value tier interface.

    Keys passed in are cache keys; implementations namespace them as they
    see fit. ``get`` raises ``CacheSerializationError`` for payloads it
    cannot decode and lets transport errors propagate; the tiered store
    turns both into misses.
    """

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Return the entry for a cache key, or None."""
        ...

    async def set(self, key: str, entry: CacheEntry[object], ttl_seconds: int) -> None:
        """Store a cache entry that expires after ``ttl_seconds``."""
        ...

    async def delete(self, key: str) -> None:
        """Remove one key."""
        ...

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with ``prefix``."""
        ...

    async def clear(self) -> None:
        """Drop every entry this tier owns."""
        ...

    async def disconnect(self) -> None:
        """Release connections."""
        ...


def encode_entry(entry: CacheEntry[object]) -> str:
    """Encode an entry as the JSON document stored in the shared tier."""
    try:
        return json.dumps(
            {
                "value": entry.value,
                "stored_at": entry.stored_at,
                "ttl_ms": entry.ttl_ms,
            }
        )
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Value is not JSON-serializable: {e}") from e


def decode_entry(data: bytes | str) -> CacheEntry[object]:
    """Decode a shared tier payload, raising CacheSerializationError if corrupt."""
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        obj = json.loads(data)
        return CacheEntry(
            value=obj["value"],
            stored_at=int(obj["stored_at"]),
            ttl_ms=int(obj["ttl_ms"]),
        )
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise CacheSerializationError(f"Corrupt cache payload: {e}") from e
