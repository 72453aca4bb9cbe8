"""Tests for the in-memory shared tier and the payload codec."""

import pytest
from helpers import FakeClock

from contentcache import CacheEntry, CacheSerializationError, MemoryKeyValueTier, NoRemoteTier
from contentcache.adapters.base import RemoteTier, decode_entry, encode_entry, glob_escape


@pytest.fixture
def tier(clock: FakeClock) -> MemoryKeyValueTier:
    return MemoryKeyValueTier(clock=clock.seconds)


class TestMemoryKeyValueTier:
    """Tests for MemoryKeyValueTier."""

    async def test_set_and_get(self, tier: MemoryKeyValueTier) -> None:
        entry = CacheEntry(value={"id": "1"}, stored_at=1000, ttl_ms=60_000)
        await tier.set("articles:all", entry, 60)
        assert await tier.get("articles:all") == entry

    async def test_get_missing(self, tier: MemoryKeyValueTier) -> None:
        assert await tier.get("nope") is None

    async def test_expires_after_ttl_seconds(
        self, tier: MemoryKeyValueTier, clock: FakeClock
    ) -> None:
        await tier.set("k", CacheEntry(1, 0, 1000), 1)
        clock.advance(999)
        assert await tier.get("k") is not None
        clock.advance(1)
        assert await tier.get("k") is None

    async def test_corrupt_payload_raises(self, tier: MemoryKeyValueTier) -> None:
        await tier.set_raw("k", "not json")
        with pytest.raises(CacheSerializationError):
            await tier.get("k")

    async def test_delete_by_prefix(self, tier: MemoryKeyValueTier) -> None:
        for key in ("articles:all", "articles:q:1", "products:all"):
            await tier.set(key, CacheEntry(key, 0, 1000), 60)
        assert await tier.delete_by_prefix("articles") == 2
        assert await tier.keys() == ["products:all"]

    async def test_delete_and_clear(self, tier: MemoryKeyValueTier) -> None:
        await tier.set("a", CacheEntry(1, 0, 1000), 60)
        await tier.set("b", CacheEntry(2, 0, 1000), 60)
        await tier.delete("a")
        assert await tier.keys() == ["b"]
        await tier.clear()
        assert await tier.keys() == []

    def test_satisfies_protocol(self, tier: MemoryKeyValueTier) -> None:
        assert isinstance(tier, RemoteTier)
        assert isinstance(NoRemoteTier(), RemoteTier)


class TestNoRemoteTier:
    """Tests for the null tier."""

    async def test_everything_is_a_no_op(self) -> None:
        tier = NoRemoteTier()
        await tier.set("k", CacheEntry(1, 0, 1000), 60)
        assert await tier.get("k") is None
        assert await tier.delete_by_prefix("k") == 0
        await tier.delete("k")
        await tier.clear()
        await tier.disconnect()


class TestCodec:
    """Tests for encode_entry/decode_entry."""

    def test_bytes_payload(self) -> None:
        entry = CacheEntry(value=[1, 2], stored_at=5, ttl_ms=10)
        assert decode_entry(encode_entry(entry).encode()) == entry

    def test_unserializable_value(self) -> None:
        with pytest.raises(CacheSerializationError):
            encode_entry(CacheEntry(value=object(), stored_at=0, ttl_ms=1))

    @pytest.mark.parametrize(
        "payload",
        ['{"value": 1}', "[]", '{"value": 1, "stored_at": "x", "ttl_ms": 1}', b"\xff"],
    )
    def test_corrupt_payloads(self, payload: str | bytes) -> None:
        with pytest.raises(CacheSerializationError):
            decode_entry(payload)


class TestGlobEscape:
    """Tests for glob_escape."""

    def test_escapes_metacharacters(self) -> None:
        assert glob_escape("a*b?c[d]") == "a\\*b\\?c\\[d\\]"

    def test_plain_key_unchanged(self) -> None:
        assert glob_escape("articles:all") == "articles:all"
