"""Two-level cache store: in-process L1 plus an optional shared L2."""

from __future__ import annotations

import copy
from collections import deque
from collections.abc import Callable
from types import TracebackType
from typing import Any

import structlog

from contentcache.adapters.base import RemoteTier
from contentcache.adapters.null import NoRemoteTier
from contentcache.config import CacheConfig
from contentcache.duration import to_seconds
from contentcache.errors import CacheSerializationError
from contentcache.keys import generate_etag
from contentcache.local import LocalTier
from contentcache.types import CacheEntry, CachePolicy, CacheStats, now_ms

logger = structlog.get_logger(__name__)

# Removals remembered for invalidated_since(); older epochs read as stale
INVALIDATION_LOG_SIZE = 256


class TieredCacheStore:
    """Get/set/delete/delete-by-prefix over an L1 and an optional L2 tier.

    Reads never raise because of the shared tier: transport failures and
    corrupt payloads are logged and read as misses. Values are deep-copied on
    the way in and out so callers can't mutate cached data.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        remote: RemoteTier | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config or CacheConfig()
        self._local = LocalTier(self._config.max_l1_entries)
        self._remote: RemoteTier = remote or NoRemoteTier()
        self._has_remote = not isinstance(self._remote, NoRemoteTier)
        self._default_policy = self._config.default_policy()
        self._clock = clock
        self._epoch = 0
        self._removals: deque[tuple[int, str, bool]] = deque(maxlen=INVALIDATION_LOG_SIZE)
        self._counts = {
            "hits": 0,
            "misses": 0,
            "l2_hits": 0,
            "evictions": 0,
            "l2_errors": 0,
            "invalidated": 0,
        }
        self._logger = logger.bind(component="TieredCacheStore")

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def default_policy(self) -> CachePolicy:
        return self._default_policy

    @property
    def remote(self) -> RemoteTier:
        return self._remote

    @property
    def has_remote(self) -> bool:
        return self._has_remote

    @property
    def epoch(self) -> int:
        """Bumped by every delete, invalidation and clear."""
        return self._epoch

    def now(self) -> int:
        return self._clock()

    def invalidated_since(self, epoch: int, key: str) -> bool:
        """Whether a removal after epoch covered key.

        Removals of unrelated namespaces don't count. An epoch older than the
        removal log is treated as invalidated.
        """
        if epoch >= self._epoch:
            return False
        if not self._removals or self._removals[0][0] > epoch + 1:
            return True
        for removed_at, target, exact in self._removals:
            if removed_at <= epoch:
                continue
            if (key == target) if exact else key.startswith(target):
                return True
        return False

    def _log_removal(self, target: str, *, exact: bool = False) -> None:
        self._epoch += 1
        self._removals.append((self._epoch, target, exact))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_local(self, key: str) -> Any | None:
        """L1-only lookup. Never suspends."""
        if not self.enabled:
            return None
        entry = self._local.get(key, self._clock())
        if entry is None:
            return None
        return copy.deepcopy(entry.value)

    def etag(self, key: str) -> str | None:
        """Validator for the live L1 entry, for conditional responses."""
        if not self.enabled:
            return None
        entry = self._local.get(key, self._clock())
        if entry is None:
            return None
        return generate_etag(entry.value)

    async def get(self, key: str, policy: CachePolicy | None = None) -> Any | None:
        """Return the cached value for key, or None.

        Checks L1 first; on an L1 miss consults L2 when the policy enables it
        and backfills L1 from an L2 hit.
        """
        if not self.enabled:
            self._counts["misses"] += 1
            return None

        policy = policy or self._default_policy
        now = self._clock()
        entry = self._local.get(key, now)
        if entry is not None:
            self._counts["hits"] += 1
            return copy.deepcopy(entry.value)

        if policy.use_l2 and self._has_remote:
            remote_entry = await self._remote_get(key)
            # Re-read the clock: the L2 round trip suspended
            now = self._clock()
            if remote_entry is not None and remote_entry.is_valid(now):
                # Capped by the entry's own TTL and by the local policy
                ttl_ms = min(remote_entry.remaining_ms(now), remote_entry.ttl_ms, policy.ttl_ms)
                self._admit(key, CacheEntry(remote_entry.value, now, ttl_ms))
                self._counts["hits"] += 1
                self._counts["l2_hits"] += 1
                self._logger.debug("L2 hit", key=key, ttl_ms=ttl_ms)
                return copy.deepcopy(remote_entry.value)

        self._counts["misses"] += 1
        return None

    async def _remote_get(self, key: str) -> CacheEntry[object] | None:
        try:
            return await self._remote.get(key)
        except CacheSerializationError as e:
            self._counts["l2_errors"] += 1
            self._logger.warning("Corrupt L2 payload treated as miss", key=key, error=str(e))
        except Exception as e:
            self._counts["l2_errors"] += 1
            self._logger.warning("L2 read failed", key=key, error=str(e))
        return None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        ttl_ms: int | None = None,
        policy: CachePolicy | None = None,
    ) -> None:
        """Write L1, and L2 when the policy asks for it.

        An L2 failure is logged and does not undo the L1 write.
        """
        if not self.enabled:
            return

        policy = policy or self._default_policy
        ttl = ttl_ms if ttl_ms is not None else policy.ttl_ms
        if ttl <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl}")

        now = self._clock()
        stored = copy.deepcopy(value)
        self._admit(key, CacheEntry(stored, now, ttl))

        if policy.use_l2 and self._has_remote:
            if policy.l2_ttl_seconds:
                l2_ttl = policy.l2_ttl_seconds * 1000
                l2_seconds = policy.l2_ttl_seconds
            else:
                l2_ttl = ttl
                l2_seconds = to_seconds(ttl)
            try:
                await self._remote.set(key, CacheEntry(stored, now, l2_ttl), l2_seconds)
            except CacheSerializationError as e:
                self._counts["l2_errors"] += 1
                self._logger.warning("Value not stored in L2", key=key, error=str(e))
            except Exception as e:
                self._counts["l2_errors"] += 1
                self._logger.warning("L2 write failed", key=key, error=str(e))

    def _admit(self, key: str, entry: CacheEntry[object]) -> None:
        for evicted in self._local.set(key, entry):
            self._counts["evictions"] += 1
            self._logger.debug("L1 eviction", key=evicted)

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    async def delete(self, key: str) -> bool:
        """Remove one key from both tiers."""
        self._log_removal(key, exact=True)
        removed = self._local.delete(key)
        if self._has_remote:
            try:
                await self._remote.delete(key)
            except Exception as e:
                self._counts["l2_errors"] += 1
                self._logger.warning("L2 delete failed", key=key, error=str(e))
        return removed

    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix, in both tiers.

        Returns the number of entries removed (L1 plus L2).
        """
        self._log_removal(prefix)
        removed = self._local.delete_by_prefix(prefix)
        if self._has_remote:
            try:
                removed += await self._remote.delete_by_prefix(prefix)
            except Exception as e:
                self._counts["l2_errors"] += 1
                self._logger.warning("L2 prefix delete failed", prefix=prefix, error=str(e))
        self._counts["invalidated"] += removed
        self._logger.info("Cache prefix deleted", prefix=prefix, removed=removed)
        return removed

    async def clear(self) -> int:
        """Empty both tiers. Returns the number of L1 entries dropped."""
        self._log_removal("")
        removed = self._local.clear()
        if self._has_remote:
            try:
                await self._remote.clear()
            except Exception as e:
                self._counts["l2_errors"] += 1
                self._logger.warning("L2 clear failed", error=str(e))
        self._logger.info("Cache cleared", removed=removed)
        return removed

    def purge_expired(self) -> int:
        """Reclaim L1 slots held by expired entries."""
        removed = self._local.purge_expired(self._clock())
        if removed:
            self._logger.debug("Expired entries purged", removed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def keys(self) -> list[str]:
        """L1 keys in insertion order."""
        return self._local.keys()

    def snapshot(self) -> dict[str, CacheEntry[object]]:
        """Copy of the L1 mapping."""
        return {k: copy.deepcopy(v) for k, v in self._local.snapshot().items()}

    @property
    def stats(self) -> CacheStats:
        return CacheStats(
            expirations=self._local.expirations,
            entries=len(self._local),
            **self._counts,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def aclose(self) -> None:
        """Flush L1 and disconnect the shared tier."""
        self._local.clear()
        await self._remote.disconnect()

    async def __aenter__(self) -> TieredCacheStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = ["TieredCacheStore"]
