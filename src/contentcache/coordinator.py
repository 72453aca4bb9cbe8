"""Fetch-through coordination with single-flight de-duplication."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar, cast

import structlog

from contentcache.store import TieredCacheStore
from contentcache.types import CachePolicy

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class FetchThroughCoordinator:
    """Get-or-populate over a ``TieredCacheStore``.

    A cache hit never reaches the loader. Concurrent misses for one key share
    a single loader call. Failures are propagated to every waiter and never
    cached.
    """

    def __init__(self, store: TieredCacheStore) -> None:
        self._store = store
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._logger = logger.bind(component="FetchThroughCoordinator")

    @property
    def store(self) -> TieredCacheStore:
        return self._store

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_populate(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        *,
        ttl_ms: int | None = None,
        policy: CachePolicy | None = None,
    ) -> T:
        """Return the cached value for key, loading and storing it on a miss.

        The loader runs in its own task. Cancelling any caller, including the
        one that started the fetch, leaves the fetch running for the others.

        Args:
            key: Cache key
            loader: Async callable producing the value (runs at most once per
                concurrent burst of misses)
            ttl_ms: TTL override (default: policy TTL)
            policy: Cache policy (default: store default)

        Returns:
            Cached or freshly loaded value
        """
        cached = await self._store.get(key, policy)
        if cached is not None:
            return cast(T, cached)

        # No await between the check and the registration below
        task = self._in_flight.get(key)
        if task is not None:
            self._logger.debug("Joining in-flight fetch", key=key)
            return cast(T, copy.deepcopy(await asyncio.shield(task)))

        task = asyncio.ensure_future(
            self._load_and_store(key, loader, self._store.epoch, ttl_ms, policy)
        )
        self._in_flight[key] = task
        task.add_done_callback(partial(self._fetch_done, key))
        return cast(T, await asyncio.shield(task))

    async def _load_and_store(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        epoch: int,
        ttl_ms: int | None,
        policy: CachePolicy | None,
    ) -> T:
        try:
            value = await loader()
        except Exception as e:
            self._logger.warning("Fetch failed, nothing cached", key=key, error=repr(e))
            raise
        if self._store.invalidated_since(epoch, key):
            self._logger.info("Invalidated during fetch, result not cached", key=key)
        else:
            await self._store.set(key, value, ttl_ms, policy)
        return value

    def _fetch_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Every caller may have gone; mark the outcome retrieved
        if not task.cancelled():
            task.exception()

    def detach(self, prefix: str) -> int:
        """Forget in-flight fetches whose key starts with prefix.

        Callers arriving afterwards start a new fetch; callers already
        waiting still get the running fetch's result.
        """
        doomed = [k for k in self._in_flight if k.startswith(prefix)]
        for k in doomed:
            del self._in_flight[k]
        return len(doomed)

    def forget(self, key: str) -> bool:
        """Like ``detach`` for one exact key."""
        return self._in_flight.pop(key, None) is not None


__all__ = ["FetchThroughCoordinator"]
