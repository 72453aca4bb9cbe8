"""Tests for fetch-through coordination."""

import asyncio

import pytest
from helpers import FakeClock

from contentcache import FetchThroughCoordinator, RemoteUnavailable, TieredCacheStore


class GatedLoader:
    """Loader that blocks until released and counts its calls."""

    def __init__(self, value: object = "fresh", error: Exception | None = None) -> None:
        self.value = value
        self.error = error
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self) -> object:
        self.calls += 1
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.value


class TestGetOrPopulate:
    """Tests for the basic hit/miss path."""

    async def test_miss_loads_and_stores(self, coordinator: FetchThroughCoordinator) -> None:
        calls = 0

        async def load() -> list[str]:
            nonlocal calls
            calls += 1
            return ["a", "b"]

        assert await coordinator.get_or_populate("articles:all", load) == ["a", "b"]
        assert await coordinator.get_or_populate("articles:all", load) == ["a", "b"]
        assert calls == 1

    async def test_hit_never_calls_loader(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        await store.set("articles:all", ["cached"])

        async def load() -> list[str]:
            raise AssertionError("loader must not run on a hit")

        assert await coordinator.get_or_populate("articles:all", load) == ["cached"]

    async def test_ttl_override(
        self, coordinator: FetchThroughCoordinator, clock: FakeClock
    ) -> None:
        calls = 0

        async def load() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await coordinator.get_or_populate("k", load, ttl_ms=100) == 1
        clock.advance(99)
        assert await coordinator.get_or_populate("k", load, ttl_ms=100) == 1
        clock.advance(1)
        assert await coordinator.get_or_populate("k", load, ttl_ms=100) == 2


class TestSingleFlight:
    """Tests for de-duplication of concurrent misses."""

    async def test_concurrent_misses_share_one_load(
        self, coordinator: FetchThroughCoordinator
    ) -> None:
        """Test five concurrent readers trigger exactly one loader call."""
        loader = GatedLoader(value=["a"])
        tasks = [
            asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
            for _ in range(5)
        ]
        await asyncio.sleep(0)
        assert coordinator.in_flight == 1
        assert coordinator.is_in_flight("articles:all")

        loader.gate.set()
        results = await asyncio.gather(*tasks)

        assert results == [["a"]] * 5
        assert loader.calls == 1
        assert coordinator.in_flight == 0

    async def test_waiters_get_independent_copies(
        self, coordinator: FetchThroughCoordinator
    ) -> None:
        loader = GatedLoader(value={"items": [1]})
        owner = asyncio.create_task(coordinator.get_or_populate("k", loader))
        waiter = asyncio.create_task(coordinator.get_or_populate("k", loader))
        await asyncio.sleep(0)
        loader.gate.set()
        first, second = await asyncio.gather(owner, waiter)

        assert first == second
        assert first is not second
        second["items"].append(2)
        assert await coordinator.store.get("k") == {"items": [1]}

    async def test_different_keys_load_independently(
        self, coordinator: FetchThroughCoordinator
    ) -> None:
        a = GatedLoader(value="a")
        b = GatedLoader(value="b")
        ta = asyncio.create_task(coordinator.get_or_populate("articles:all", a))
        tb = asyncio.create_task(coordinator.get_or_populate("products:all", b))
        await asyncio.sleep(0)
        assert coordinator.in_flight == 2

        a.gate.set()
        b.gate.set()
        assert await asyncio.gather(ta, tb) == ["a", "b"]

    async def test_cancelled_waiter_does_not_cancel_fetch(
        self, coordinator: FetchThroughCoordinator
    ) -> None:
        loader = GatedLoader(value="v")
        owner = asyncio.create_task(coordinator.get_or_populate("k", loader))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(coordinator.get_or_populate("k", loader))
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        loader.gate.set()
        assert await owner == "v"
        assert loader.calls == 1

    async def test_cancelled_starter_does_not_cancel_waiters(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        """Test a waiter still gets the value when the caller that started the fetch goes away."""
        loader = GatedLoader(value=["a"])
        starter = asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
        await asyncio.sleep(0)

        starter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await starter

        loader.gate.set()
        assert await waiter == ["a"]
        assert not waiter.cancelled()
        assert loader.calls == 1
        assert store.get_local("articles:all") == ["a"]

    async def test_fetch_completes_after_every_caller_left(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        loader = GatedLoader(value="v")
        starter = asyncio.create_task(coordinator.get_or_populate("k", loader))
        await asyncio.sleep(0)
        starter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await starter

        loader.gate.set()
        for _ in range(3):
            await asyncio.sleep(0)

        assert store.get_local("k") == "v"
        assert coordinator.in_flight == 0
        assert await coordinator.get_or_populate("k", loader) == "v"
        assert loader.calls == 1


class TestFailures:
    """Tests for failure propagation."""

    async def test_failure_reaches_every_waiter(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        loader = GatedLoader(error=RemoteUnavailable("notion down", status_code=503))
        tasks = [
            asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        loader.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, RemoteUnavailable) for r in results)
        assert loader.calls == 1
        assert store.keys() == []
        assert coordinator.in_flight == 0

    async def test_failure_is_not_cached(self, coordinator: FetchThroughCoordinator) -> None:
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RemoteUnavailable("timeout")
            return "ok"

        with pytest.raises(RemoteUnavailable):
            await coordinator.get_or_populate("k", flaky)
        assert await coordinator.get_or_populate("k", flaky) == "ok"
        assert attempts == 2


class TestInvalidationDuringFetch:
    """Tests for fetches that overlap an invalidation."""

    async def test_result_not_cached_after_invalidation(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        loader = GatedLoader(value=["stale"])
        task = asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
        await asyncio.sleep(0)

        await store.delete_by_prefix("articles")
        loader.gate.set()

        assert await task == ["stale"]
        assert store.get_local("articles:all") is None

    async def test_unrelated_invalidation_still_caches(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        """Test a burst of removals in another namespace doesn't stop caching."""
        loader = GatedLoader(value=["fresh"])
        task = asyncio.create_task(coordinator.get_or_populate("articles:all", loader))
        await asyncio.sleep(0)

        for _ in range(5):
            await store.delete_by_prefix("products")
        loader.gate.set()

        assert await task == ["fresh"]
        assert store.get_local("articles:all") == ["fresh"]

    async def test_exact_delete_of_other_key_still_caches(
        self, coordinator: FetchThroughCoordinator, store: TieredCacheStore
    ) -> None:
        loader = GatedLoader(value={"id": "abcdef"})
        task = asyncio.create_task(coordinator.get_or_populate("page:abcdef", loader))
        await asyncio.sleep(0)

        await store.delete("page:abc")
        loader.gate.set()

        assert await task == {"id": "abcdef"}
        assert store.get_local("page:abcdef") == {"id": "abcdef"}

    async def test_detach_starts_a_new_fetch(
        self, coordinator: FetchThroughCoordinator
    ) -> None:
        old = GatedLoader(value="old")
        new = GatedLoader(value="new")
        first = asyncio.create_task(coordinator.get_or_populate("articles:all", old))
        await asyncio.sleep(0)

        assert coordinator.detach("articles") == 1
        assert coordinator.in_flight == 0

        second = asyncio.create_task(coordinator.get_or_populate("articles:all", new))
        await asyncio.sleep(0)
        assert coordinator.is_in_flight("articles:all")

        old.gate.set()
        assert await first == "old"
        # The old fetch must not drop the new registration
        assert coordinator.is_in_flight("articles:all")

        new.gate.set()
        assert await second == "new"
        assert new.calls == 1

    def test_detach_without_matches(self, coordinator: FetchThroughCoordinator) -> None:
        assert coordinator.detach("articles") == 0

    async def test_forget_exact_key(self, coordinator: FetchThroughCoordinator) -> None:
        loader = GatedLoader(value="v")
        task = asyncio.create_task(coordinator.get_or_populate("page:abcdef", loader))
        await asyncio.sleep(0)

        assert coordinator.forget("page:abc") is False
        assert coordinator.is_in_flight("page:abcdef")
        assert coordinator.forget("page:abcdef") is True
        assert coordinator.in_flight == 0

        loader.gate.set()
        assert await task == "v"
