"""Shared pytest fixtures."""

import pytest
from helpers import FakeClock, FakeSource, article, map_article

from contentcache import (
    CacheConfig,
    ContentRepository,
    ContentType,
    FetchThroughCoordinator,
    MemoryKeyValueTier,
    PaginationCursorDriver,
    TieredCacheStore,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TieredCacheStore:
    """L1-only store on a fake clock."""
    return TieredCacheStore(CacheConfig(ttl_ms=60_000, max_l1_entries=10), clock=clock)


@pytest.fixture
def remote(clock: FakeClock) -> MemoryKeyValueTier:
    return MemoryKeyValueTier(clock=clock.seconds)


@pytest.fixture
def tiered_store(clock: FakeClock, remote: MemoryKeyValueTier) -> TieredCacheStore:
    """Store with an in-memory shared tier."""
    return TieredCacheStore(
        CacheConfig(ttl_ms=60_000, max_l1_entries=10),
        remote=remote,
        clock=clock,
    )


@pytest.fixture
def coordinator(store: TieredCacheStore) -> FetchThroughCoordinator:
    return FetchThroughCoordinator(store)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource(
        {
            "db-articles": [article(str(i)) for i in range(1, 6)],
            "db-products": [{"id": "p1", "name": "Panel"}],
        }
    )


@pytest.fixture
def articles_type() -> ContentType:
    return ContentType(
        name="articles",
        collection_id="db-articles",
        mapper=map_article,
        dependents=("article-slugs",),
    )


@pytest.fixture
def products_type() -> ContentType:
    return ContentType(name="products", collection_id="db-products", mapper=dict)


@pytest.fixture
def repository(
    coordinator: FetchThroughCoordinator,
    source: FakeSource,
    articles_type: ContentType,
    products_type: ContentType,
) -> ContentRepository:
    return ContentRepository(
        coordinator,
        source,
        PaginationCursorDriver(max_pages=10, page_timeout=1.0),
        content_types=[articles_type, products_type],
    )
