"""ContentCache - wires the cache layer together and owns its resources."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any

import structlog

from contentcache.adapters.base import RemoteTier
from contentcache.adapters.redis import RedisKeyValueTier
from contentcache.adapters.rest import RestKeyValueTier
from contentcache.config import CacheConfig, ContentCacheSettings
from contentcache.content import NO_FALLBACK, ContentRepository, ContentType
from contentcache.coordinator import FetchThroughCoordinator
from contentcache.invalidation import (
    HmacSignatureVerifier,
    InvalidationController,
    SignatureVerifier,
    Subscriber,
)
from contentcache.pagination import PaginationCursorDriver
from contentcache.source import NotionContentSource, RemoteContentSource
from contentcache.store import TieredCacheStore
from contentcache.types import CacheStats, QueryOptions, now_ms

if TYPE_CHECKING:
    from fastapi import APIRouter

logger = structlog.get_logger(__name__)


class ContentCache:
    """Explicitly constructed content cache.

    Usage:
        async with ContentCache.from_settings(content_types=TYPES) as cache:
            articles = await cache.get_collection("articles")
            app.include_router(cache.webhook_router())
    """

    def __init__(
        self,
        source: RemoteContentSource,
        *,
        config: CacheConfig | None = None,
        remote: RemoteTier | None = None,
        driver: PaginationCursorDriver | None = None,
        webhook_secret: str | None = None,
        verifier: SignatureVerifier | None = None,
        content_types: Iterable[ContentType] = (),
        record_key_templates: Iterable[str] = ("page:{record_id}",),
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._source = source
        self.store = TieredCacheStore(config, remote=remote, clock=clock)
        self.coordinator = FetchThroughCoordinator(self.store)
        self.repository = ContentRepository(
            self.coordinator,
            source,
            driver,
            content_types=content_types,
            record_key_templates=record_key_templates,
        )
        if verifier is None and webhook_secret:
            verifier = HmacSignatureVerifier(webhook_secret)
        self.invalidation = InvalidationController(
            self.store,
            self.repository,
            verifier,
            coordinator=self.coordinator,
            clock=clock,
        )
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: ContentCacheSettings | None = None,
        *,
        content_types: Iterable[ContentType] = (),
        source: RemoteContentSource | None = None,
    ) -> ContentCache:
        """Build a cache from environment-driven settings."""
        settings = settings or ContentCacheSettings()

        if source is None:
            if settings.notion.token is None:
                raise ValueError("CONTENT_CACHE_NOTION__TOKEN is not set")
            source = NotionContentSource(
                settings.notion.token.get_secret_value(),
                base_url=settings.notion.base_url,
                version=settings.notion.version,
                timeout=settings.notion.timeout,
            )

        remote: RemoteTier | None = None
        if settings.redis_url:
            remote = RedisKeyValueTier.from_url(
                settings.redis_url, prefix=settings.cache.key_prefix
            )
        elif settings.kv_rest_url and settings.kv_rest_token:
            remote = RestKeyValueTier(
                settings.kv_rest_url,
                settings.kv_rest_token.get_secret_value(),
                prefix=settings.cache.key_prefix,
            )

        driver = PaginationCursorDriver(
            max_pages=settings.pagination.max_pages,
            page_timeout=settings.pagination.page_timeout_seconds,
            max_restarts=settings.pagination.max_restarts,
        )
        secret = settings.webhook_secret
        return cls(
            source,
            config=settings.cache,
            remote=remote,
            driver=driver,
            webhook_secret=secret.get_secret_value() if secret else None,
            content_types=content_types,
        )

    # -------------------------------------------------------------------------
    # Consumer API
    # -------------------------------------------------------------------------

    def register(self, content_type: ContentType) -> None:
        self.repository.register(content_type)

    async def get_collection(
        self,
        content_type: str | ContentType,
        options: QueryOptions | None = None,
        *,
        fallback: Any = NO_FALLBACK,
    ) -> list[Any]:
        """Entities of a content type, served from cache when possible."""
        return await self.repository.get_collection(
            content_type, options, fallback=fallback
        )

    async def invalidate_collection(self, content_type: str | ContentType) -> int:
        """Drop every cached dataset of a content type (administrative)."""
        prefixes = self.repository.prefixes_for_content_type(content_type)
        return await self.invalidation.invalidate_many(prefixes)

    async def handle_webhook(self, payload: bytes, signature: str | None) -> int:
        return await self.invalidation.handle_webhook(payload, signature)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Be told about every invalidation. Returns an unsubscribe function."""
        return self.invalidation.subscribe(callback)

    def etag(
        self, content_type: str | ContentType, options: QueryOptions | None = None
    ) -> str | None:
        """ETag of the cached dataset, or None when it isn't cached locally."""
        return self.store.etag(self.repository.cache_key(content_type, options))

    async def warm(self, *names: str) -> dict[str, int | None]:
        return await self.repository.warm(*names)

    def webhook_router(self, *, path: str = "/content-webhook") -> APIRouter:
        from contentcache.webhook import create_webhook_router

        return create_webhook_router(self.invalidation, path=path)

    @property
    def stats(self) -> CacheStats:
        return self.store.stats

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the background expired-entry sweep, if configured."""
        interval = self.store.config.sweep_interval_seconds
        if interval is None or self._sweeper is not None:
            return
        self._sweeper = asyncio.create_task(self._sweep(interval))

    async def _sweep(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.store.purge_expired()

    async def aclose(self) -> None:
        """Stop the sweeper, flush L1, disconnect L2 and the source client."""
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        await self.store.aclose()
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()
        logger.info("Content cache closed")

    async def __aenter__(self) -> ContentCache:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = ["ContentCache"]
