"""Cursor-driven collection drains.

A drain walks ``Start -> Fetching(cursor) -> Fetching(next) ...`` and ends in
one of three states: ``Complete`` (source said no more pages), ``Truncated``
(page ceiling reached, partial data returned) or ``Failed`` (exception).
"""

from __future__ import annotations

import asyncio

import structlog

from contentcache.errors import CursorInvalid, RemoteUnavailable
from contentcache.source import RemoteContentSource
from contentcache.types import DrainResult, DrainStatus, QueryOptions, RawRecord

logger = structlog.get_logger(__name__)


class PaginationCursorDriver:
    """Materializes a complete collection snapshot from a paginated source."""

    def __init__(
        self,
        *,
        max_pages: int = 50,
        page_timeout: float = 10.0,
        max_restarts: int = 2,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if page_timeout <= 0:
            raise ValueError("page_timeout must be positive")
        self._max_pages = max_pages
        self._page_timeout = page_timeout
        self._max_restarts = max_restarts

    @property
    def max_pages(self) -> int:
        return self._max_pages

    async def drain_all(
        self,
        source: RemoteContentSource,
        collection: str,
        options: QueryOptions | None = None,
    ) -> DrainResult:
        """Fetch every page of a collection.

        The page ceiling counts every page requested, including pages fetched
        before a cursor restart.

        Raises:
            RemoteUnavailable: a page timed out or the transport failed
            CursorInvalid: the cursor kept expiring past ``max_restarts``
        """
        options = options or QueryOptions()
        records: list[RawRecord] = []
        cursor: str | None = None
        pages = 0
        restarts = 0

        while True:
            if pages >= self._max_pages:
                logger.warning(
                    "Page ceiling reached, returning partial collection",
                    collection=collection,
                    pages=pages,
                    records=len(records),
                )
                return DrainResult(records, DrainStatus.TRUNCATED, pages, restarts)

            try:
                page = await asyncio.wait_for(
                    source.query(collection, options, cursor),
                    timeout=self._page_timeout,
                )
            except asyncio.TimeoutError as e:
                raise RemoteUnavailable(
                    f"Page {pages + 1} of {collection} timed out "
                    f"after {self._page_timeout}s"
                ) from e
            except CursorInvalid:
                if cursor is None or restarts >= self._max_restarts:
                    raise
                restarts += 1
                pages += 1
                logger.info(
                    "Cursor expired, restarting drain",
                    collection=collection,
                    restarts=restarts,
                )
                records = []
                cursor = None
                continue

            pages += 1
            records.extend(page.results)

            if not page.has_more or not page.next_cursor:
                return DrainResult(records, DrainStatus.COMPLETE, pages, restarts)
            cursor = page.next_cursor


__all__ = ["PaginationCursorDriver"]
