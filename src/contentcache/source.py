"""Remote content sources."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from contentcache.errors import CursorInvalid, RemoteUnavailable
from contentcache.types import Page, QueryOptions

logger = structlog.get_logger(__name__)


@runtime_checkable
class RemoteContentSource(Protocol):
    """A paginated CMS query endpoint."""

    async def query(
        self,
        collection: str,
        options: QueryOptions,
        cursor: str | None = None,
    ) -> Page:
        """Fetch one page of raw records.

        Raises:
            RemoteUnavailable: transport failure or server error
            CursorInvalid: the cursor is expired or unknown
        """
        ...


class NotionContentSource:
    """Content source backed by the Notion database query API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://api.notion.com",
        version: str = "2022-06-28",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Notion-Version": version,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def query(
        self,
        collection: str,
        options: QueryOptions,
        cursor: str | None = None,
    ) -> Page:
        """POST /v1/databases/{collection}/query for one page."""
        body: dict[str, Any] = {"page_size": options.page_size}
        if options.filter:
            body["filter"] = options.filter
        if options.sorts:
            body["sorts"] = options.sorts
        if cursor:
            body["start_cursor"] = cursor

        try:
            response = await self._client.post(
                f"/v1/databases/{collection}/query", json=body
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"Notion request failed: {e}") from e

        if not response.is_success:
            try:
                error = response.json()
            except ValueError:
                error = {}
            if not isinstance(error, dict):
                error = {}
            code = error.get("code", "")
            message = error.get("message") or f"HTTP {response.status_code}"
            if response.status_code == 400 and cursor and code == "validation_error":
                logger.info("Cursor rejected by Notion", collection=collection)
                raise CursorInvalid(message)
            raise RemoteUnavailable(
                f"Notion query failed ({code or response.status_code}): {message}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailable("Notion returned a non-JSON body") from e
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise RemoteUnavailable("Notion response has no results list")

        return Page(
            results=results,
            has_more=bool(data.get("has_more")),
            next_cursor=data.get("next_cursor"),
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()


__all__ = ["NotionContentSource", "RemoteContentSource"]
