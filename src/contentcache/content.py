"""Content types and the consumer-facing read API."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from contentcache.coordinator import FetchThroughCoordinator
from contentcache.errors import ContentCacheError, RemoteSchemaError
from contentcache.keys import make_key, query_key
from contentcache.pagination import PaginationCursorDriver
from contentcache.source import RemoteContentSource
from contentcache.types import CachePolicy, InvalidationEvent, QueryOptions, RawRecord

logger = structlog.get_logger(__name__)

# Raw record -> domain entity. Return None to drop a record on purpose.
Mapper = Callable[[RawRecord], Any]

NO_FALLBACK = object()


def normalize_collection_id(collection_id: str) -> str:
    """Notion ids appear both with and without dashes."""
    return collection_id.replace("-", "").lower()


@dataclass(frozen=True, slots=True)
class ContentType:
    """A cached content type bound to one CMS collection.

    ``name`` is the cache namespace. ``dependents`` lists further namespaces
    derived from the same collection (slug lookups, related lists) that must
    be invalidated together with it.
    """

    name: str
    collection_id: str
    mapper: Mapper
    policy: CachePolicy | None = None
    options: QueryOptions = field(default_factory=QueryOptions)
    dependents: tuple[str, ...] = ()

    def prefixes(self) -> list[str]:
        return [self.name, *self.dependents]


class ContentRepository:
    """Reads collections through the fetch-through cache."""

    def __init__(
        self,
        coordinator: FetchThroughCoordinator,
        source: RemoteContentSource,
        driver: PaginationCursorDriver | None = None,
        *,
        content_types: Iterable[ContentType] = (),
        record_key_templates: Iterable[str] = ("page:{record_id}",),
    ) -> None:
        self._coordinator = coordinator
        self._source = source
        self._driver = driver or PaginationCursorDriver()
        self._types: dict[str, ContentType] = {}
        self._record_key_templates = tuple(record_key_templates)
        self._logger = logger.bind(component="ContentRepository")
        for content_type in content_types:
            self.register(content_type)

    def register(self, content_type: ContentType) -> None:
        """Add a content type. Names are cache namespaces and must be unique."""
        make_key(content_type.name)  # validates the namespace
        if content_type.name in self._types:
            raise ValueError(f"Content type already registered: {content_type.name!r}")
        for other in self._types:
            if other.startswith(content_type.name) or content_type.name.startswith(other):
                self._logger.warning(
                    "Overlapping namespaces are invalidated together",
                    namespace=content_type.name,
                    other=other,
                )
        self._types[content_type.name] = content_type

    def content_type(self, name: str | ContentType) -> ContentType:
        if isinstance(name, ContentType):
            return name
        try:
            return self._types[name]
        except KeyError:
            raise ValueError(f"Unknown content type: {name!r}") from None

    @property
    def content_types(self) -> list[ContentType]:
        return list(self._types.values())

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def cache_key(
        self, content_type: str | ContentType, options: QueryOptions | None = None
    ) -> str:
        """Key a ``get_collection`` call with these arguments reads and fills."""
        ct = self.content_type(content_type)
        return query_key(ct.name, options if options is not None else ct.options)

    async def get_collection(
        self,
        content_type: str | ContentType,
        options: QueryOptions | None = None,
        *,
        fallback: Any = NO_FALLBACK,
    ) -> list[Any]:
        """Return every entity of a content type.

        ``options`` replaces the content type's default query; each distinct
        query is cached under its own key. With ``fallback`` set, fetch
        failures are logged and the fallback is returned instead of raised.
        """
        ct = self.content_type(content_type)
        effective = options if options is not None else ct.options
        key = query_key(ct.name, effective)
        policy = ct.policy or self._coordinator.store.default_policy

        async def load() -> list[Any]:
            return await self._load(ct, effective)

        try:
            return await self._coordinator.get_or_populate(key, load, policy=policy)
        except ContentCacheError as e:
            if fallback is NO_FALLBACK:
                raise
            self._logger.warning(
                "Serving fallback after fetch failure",
                content_type=ct.name,
                error=str(e),
            )
            return fallback

    async def _load(self, ct: ContentType, options: QueryOptions) -> list[Any]:
        result = await self._driver.drain_all(self._source, ct.collection_id, options)
        entities = self._map_records(ct, result.records)
        self._logger.info(
            "Collection loaded",
            content_type=ct.name,
            records=len(result.records),
            entities=len(entities),
            pages=result.pages_fetched,
            status=result.status.value,
        )
        return entities

    def _map_records(self, ct: ContentType, records: list[RawRecord]) -> list[Any]:
        """Map records one by one; a bad record is skipped, not fatal."""
        entities: list[Any] = []
        for index, record in enumerate(records):
            record_id = record.get("id") if isinstance(record, dict) else None
            try:
                entity = ct.mapper(record)
            except Exception as e:
                error = e if isinstance(e, RemoteSchemaError) else RemoteSchemaError(
                    f"{type(e).__name__}: {e}", record_id=record_id
                )
                self._logger.warning(
                    "Skipping unmappable record",
                    content_type=ct.name,
                    index=index,
                    record_id=record_id,
                    error=str(error),
                )
                continue
            if entity is not None:
                entities.append(entity)
        return entities

    async def warm(self, *names: str) -> dict[str, int | None]:
        """Pre-load content types (all registered ones by default).

        Returns entity counts per content type; None marks a failed type.
        """
        targets = [self.content_type(n) for n in names] or self.content_types

        async def one(ct: ContentType) -> int | None:
            try:
                return len(await self.get_collection(ct))
            except ContentCacheError as e:
                self._logger.warning("Cache warm failed", content_type=ct.name, error=str(e))
                return None

        counts = await asyncio.gather(*(one(ct) for ct in targets))
        return {ct.name: count for ct, count in zip(targets, counts)}

    # -------------------------------------------------------------------------
    # Invalidation dependencies
    # -------------------------------------------------------------------------

    def prefixes_for_content_type(self, content_type: str | ContentType) -> list[str]:
        return self.content_type(content_type).prefixes()

    def prefixes_for(self, event: InvalidationEvent) -> list[str]:
        """Every cache namespace a change to one record can affect."""
        target = normalize_collection_id(event.collection_key)
        prefixes: set[str] = set()
        for ct in self._types.values():
            if normalize_collection_id(ct.collection_id) == target or ct.name == event.collection_key:
                prefixes.update(ct.prefixes())
        return sorted(prefixes)

    def keys_for(self, event: InvalidationEvent) -> list[str]:
        """Exact record-scoped keys for the changed record."""
        if not event.changed_record_id:
            return []
        return [t.format(record_id=event.changed_record_id) for t in self._record_key_templates]


__all__ = ["ContentRepository", "ContentType", "Mapper", "normalize_collection_id"]
