"""Cache invalidation: explicit prefixes and signed CMS webhooks."""

from __future__ import annotations

import hashlib
import hmac
import inspect
import json
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

import structlog

from contentcache.coordinator import FetchThroughCoordinator
from contentcache.errors import InvalidWebhookPayload, WebhookVerificationFailed
from contentcache.store import TieredCacheStore
from contentcache.types import InvalidationEvent, InvalidationNotice, now_ms

logger = structlog.get_logger(__name__)

Subscriber = Callable[[InvalidationNotice], Awaitable[None] | None]


# =============================================================================
# Signature verification
# =============================================================================


@runtime_checkable
class SignatureVerifier(Protocol):
    """Checks a webhook signature against the raw payload bytes."""

    def verify(self, payload: bytes, signature: str | None) -> bool:
        ...


class HmacSignatureVerifier:
    """HMAC-SHA256 hex signatures compared in constant time."""

    def __init__(self, secret: str | bytes) -> None:
        if not secret:
            raise ValueError("webhook secret must not be empty")
        self._secret = secret.encode() if isinstance(secret, str) else secret

    def sign(self, payload: bytes) -> str:
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def verify(self, payload: bytes, signature: str | None) -> bool:
        if not signature:
            return False
        candidate = signature.strip().lower()
        if candidate.startswith("sha256="):
            candidate = candidate[len("sha256=") :]
        # compare_digest on str rejects non-ASCII; compare bytes instead
        return hmac.compare_digest(
            self.sign(payload).encode(), candidate.encode("utf-8", "replace")
        )


# =============================================================================
# Dependency resolution
# =============================================================================


@runtime_checkable
class DependencyResolver(Protocol):
    """Maps a change event to the cache entries it can affect."""

    def prefixes_for(self, event: InvalidationEvent) -> Iterable[str]:
        """Namespaces removed by prefix."""
        ...

    def keys_for(self, event: InvalidationEvent) -> Iterable[str]:
        """Record-scoped keys removed exactly."""
        ...


class CollectionDependencies:
    """Static collection id -> prefixes mapping.

    Example:
        CollectionDependencies(
            {"db-articles": ["articles", "article-slugs"]},
            record_key_templates=["page:{record_id}"],
        )
    """

    def __init__(
        self,
        collections: Mapping[str, Iterable[str]] | None = None,
        *,
        record_key_templates: Iterable[str] = ("page:{record_id}",),
    ) -> None:
        self._collections = {k: list(v) for k, v in (collections or {}).items()}
        self._record_key_templates = tuple(record_key_templates)

    def prefixes_for(self, event: InvalidationEvent) -> list[str]:
        return sorted(set(self._collections.get(event.collection_key, [event.collection_key])))

    def keys_for(self, event: InvalidationEvent) -> list[str]:
        if not event.changed_record_id:
            return []
        return [t.format(record_id=event.changed_record_id) for t in self._record_key_templates]


# =============================================================================
# Webhook parsing
# =============================================================================


def parse_webhook_event(
    payload: bytes, *, received_at: int | None = None
) -> InvalidationEvent:
    """Parse ``{type, data: {object, id, parent: {collection_id}}}``.

    ``parent.database_id`` is accepted as an alias for ``collection_id``; an
    event about a database object itself names its own collection.
    """
    try:
        body: Any = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidWebhookPayload(f"Body is not valid JSON: {e}") from e
    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        raise InvalidWebhookPayload("Body has no data object")

    data = body["data"]
    record_id = data.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise InvalidWebhookPayload("data.id is missing")

    parent = data.get("parent") if isinstance(data.get("parent"), dict) else {}
    collection = parent.get("collection_id") or parent.get("database_id")
    if not collection and data.get("object") == "database":
        collection = record_id
    if not isinstance(collection, str) or not collection:
        raise InvalidWebhookPayload("data.parent.collection_id is missing")

    return InvalidationEvent(
        collection_key=collection,
        changed_record_id=record_id,
        received_at=received_at if received_at is not None else now_ms(),
        event_type=str(body.get("type") or "unknown"),
    )


# =============================================================================
# Controller
# =============================================================================


class InvalidationController:
    """Removes cache entries when content changes.

    Subscribers registered with ``subscribe`` are told about every removal,
    e.g. to push a refresh to connected clients.
    """

    def __init__(
        self,
        store: TieredCacheStore,
        resolver: DependencyResolver | None = None,
        verifier: SignatureVerifier | None = None,
        *,
        coordinator: FetchThroughCoordinator | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._resolver = resolver or CollectionDependencies()
        self._verifier = verifier
        self._coordinator = coordinator
        self._clock = clock
        self._subscribers: list[Subscriber] = []
        self._logger = logger.bind(component="InvalidationController")

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a sync or async callback. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _notify(self, target: str, record_id: str | None, removed: int) -> None:
        if not self._subscribers:
            return
        notice = InvalidationNotice(
            prefix=target, record_id=record_id, timestamp=self._clock(), removed=removed
        )
        for callback in list(self._subscribers):
            try:
                result = callback(notice)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Subscriber errors are logged, never raised
                self._logger.warning(
                    "Invalidation subscriber failed", prefix=target, error=repr(e)
                )

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    async def invalidate(self, collection_key: str, *, record_id: str | None = None) -> int:
        """Remove every entry under a prefix in both tiers.

        Idempotent: an already empty namespace returns 0.
        """
        if self._coordinator is not None:
            self._coordinator.detach(collection_key)
        removed = await self._store.delete_by_prefix(collection_key)
        await self._notify(collection_key, record_id, removed)
        return removed

    async def invalidate_many(
        self, prefixes: Iterable[str], *, record_id: str | None = None
    ) -> int:
        total = 0
        for prefix in prefixes:
            total += await self.invalidate(prefix, record_id=record_id)
        return total

    async def invalidate_key(self, key: str, *, record_id: str | None = None) -> bool:
        """Remove exactly one key; keys that merely start with it stay."""
        if self._coordinator is not None:
            self._coordinator.forget(key)
        removed = await self._store.delete(key)
        await self._notify(key, record_id, int(removed))
        return removed

    async def handle_event(self, event: InvalidationEvent) -> int:
        prefixes = list(self._resolver.prefixes_for(event))
        keys = list(self._resolver.keys_for(event))
        removed = await self.invalidate_many(prefixes, record_id=event.changed_record_id)
        for key in keys:
            if await self.invalidate_key(key, record_id=event.changed_record_id):
                removed += 1
        self._logger.info(
            "Content change processed",
            collection=event.collection_key,
            record_id=event.changed_record_id,
            event_type=event.event_type,
            prefixes=prefixes,
            keys=keys,
            removed=removed,
        )
        return removed

    async def handle_webhook(self, payload: bytes, signature: str | None) -> int:
        """Verify and apply a CMS webhook.

        Returns:
            Number of cache entries removed

        Raises:
            WebhookVerificationFailed: bad or missing signature (nothing is
                invalidated)
            InvalidWebhookPayload: signed body could not be parsed
        """
        if self._verifier is None:
            self._logger.warning("Webhook rejected, no secret configured")
            raise WebhookVerificationFailed("No webhook secret configured")
        if not self._verifier.verify(payload, signature):
            self._logger.warning("Webhook signature mismatch", payload_bytes=len(payload))
            raise WebhookVerificationFailed("Webhook signature mismatch")

        event = parse_webhook_event(payload, received_at=self._clock())
        return await self.handle_event(event)


__all__ = [
    "CollectionDependencies",
    "DependencyResolver",
    "HmacSignatureVerifier",
    "InvalidationController",
    "SignatureVerifier",
    "Subscriber",
    "parse_webhook_event",
]
