"""contentcache - fetch-through tiered caching for headless CMS content."""

# Shared tier adapters
from contentcache.adapters import (
    MemoryKeyValueTier,
    NoRemoteTier,
    RedisKeyValueTier,
    RemoteTier,
    RestKeyValueTier,
)

# Facade
from contentcache.client import ContentCache

# Configuration
from contentcache.config import CacheConfig, ContentCacheSettings

# Consumer API
from contentcache.content import ContentRepository, ContentType
from contentcache.coordinator import FetchThroughCoordinator

# Duration parsing
from contentcache.duration import parse_duration

# Errors
from contentcache.errors import (
    CacheSerializationError,
    ContentCacheError,
    CursorInvalid,
    InvalidWebhookPayload,
    RemoteSchemaError,
    RemoteUnavailable,
    WebhookVerificationFailed,
)
from contentcache.invalidation import (
    CollectionDependencies,
    HmacSignatureVerifier,
    InvalidationController,
)
from contentcache.keys import generate_etag, make_key, query_key
from contentcache.pagination import PaginationCursorDriver
from contentcache.source import NotionContentSource, RemoteContentSource
from contentcache.store import TieredCacheStore

# Core types
from contentcache.types import (
    CacheEntry,
    CachePolicy,
    CacheStats,
    DrainResult,
    DrainStatus,
    InvalidationEvent,
    InvalidationNotice,
    Page,
    QueryOptions,
)

__version__ = "0.1.0"

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CachePolicy",
    "CacheSerializationError",
    "CacheStats",
    "CollectionDependencies",
    "ContentCache",
    "ContentCacheError",
    "ContentCacheSettings",
    "ContentRepository",
    "ContentType",
    "CursorInvalid",
    "DrainResult",
    "DrainStatus",
    "FetchThroughCoordinator",
    "HmacSignatureVerifier",
    "InvalidWebhookPayload",
    "InvalidationController",
    "InvalidationEvent",
    "InvalidationNotice",
    "MemoryKeyValueTier",
    "NoRemoteTier",
    "NotionContentSource",
    "Page",
    "PaginationCursorDriver",
    "QueryOptions",
    "RedisKeyValueTier",
    "RemoteContentSource",
    "RemoteSchemaError",
    "RemoteTier",
    "RemoteUnavailable",
    "RestKeyValueTier",
    "TieredCacheStore",
    "WebhookVerificationFailed",
    "generate_etag",
    "make_key",
    "parse_duration",
    "query_key",
]
