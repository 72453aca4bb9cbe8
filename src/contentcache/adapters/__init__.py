"""Shared (L2) tier adapters."""

from contentcache.adapters.base import RemoteTier, decode_entry, encode_entry
from contentcache.adapters.memory import MemoryKeyValueTier
from contentcache.adapters.null import NoRemoteTier
from contentcache.adapters.redis import RedisKeyValueTier
from contentcache.adapters.rest import RestKeyValueTier

__all__ = [
    "MemoryKeyValueTier",
    "NoRemoteTier",
    "RedisKeyValueTier",
    "RemoteTier",
    "RestKeyValueTier",
    "decode_entry",
    "encode_entry",
]
