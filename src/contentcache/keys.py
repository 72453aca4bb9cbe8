"""Cache key construction.

Keys are ``namespace[:qualifier...]`` strings. Every key that starts with a
namespace is removed when that namespace is invalidated, so qualifiers are
escaped and never contain a bare ``:``.
"""

import hashlib
import json

from contentcache.types import QueryOptions

SEPARATOR = ":"

_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}


def escape_part(part: object) -> str:
    """Escape one key segment."""
    result = str(part)
    for char, escaped in _ESCAPE_MAP.items():
        result = result.replace(char, escaped)
    return result


def make_key(namespace: str, *qualifiers: object) -> str:
    """Build a cache key from a namespace and optional qualifiers.

    Example:
        make_key("articles")                      # "articles"
        make_key("articles", "category", "blog")  # "articles:category:blog"
        make_key("page", "3f2a")                  # "page:3f2a"
    """
    if not namespace:
        raise ValueError("namespace must not be empty")
    if SEPARATOR in namespace:
        raise ValueError(f"namespace must not contain {SEPARATOR!r}: {namespace!r}")
    return SEPARATOR.join([namespace, *(escape_part(q) for q in qualifiers)])


def options_digest(options: QueryOptions) -> str:
    """Short stable digest of filter, sorts and page size."""
    return hashlib.sha256(
        json.dumps(options.fingerprint(), sort_keys=True, default=str).encode()
    ).hexdigest()[:16]


def query_key(namespace: str, options: QueryOptions | None = None) -> str:
    """Key for a collection query.

    The unfiltered query maps to ``namespace:all``; any other filter/sort
    combination gets its own ``namespace:q:<digest>`` dataset.
    """
    if options is None or options == QueryOptions():
        return make_key(namespace, "all")
    return make_key(namespace, "q", options_digest(options))


def generate_etag(value: object) -> str:
    """Quoted strong validator for a cached value.

    Strings are hashed as-is; anything else as canonical JSON, so equal
    content always yields the same tag.
    """
    content = value if isinstance(value, str) else json.dumps(
        value, sort_keys=True, separators=(",", ":"), default=str
    )
    return '"' + hashlib.sha256(content.encode()).hexdigest()[:32] + '"'
