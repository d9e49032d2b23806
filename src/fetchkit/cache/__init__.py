"""In-process response caching for fetchkit.

This package provides :class:`ResponseCache`, a bounded key/value store with
TTL expiry, least-recently-accessed eviction, tag-based bulk invalidation and
stale-while-revalidate classification.  Entries live only as long as the
owning :class:`~fetchkit.client.AsyncClient`; nothing is written to disk.

Keys are produced by :func:`make_cache_key` from the request method, URL and
body.
"""

from fetchkit.cache.engine import CacheLookup, ResponseCache, make_cache_key
from fetchkit.cache.entry import CacheEntry, CacheValidator

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheValidator",
    "ResponseCache",
    "make_cache_key",
]
