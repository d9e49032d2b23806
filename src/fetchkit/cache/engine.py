"""Bounded in-process response cache with TTL, LRU and tag invalidation.

:class:`ResponseCache` maps cache keys (see :func:`make_cache_key`) to
:class:`~fetchkit.cache.entry.CacheEntry` objects and classifies every hit as
fresh or stale so that :class:`~fetchkit.client.AsyncClient` can decide
between returning immediately and serving stale-while-revalidate.

Resident entries are bounded by :attr:`~fetchkit.models.CacheConfig.capacity`.
When inserting a new key would exceed it, exactly one entry is evicted first:
the least recently accessed one.  Ties on the access timestamp go to the
entry that was written or read least recently: the store is kept in access
order, with every hit and every overwrite moving the key to the end.

Expired entries are dropped lazily on lookup and by a periodic sweep task
started with :meth:`ResponseCache.start` and stopped with
:meth:`ResponseCache.stop`.

All public operations are serialised by one lock, so the cache is safe to
share between tasks and threads; an overwrite swaps the whole entry object.

See Also:
    :class:`~fetchkit.models.CacheConfig` -- capacity, TTL and sweep interval.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from fetchkit.cache.entry import CacheEntry, CacheValidator
from fetchkit.models import CacheConfig
from fetchkit.output import get_output


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache hit."""

    value: Any
    is_stale: bool
    should_revalidate: bool
    validator: Optional[CacheValidator] = None


class ResponseCache:
    """In-memory cache for HTTP responses.

    Args:
        config: Cache configuration (capacity, default TTL, sweep interval).
        clock: Monotonic time source in seconds.  Injected by tests.

    Example::

        cache = ResponseCache(CacheConfig(capacity=2))
        cache.set("k1", "v1", ttl=5.0, tags=["users"])
        hit = cache.get("k1")
        assert hit is not None and not hit.is_stale
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task[None]] = None
        self._hits = 0
        self._misses = 0
        self._insertions = 0
        self._deletions = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def capacity(self) -> int:
        return self._config.capacity

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    # ------------------------------------------------------------------ #
    # Lookup and insertion
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Optional[CacheLookup]:
        """Look up *key*.

        Returns:
            A :class:`CacheLookup` on a hit, or ``None`` when the key is
            absent or expired (an expired entry is removed).
        """
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._store[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.touch(now)
            # Re-insert so store order tracks access order for tie-breaks.
            self._store[key] = self._store.pop(key)
            self._hits += 1
            return CacheLookup(
                value=entry.value,
                is_stale=entry.is_stale(now),
                should_revalidate=entry.should_revalidate(now),
                validator=entry.validator,
            )

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        max_age: Optional[float] = None,
        tags: Iterable[str] = (),
        validator: Optional[CacheValidator] = None,
        stale_while_revalidate: bool = False,
    ) -> None:
        """Store *value* under *key*, replacing any existing entry.

        Args:
            key: Cache key, usually from :func:`make_cache_key`.
            value: Opaque payload.
            ttl: Hard expiry in seconds; defaults to ``config.ttl_seconds``.
            max_age: Soft expiry after which the entry is stale.
            tags: Labels for :meth:`delete_by_tag`.
            validator: Conditional-request tokens for refreshes.
            stale_while_revalidate: Whether a stale hit asks for a refresh.
        """
        with self._lock:
            now = self._clock()
            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self._config.capacity:
                self._evict_lru()

            self._store[key] = CacheEntry(
                value=value,
                created_at=now,
                ttl=ttl if ttl is not None else self._config.ttl_seconds,
                max_age=max_age,
                tags=frozenset(tags),
                validator=validator,
                stale_while_revalidate=stale_while_revalidate,
            )
            self._insertions += 1

    def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if an entry was removed."""
        with self._lock:
            if self._store.pop(key, None) is None:
                return False
            self._deletions += 1
            return True

    def delete_by_tag(self, tag: str) -> int:
        """Remove every entry tagged with *tag* and return how many were removed."""
        with self._lock:
            doomed = [key for key, entry in self._store.items() if tag in entry.tags]
            for key in doomed:
                del self._store[key]
            self._deletions += len(doomed)
            return len(doomed)

    def sweep_expired(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            doomed = [key for key, entry in self._store.items() if entry.is_expired(now)]
            for key in doomed:
                del self._store[key]
            self._expirations += len(doomed)
            return len(doomed)

    def clear(self) -> None:
        """Remove all entries.  Counters are kept."""
        with self._lock:
            self._store.clear()

    def stats(self) -> dict[str, Any]:
        """Return a snapshot of the cache counters.

        Returns:
            A ``dict`` with ``hits``, ``misses``, ``insertions``,
            ``deletions``, ``evictions``, ``expirations``, ``size``,
            ``capacity`` and ``hit_rate`` (``0.0`` before any lookup).
        """
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "insertions": self._insertions,
                "deletions": self._deletions,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "size": len(self._store),
                "capacity": self._config.capacity,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }

    def _evict_lru(self) -> None:
        # Caller holds the lock.  min() keeps the first minimum, which is the
        # least recently used entry among equal timestamps.
        if not self._store:
            return
        victim = min(self._store, key=lambda k: self._store[k].last_accessed_at)
        del self._store[victim]
        self._evictions += 1

    # ------------------------------------------------------------------ #
    # Periodic sweep
    # ------------------------------------------------------------------ #

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop (no-op if running)."""
        if self.is_sweeping:
            return
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="fetchkit-cache-sweep"
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish.  Idempotent."""
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        interval = self._config.sweep_interval
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep_expired()
            if removed:
                get_output().debug(f"Cache sweep removed {removed} expired entries")


def make_cache_key(method: str, url: str, body: Any = None) -> str:
    """Derive a cache key from the request method, absolute URL, and body.

    Structured bodies are serialised as JSON with sorted keys, so logically
    equal bodies map to the same key; ``str``/``bytes`` bodies are used
    verbatim and a missing body contributes the empty string.  Query
    parameters and content-affecting headers must already be part of *url*.
    """
    if body is None:
        fingerprint = b""
    elif isinstance(body, bytes):
        fingerprint = body
    elif isinstance(body, str):
        fingerprint = body.encode("utf-8")
    else:
        fingerprint = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    digest = hashlib.sha256()
    digest.update(f"{method.upper()}|{url}|".encode("utf-8"))
    digest.update(fingerprint)
    return digest.hexdigest()
