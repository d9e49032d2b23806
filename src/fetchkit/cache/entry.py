"""A single cached value with its freshness and usage metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class CacheValidator:
    """Conditional-request tokens captured from a cached response."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.etag or self.last_modified)

    def conditional_headers(self) -> dict[str, str]:
        """Headers that turn a refresh into a conditional request."""
        headers: dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


@dataclass
class CacheEntry:
    """Cached value plus freshness metadata.

    Ages are measured against the clock of the owning
    :class:`~fetchkit.cache.ResponseCache`.

    * **fresh** -- age <= ``max_age`` (or ``ttl`` when ``max_age`` is unset)
    * **stale** -- past ``max_age`` but not past ``ttl``
    * **expired** -- past ``ttl``; never returned

    A ``max_age`` larger than ``ttl`` is accepted: the entry then only
    becomes stale at the moment it expires.
    """

    value: Any
    created_at: float
    ttl: float
    max_age: Optional[float] = None
    tags: frozenset[str] = field(default_factory=frozenset)
    validator: Optional[CacheValidator] = None
    stale_while_revalidate: bool = False
    access_count: int = 0
    last_accessed_at: float = 0.0

    def __post_init__(self) -> None:
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl

    def is_stale(self, now: float) -> bool:
        if self.max_age is not None and self.max_age < self.ttl:
            return self.age(now) > self.max_age
        return self.is_expired(now)

    def should_revalidate(self, now: float) -> bool:
        return self.stale_while_revalidate and self.is_stale(now)

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed_at = max(self.last_accessed_at, now)
