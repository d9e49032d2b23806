"""Tests for the ResponseCache engine: TTL, LRU eviction, tags, stats, sweep."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeClock
from fetchkit.cache import ResponseCache, make_cache_key
from fetchkit.models import CacheConfig


@pytest.fixture()
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(CacheConfig(capacity=3, ttl_seconds=60), clock=clock)


# ------------------------------------------------------------------ #
# Core get/set behaviour
# ------------------------------------------------------------------ #


class TestGetSet:
    def test_set_and_get(self, cache: ResponseCache) -> None:
        cache.set("k", {"id": 1})
        hit = cache.get("k")
        assert hit is not None
        assert hit.value == {"id": 1}
        assert not hit.is_stale
        assert not hit.should_revalidate

    def test_miss_returns_none(self, cache: ResponseCache) -> None:
        assert cache.get("missing") is None

    def test_overwrite_replaces_value(self, cache: ResponseCache) -> None:
        cache.set("k", "old")
        cache.set("k", "new")
        assert cache.get("k").value == "new"
        assert len(cache) == 1

    def test_default_ttl_from_config(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("k", "v")
        clock.advance(60)
        assert cache.get("k") is not None
        clock.advance(0.5)
        assert cache.get("k") is None

    def test_delete(self, cache: ResponseCache) -> None:
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert "k" not in cache


# ------------------------------------------------------------------ #
# Expiry and staleness
# ------------------------------------------------------------------ #


class TestExpiry:
    def test_entry_expires_after_ttl(self, cache: ResponseCache, clock: FakeClock) -> None:
        """An entry set with ttl=1s is gone 1.1s later."""
        cache.set("k", "v", ttl=1.0)
        clock.advance(1.1)
        assert cache.get("k") is None
        assert "k" not in cache
        assert cache.stats()["expirations"] == 1

    def test_stale_hit_reports_revalidation(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("k", "v", ttl=10.0, max_age=1.0, stale_while_revalidate=True)
        clock.advance(2.0)
        hit = cache.get("k")
        assert hit is not None
        assert hit.value == "v"
        assert hit.is_stale
        assert hit.should_revalidate

    def test_stale_hit_without_swr_flag(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("k", "v", ttl=10.0, max_age=1.0)
        clock.advance(2.0)
        hit = cache.get("k")
        assert hit.is_stale
        assert not hit.should_revalidate

    def test_sweep_removes_only_expired(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("short", 1, ttl=1.0)
        cache.set("long", 2, ttl=100.0)
        clock.advance(5.0)
        assert cache.sweep_expired() == 1
        assert "short" not in cache
        assert "long" in cache


# ------------------------------------------------------------------ #
# Capacity and LRU eviction
# ------------------------------------------------------------------ #


class TestEviction:
    def test_size_never_exceeds_capacity(self, cache: ResponseCache, clock: FakeClock) -> None:
        for i in range(10):
            clock.advance(1)
            cache.set(f"k{i}", i)
            assert len(cache) <= cache.capacity
        assert cache.stats()["evictions"] == 7

    def test_least_recently_accessed_is_evicted(self, cache: ResponseCache, clock: FakeClock) -> None:
        """Capacity 3: set A,B,C, read A, set D -> B is evicted."""
        for key in ("A", "B", "C"):
            clock.advance(1)
            cache.set(key, key)
        clock.advance(1)
        cache.get("A")
        clock.advance(1)
        cache.set("D", "D")
        assert "B" not in cache
        assert {"A", "C", "D"} <= {k for k in ("A", "B", "C", "D") if k in cache}

    def test_lru_with_frozen_clock(self, cache: ResponseCache) -> None:
        """Equal timestamps fall back to access order."""
        for key in ("A", "B", "C"):
            cache.set(key, key)
        cache.get("A")
        cache.set("D", "D")
        assert "B" not in cache
        assert "A" in cache

    def test_overwrite_at_capacity_does_not_evict(self, cache: ResponseCache) -> None:
        for key in ("A", "B", "C"):
            cache.set(key, key)
        cache.set("B", "B2")
        assert len(cache) == 3
        assert cache.stats()["evictions"] == 0


# ------------------------------------------------------------------ #
# Tag invalidation
# ------------------------------------------------------------------ #


class TestTags:
    def test_delete_by_tag_removes_only_tagged(self, cache: ResponseCache) -> None:
        cache.set("a", 1, tags=["users"])
        cache.set("b", 2, tags=["users", "admins"])
        cache.set("c", 3, tags=["posts"])
        assert cache.delete_by_tag("users") == 2
        assert "a" not in cache and "b" not in cache
        assert "c" in cache

    def test_unknown_tag_removes_nothing(self, cache: ResponseCache) -> None:
        cache.set("a", 1, tags=["users"])
        assert cache.delete_by_tag("nope") == 0
        assert len(cache) == 1


# ------------------------------------------------------------------ #
# Statistics
# ------------------------------------------------------------------ #


class TestStats:
    def test_counters(self, cache: ResponseCache) -> None:
        cache.set("a", 1, tags=["t"])
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        cache.delete_by_tag("t")
        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["insertions"] == 1
        assert stats["deletions"] == 1
        assert stats["size"] == 0
        assert stats["capacity"] == 3
        assert stats["hit_rate"] == pytest.approx(2 / 3)

    def test_hit_rate_zero_without_lookups(self, cache: ResponseCache) -> None:
        assert cache.stats()["hit_rate"] == 0.0

    def test_reading_stats_does_not_change_them(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.get("a")
        assert cache.stats() == cache.stats()

    def test_clear_keeps_counters(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        stats = cache.stats()
        assert stats["size"] == 0
        assert stats["hits"] == 1


# ------------------------------------------------------------------ #
# Periodic sweep task
# ------------------------------------------------------------------ #


class TestSweepTask:
    @pytest.mark.asyncio
    async def test_background_sweep_removes_expired(self, clock: FakeClock) -> None:
        cache = ResponseCache(CacheConfig(ttl_seconds=1, sweep_interval=0.01), clock=clock)
        cache.set("k", "v")
        clock.advance(5)
        cache.start()
        assert cache.is_sweeping
        await asyncio.sleep(0.05)
        await cache.stop()
        assert "k" not in cache
        assert not cache.is_sweeping

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        cache = ResponseCache()
        cache.start()
        cache.start()
        await cache.stop()
        await cache.stop()
        assert not cache.is_sweeping


# ------------------------------------------------------------------ #
# Cache keys
# ------------------------------------------------------------------ #


class TestCacheKey:
    def test_same_inputs_same_key(self) -> None:
        assert make_cache_key("get", "https://a/x") == make_cache_key("GET", "https://a/x")

    def test_url_and_method_distinguish(self) -> None:
        assert make_cache_key("GET", "https://a/x") != make_cache_key("GET", "https://a/y")
        assert make_cache_key("GET", "https://a/x") != make_cache_key("HEAD", "https://a/x")

    def test_json_body_key_order_is_irrelevant(self) -> None:
        assert make_cache_key("GET", "/q", {"a": 1, "b": 2}) == make_cache_key("GET", "/q", {"b": 2, "a": 1})

    def test_body_distinguishes(self) -> None:
        assert make_cache_key("GET", "/q", "x") != make_cache_key("GET", "/q", "y")
        assert make_cache_key("GET", "/q", b"x") == make_cache_key("GET", "/q", "x")
