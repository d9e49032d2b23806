"""Tests for CacheEntry freshness rules and CacheValidator."""

from __future__ import annotations

from fetchkit.cache import CacheEntry, CacheValidator


def _entry(**kwargs) -> CacheEntry:
    defaults = {"value": "v", "created_at": 100.0, "ttl": 10.0}
    defaults.update(kwargs)
    return CacheEntry(**defaults)


class TestFreshness:
    def test_fresh_until_ttl_without_max_age(self) -> None:
        entry = _entry()
        assert not entry.is_stale(110.0)
        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.01)

    def test_stale_between_max_age_and_ttl(self) -> None:
        entry = _entry(max_age=2.0)
        assert not entry.is_stale(102.0)
        assert entry.is_stale(103.0)
        assert not entry.is_expired(103.0)

    def test_max_age_beyond_ttl_is_stale_only_at_expiry(self) -> None:
        entry = _entry(max_age=50.0)
        assert not entry.is_stale(110.0)
        assert entry.is_stale(110.5)
        assert entry.is_expired(110.5)

    def test_should_revalidate_requires_flag(self) -> None:
        assert not _entry(max_age=1.0).should_revalidate(105.0)
        assert _entry(max_age=1.0, stale_while_revalidate=True).should_revalidate(105.0)

    def test_fresh_entry_never_asks_for_revalidation(self) -> None:
        entry = _entry(max_age=5.0, stale_while_revalidate=True)
        assert not entry.should_revalidate(101.0)


class TestTouch:
    def test_last_accessed_defaults_to_created_at(self) -> None:
        assert _entry().last_accessed_at == 100.0

    def test_touch_counts_and_timestamps(self) -> None:
        entry = _entry()
        entry.touch(104.0)
        entry.touch(105.0)
        assert entry.access_count == 2
        assert entry.last_accessed_at == 105.0

    def test_touch_never_moves_backwards(self) -> None:
        entry = _entry()
        entry.touch(105.0)
        entry.touch(101.0)
        assert entry.last_accessed_at == 105.0


class TestValidator:
    def test_empty_validator_is_falsy(self) -> None:
        assert not CacheValidator()
        assert CacheValidator(etag='"abc"')

    def test_conditional_headers(self) -> None:
        validator = CacheValidator(etag='"abc"', last_modified="Wed, 21 Oct 2015 07:28:00 GMT")
        assert validator.conditional_headers() == {
            "If-None-Match": '"abc"',
            "If-Modified-Since": "Wed, 21 Oct 2015 07:28:00 GMT",
        }

    def test_conditional_headers_skip_missing_tokens(self) -> None:
        assert CacheValidator(etag='"x"').conditional_headers() == {"If-None-Match": '"x"'}
