"""Tests for the lazy-expiry TTL cache."""

import pytest

from gateway.ttl_cache import DEFAULT_TTL_SECONDS, TTLCache


def test_default_ttl_is_ten_minutes():
    assert DEFAULT_TTL_SECONDS == 600


def test_get_returns_value_within_ttl(clock):
    cache = TTLCache(ttl_seconds=60, clock=clock)
    cache.set("a", "alpha")

    clock.advance(59.9)

    assert cache.get("a") == "alpha"


def test_entry_absent_and_purged_at_ttl(clock):
    """An entry stored at T is absent at T + TTL and removed by that lookup."""
    cache = TTLCache(ttl_seconds=60, clock=clock)
    cache.set("a", "alpha")

    clock.advance(60)

    assert "a" in cache, "Expired entries stay resident until looked up"
    assert cache.get("a") is None
    assert "a" not in cache, "Lookup of an expired entry must purge it"
    assert len(cache) == 0


def test_missing_key_returns_none(clock):
    cache = TTLCache(ttl_seconds=60, clock=clock)
    assert cache.get("nope") is None


def test_set_overwrites_and_restamps(clock):
    cache = TTLCache(ttl_seconds=60, clock=clock)
    cache.set("a", "old")
    clock.advance(50)
    cache.set("a", "new")
    clock.advance(50)

    assert cache.get("a") == "new", "Overwrite must refresh the timestamp"


def test_no_sweep_without_lookup(clock):
    """Unbounded cache keeps expired entries that are never read again."""
    cache = TTLCache(ttl_seconds=1, clock=clock)
    for i in range(5):
        cache.set(f"k{i}", "v")
    clock.advance(10)
    cache.set("fresh", "v")

    assert len(cache) == 6


def test_capacity_cap_prefers_expired_then_oldest(clock):
    cache = TTLCache(ttl_seconds=10, clock=clock, max_entries=3)
    cache.set("old", "1")
    clock.advance(11)
    cache.set("b", "2")
    cache.set("c", "3")

    cache.set("d", "4")
    assert "old" not in cache, "Expired entry should be evicted first"
    assert len(cache) == 3

    cache.set("e", "5")
    assert "b" not in cache, "Oldest live entry should be evicted when still full"
    assert [cache.get(k) for k in ("c", "d", "e")] == ["3", "4", "5"]


def test_overwrite_at_capacity_does_not_evict_others(clock):
    cache = TTLCache(ttl_seconds=10, clock=clock, max_entries=2)
    cache.set("a", "1")
    cache.set("b", "2")
    cache.set("a", "3")

    assert cache.get("a") == "3"
    assert cache.get("b") == "2"


@pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"ttl_seconds": 5, "max_entries": 0}])
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        TTLCache(**kwargs)
