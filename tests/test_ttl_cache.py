"""Tests for cache/ttl_cache.py — expiry driven by an injected clock."""

from ordersync.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_before_expiry():
    clock = FakeClock()
    cache = TTLCache(default_ttl=600, clock=clock)
    cache.set("users", {"1": "Sara"})
    clock.now += 599
    assert cache.get("users") == {"1": "Sara"}


def test_entry_expires_at_ttl():
    clock = FakeClock()
    cache = TTLCache(default_ttl=600, clock=clock)
    cache.set("users", {"1": "Sara"})
    clock.now += 600
    assert cache.get("users") is None
    assert "users" not in cache


def test_per_entry_ttl_overrides_default():
    clock = FakeClock()
    cache = TTLCache(default_ttl=600, clock=clock)
    cache.set("products", ["p"], ttl=3600)
    assert cache.expiry("products") == 1000.0 + 3600
    clock.now += 1800
    assert cache.get("products") == ["p"]


def test_missing_key_default():
    cache = TTLCache()
    assert cache.get("nope", "fallback") == "fallback"
    assert cache.expiry("nope") is None


def test_invalidate():
    cache = TTLCache()
    cache.set("k", 1)
    cache.invalidate("k")
    assert "k" not in cache


def test_cleanup_expired_counts_removed():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)
    clock.now += 50
    assert cache.cleanup_expired() == 1
    assert "b" in cache


def test_falsy_values_are_cached():
    cache = TTLCache()
    cache.set("empty", {})
    assert "empty" in cache
    assert cache.get("empty") == {}
