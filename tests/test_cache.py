"""
Tests for the market data TTL cache.

Tests:
- Get/set with default and per-key-class TTLs
- Lazy expiry and bulk prune
- Hit/miss statistics
"""

import pytest

from src.market.cache import CacheKeyClass, MarketDataCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MarketDataCache(default_ttl=60.0, clock=clock)


class TestMarketDataCache:
    """Tests for MarketDataCache."""

    def test_miss_returns_none(self, cache):
        assert cache.get("missing") is None

    def test_set_and_get(self, cache):
        cache.set("k", {"price": 1.5})
        assert cache.get("k") == {"price": 1.5}
        assert "k" in cache

    def test_expiry(self, cache, clock):
        cache.set("k", 1, ttl=10)

        clock.now += 10
        assert cache.get("k") == 1

        clock.now += 0.1
        assert cache.get("k") is None
        assert "k" not in cache

    def test_default_ttl(self, cache, clock):
        cache.set("k", 1)
        clock.now += 61
        assert cache.get("k") is None

    def test_delete_and_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()
        assert len(cache) == 0

    def test_prune(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.now += 10

        assert cache.prune() == 1
        assert len(cache) == 1

    def test_stats(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("other")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(0.5)


class TestCacheKeyClass:
    """Tests for key-class TTLs."""

    def test_key_format(self):
        assert CacheKeyClass.PRICE.key("A") == "price:A"
        assert CacheKeyClass.MARKET_DATA.key("A") == "market_data:A"

    def test_metadata_lives_five_minutes(self, cache, clock):
        cache.set_for(CacheKeyClass.TOKEN_METADATA, "A", "meta")
        cache.set_for(CacheKeyClass.PRICE, "A", 1.0)

        clock.now += 120

        assert cache.get_for(CacheKeyClass.TOKEN_METADATA, "A") == "meta"
        assert cache.get_for(CacheKeyClass.PRICE, "A") is None
