"""Tests for the per-dimension TTL cache."""

import pytest

from secpipe.dimensions.cache import DEFAULT_TTL_SECONDS, CacheKey, DimensionCache
from secpipe.dimensions.filters import Filter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return DimensionCache(ttl_seconds=60, clock=clock)


class TestCacheKey:

    def test_string_forms(self):
        assert str(CacheKey.all()) == "All"
        assert str(CacheKey.key("c1")) == "Key:c1"
        flt = Filter.where("region", "eq", "eastus")
        assert str(CacheKey.find(flt)) == f"Find:{flt.canonical_key()}"

    def test_equal_filters_give_equal_keys(self):
        a = Filter.where("a", "eq", 1).and_("b", "eq", 2)
        b = Filter.where("b", "eq", 2).and_("a", "eq", 1)
        assert CacheKey.find(a) == CacheKey.find(b)


class TestDimensionCache:

    def test_default_ttl(self):
        assert DimensionCache().ttl_seconds == DEFAULT_TTL_SECONDS == 900

    def test_rejects_negative_ttl(self):
        with pytest.raises(ValueError):
            DimensionCache(ttl_seconds=-1)

    def test_miss_on_empty(self, cache):
        assert cache.get(CacheKey.all()) == (False, None)

    def test_hit_after_set(self, cache):
        cache.set(CacheKey.all(), [1, 2])
        assert cache.get(CacheKey.all()) == (True, [1, 2])

    def test_caches_none_value(self, cache):
        cache.set(CacheKey.key("missing"), None)
        assert cache.get(CacheKey.key("missing")) == (True, None)

    def test_valid_at_exact_ttl(self, cache, clock):
        cache.set(CacheKey.all(), [1])
        clock.advance(60)
        assert cache.get(CacheKey.all()) == (True, [1])

    def test_expires_after_ttl(self, cache, clock):
        cache.set(CacheKey.all(), [1])
        clock.advance(60.5)

        assert cache.get(CacheKey.all()) == (False, None)
        assert cache.size() == 0
        assert cache.get_stats()["expirations"] == 1

    def test_zero_ttl_expires_on_any_elapsed_time(self, clock):
        cache = DimensionCache(ttl_seconds=0, clock=clock)
        cache.set(CacheKey.all(), [1])

        assert cache.get(CacheKey.all())[0] is True
        clock.advance(0.001)
        assert cache.get(CacheKey.all())[0] is False

    def test_clear(self, cache):
        cache.set(CacheKey.all(), [1])
        cache.set(CacheKey.key("a"), {"a": 1})
        cache.clear()

        assert cache.size() == 0
        assert cache.keys() == []

    def test_keys(self, cache):
        cache.set(CacheKey.all(), [])
        cache.set(CacheKey.key("a"), None)
        assert sorted(cache.keys()) == ["All", "Key:a"]

    def test_stats(self, cache):
        cache.get(CacheKey.all())
        cache.set(CacheKey.all(), [])
        cache.get(CacheKey.all())
        cache.get(CacheKey.all())

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["hit_rate_pct"] == 66.7

    def test_reset_stats(self, cache):
        cache.get(CacheKey.all())
        cache.reset_stats()

        assert cache.get_stats()["misses"] == 0
        assert cache.get_stats()["hit_rate_pct"] == 0.0
