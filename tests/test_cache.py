from blog_api.storage.cache import CACHE_MISS, CacheStore
from conftest import FakeClock


def test_hit_before_expiry_and_miss_after():
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    cache.set("k", {"posts": [1, 2]}, ttl_ms=5000)

    clock.advance_ms(4999)
    assert cache.get("k") == {"posts": [1, 2]}

    clock.advance_ms(1)
    assert cache.get("k") is CACHE_MISS
    # Выселена лениво, на промахе
    assert len(cache) == 0


def test_falsy_values_are_real_hits():
    cache = CacheStore(clock=FakeClock())
    cache.set("empty", [], ttl_ms=1000)
    cache.set("none", None, ttl_ms=1000)

    assert cache.get("empty") == []
    assert cache.get("none") is None
    assert cache.get("missing") is CACHE_MISS


def test_contains_does_not_evict():
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    cache.set("k", 1, ttl_ms=10)
    clock.advance_ms(20)

    assert "k" not in cache
    assert len(cache) == 1


def test_invalidate_and_clear():
    cache = CacheStore(clock=FakeClock())
    cache.set("a", 1, ttl_ms=1000)
    cache.set("b", 2, ttl_ms=1000)

    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    assert cache.get("a") is CACHE_MISS

    cache.clear()
    assert len(cache) == 0
