import pytest

from app.services.cache_service import CacheService, InMemoryCache, RedisCache, get_cache


@pytest.fixture
def cache():
    return CacheService(InMemoryCache(max_entries=100))


async def test_location_roundtrip(cache):
    await cache.set_location("560001", {"pincode": "560001", "district": "Bengaluru"})

    assert await cache.get_location("560001") == {"pincode": "560001", "district": "Bengaluru"}
    assert await cache.backend.get("storefront:location:560001") is not None


async def test_expired_entry_is_a_miss():
    backend = InMemoryCache()
    await backend.set("storefront:location:560001", {"pincode": "560001"}, ttl=0)

    assert await backend.get("storefront:location:560001") is None


async def test_cleanup_expired():
    backend = InMemoryCache()
    await backend.set("stale", 1, ttl=0)
    await backend.set("fresh", 2, ttl=60)

    assert await CacheService(backend).cleanup_expired() == 1
    assert len(backend) == 1


async def test_oldest_entry_evicted_when_full():
    backend = InMemoryCache(max_entries=2)
    await backend.set("a", 1)
    await backend.set("b", 2)
    await backend.set("c", 3)

    assert len(backend) == 2
    assert await backend.get("a") is None
    assert await backend.get("c") == 3


async def test_rewritten_entry_counts_as_newest():
    backend = InMemoryCache(max_entries=2)
    await backend.set("a", 1)
    await backend.set("b", 2)
    await backend.set("a", 10)
    await backend.set("c", 3)

    assert await backend.get("a") == 10
    assert await backend.get("b") is None


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")


async def test_redis_errors_are_misses(monkeypatch):
    backend = RedisCache("redis://localhost:6379/0")

    async def broken_client():
        return BrokenRedis()

    monkeypatch.setattr(backend, "_get_client", broken_client)
    cache = CacheService(backend)

    assert await cache.set_location("560001", {"pincode": "560001"}) is False
    assert await cache.get_location("560001") is None
    assert await cache.cleanup_expired() == 0


def test_get_cache_defaults_to_memory():
    assert isinstance(get_cache().backend, InMemoryCache)
    assert get_cache() is get_cache()
