import pytest
from unittest.mock import AsyncMock

import redis.asyncio as redis

from services.cache import CACHE_TTL, CacheNamespace, MemoryCache, RedisCache, build_cache_key, get_cache
from services.cache_invalidation import DataChangeEvent, invalidate_all_store_cache, on_data_change


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_build_cache_key_joins_parts():
    assert build_cache_key("shopify", "store-1", "products") == "shopify:store-1:products"
    assert build_cache_key(CacheNamespace.DASHBOARD, 7) == "dashboard:7"


def test_ttl_table_matches_data_freshness():
    assert CACHE_TTL["products"] == 15 * 60
    assert CACHE_TTL["pages"] == 30 * 60
    assert CACHE_TTL["collections"] == 15 * 60


def test_get_cache_rejects_unknown_backend():
    assert isinstance(get_cache("memory"), MemoryCache)
    with pytest.raises(ValueError):
        get_cache("memcached")


@pytest.mark.asyncio
async def test_memory_cache_expires_entries():
    clock = FakeClock()
    cache = MemoryCache(max_entries=10, default_ttl_seconds=60, clock=clock)
    await cache.set("a", {"x": 1})
    await cache.set("b", 2, ttl_seconds=5)

    clock.now += 10
    assert await cache.get("a") == {"x": 1}
    assert await cache.get("b") is None

    clock.now += 60
    assert await cache.cleanup() == 1
    assert cache.stats().size == 0


@pytest.mark.asyncio
async def test_memory_cache_evicts_least_recently_used():
    cache = MemoryCache(max_entries=2, default_ttl_seconds=60)
    await cache.set("a", 1)
    await cache.set("b", 2)
    assert await cache.get("a") == 1
    await cache.set("c", 3)

    assert await cache.get("b") is None
    assert await cache.get("a") == 1
    assert await cache.get("c") == 3


@pytest.mark.asyncio
async def test_memory_cache_clear_by_pattern_and_stats():
    cache = MemoryCache(max_entries=10, default_ttl_seconds=60)
    await cache.set("shopify:s1:products", [1])
    await cache.set("shopify:s1:pages", [2])
    await cache.set("shopify:s2:products", [3])

    assert await cache.clear("shopify:s1:*") == 2
    assert await cache.get("shopify:s2:products") == [3]
    assert await cache.get("shopify:s1:pages") is None

    stats = cache.stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.hit_rate == 0.5


@pytest.mark.asyncio
async def test_get_or_set_calls_factory_once():
    cache = MemoryCache(max_entries=10, default_ttl_seconds=60)
    factory = AsyncMock(return_value={"score": 80})

    assert await cache.get_or_set("dashboard:s1:health-score", factory, 300) == {"score": 80}
    assert await cache.get_or_set("dashboard:s1:health-score", factory, 300) == {"score": 80}
    assert factory.await_count == 1


async def _seed(cache: MemoryCache, store_id: str = "s1"):
    for key in (
        f"shopify:{store_id}:products",
        f"shopify:{store_id}:collections",
        f"shopify:{store_id}:pages",
        f"audit:{store_id}:latest",
        f"dashboard:{store_id}:health-score",
        f"dashboard:{store_id}:quick-wins",
        f"meta:{store_id}:bulk",
        f"gsc:{store_id}:metrics",
        "shopify:other:products",
    ):
        await cache.set(key, True)


def _remaining(cache: MemoryCache):
    return sorted(key for key in cache._entries)


@pytest.mark.asyncio
async def test_product_update_clears_products_and_dashboard():
    cache = MemoryCache(max_entries=50, default_ttl_seconds=60)
    await _seed(cache)

    removed = await on_data_change(cache, "s1", DataChangeEvent.PRODUCT_UPDATED)

    assert removed == 3
    remaining = _remaining(cache)
    assert "shopify:s1:products" not in remaining
    assert "shopify:s1:collections" in remaining
    assert not any(key.startswith("dashboard:s1:") for key in remaining)


@pytest.mark.asyncio
async def test_audit_completed_clears_audit_and_dashboard():
    cache = MemoryCache(max_entries=50, default_ttl_seconds=60)
    await _seed(cache)

    await on_data_change(cache, "s1", DataChangeEvent.AUDIT_COMPLETED)

    remaining = _remaining(cache)
    assert "audit:s1:latest" not in remaining
    assert "dashboard:s1:quick-wins" not in remaining
    assert "shopify:s1:products" in remaining


@pytest.mark.asyncio
async def test_meta_update_clears_meta_and_only_health_score():
    cache = MemoryCache(max_entries=50, default_ttl_seconds=60)
    await _seed(cache)

    await on_data_change(cache, "s1", DataChangeEvent.META_UPDATED)

    remaining = _remaining(cache)
    assert "meta:s1:bulk" not in remaining
    assert "dashboard:s1:health-score" not in remaining
    assert "dashboard:s1:quick-wins" in remaining


@pytest.mark.asyncio
async def test_invalidate_all_store_cache_leaves_other_stores():
    cache = MemoryCache(max_entries=50, default_ttl_seconds=60)
    await _seed(cache)

    await invalidate_all_store_cache(cache, "s1")

    assert _remaining(cache) == ["shopify:other:products"]


@pytest.mark.asyncio
async def test_redis_cache_round_trips_json_and_degrades_on_errors(caplog):
    client = AsyncMock()
    client.get.return_value = '{"count": 3}'
    cache = RedisCache(client=client, default_ttl_seconds=60)

    assert await cache.get("audit:s1:latest") == {"count": 3}
    await cache.set("audit:s1:latest", {"count": 4}, ttl_seconds=120)
    client.setex.assert_awaited_once_with("audit:s1:latest", 120, '{"count": 4}')

    client.get.side_effect = redis.ConnectionError("down")
    assert await cache.get("audit:s1:latest") is None
    assert "Cache read failed for audit:s1:latest: down" in caplog.text
