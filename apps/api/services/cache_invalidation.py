"""Cache invalidation driven by store data-change events."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Tuple

from services.cache import CacheBackend, CacheNamespace, build_cache_key

logger = logging.getLogger(__name__)


class DataChangeEvent(str, Enum):
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"
    COLLECTION_CREATED = "COLLECTION_CREATED"
    COLLECTION_UPDATED = "COLLECTION_UPDATED"
    COLLECTION_DELETED = "COLLECTION_DELETED"
    PAGE_CREATED = "PAGE_CREATED"
    PAGE_UPDATED = "PAGE_UPDATED"
    PAGE_DELETED = "PAGE_DELETED"
    AUDIT_COMPLETED = "AUDIT_COMPLETED"
    META_UPDATED = "META_UPDATED"
    ALT_UPDATED = "ALT_UPDATED"
    GSC_SYNCED = "GSC_SYNCED"


async def _delete_key(cache: CacheBackend, namespace: str, store_id: str, resource: str) -> int:
    return int(await cache.delete(build_cache_key(namespace, store_id, resource)))


async def _clear_namespace(cache: CacheBackend, namespace: str, store_id: str) -> int:
    return await cache.clear(build_cache_key(namespace, store_id, "*"))


async def invalidate_product_cache(cache: CacheBackend, store_id: str) -> int:
    return await _delete_key(cache, CacheNamespace.SHOPIFY, store_id, "products")


async def invalidate_collection_cache(cache: CacheBackend, store_id: str) -> int:
    return await _delete_key(cache, CacheNamespace.SHOPIFY, store_id, "collections")


async def invalidate_page_cache(cache: CacheBackend, store_id: str) -> int:
    return await _delete_key(cache, CacheNamespace.SHOPIFY, store_id, "pages")


async def invalidate_dashboard_cache(cache: CacheBackend, store_id: str) -> int:
    return await _clear_namespace(cache, CacheNamespace.DASHBOARD, store_id)


async def invalidate_health_score_cache(cache: CacheBackend, store_id: str) -> int:
    return await _delete_key(cache, CacheNamespace.DASHBOARD, store_id, "health-score")


async def invalidate_gsc_cache(cache: CacheBackend, store_id: str) -> int:
    return await _clear_namespace(cache, CacheNamespace.GSC, store_id)


async def invalidate_audit_cache(cache: CacheBackend, store_id: str) -> int:
    return await _clear_namespace(cache, CacheNamespace.AUDIT, store_id)


async def invalidate_meta_cache(cache: CacheBackend, store_id: str) -> int:
    return await _clear_namespace(cache, CacheNamespace.META, store_id)


async def invalidate_alt_cache(cache: CacheBackend, store_id: str) -> int:
    return await _clear_namespace(cache, CacheNamespace.ALT, store_id)


async def invalidate_all_store_cache(cache: CacheBackend, store_id: str) -> int:
    removed = await cache.clear(f"*:{store_id}:*")
    logger.info(f"Cleared all cache entries for store {store_id} ({removed} keys)")
    return removed


Invalidator = Callable[[CacheBackend, str], Awaitable[int]]

_EVENT_INVALIDATORS: Dict[DataChangeEvent, Tuple[Invalidator, ...]] = {
    DataChangeEvent.PRODUCT_CREATED: (invalidate_product_cache, invalidate_dashboard_cache),
    DataChangeEvent.PRODUCT_UPDATED: (invalidate_product_cache, invalidate_dashboard_cache),
    DataChangeEvent.PRODUCT_DELETED: (invalidate_product_cache, invalidate_dashboard_cache),
    DataChangeEvent.COLLECTION_CREATED: (invalidate_collection_cache, invalidate_dashboard_cache),
    DataChangeEvent.COLLECTION_UPDATED: (invalidate_collection_cache, invalidate_dashboard_cache),
    DataChangeEvent.COLLECTION_DELETED: (invalidate_collection_cache, invalidate_dashboard_cache),
    DataChangeEvent.PAGE_CREATED: (invalidate_page_cache, invalidate_dashboard_cache),
    DataChangeEvent.PAGE_UPDATED: (invalidate_page_cache, invalidate_dashboard_cache),
    DataChangeEvent.PAGE_DELETED: (invalidate_page_cache, invalidate_dashboard_cache),
    DataChangeEvent.AUDIT_COMPLETED: (invalidate_audit_cache, invalidate_dashboard_cache),
    DataChangeEvent.META_UPDATED: (invalidate_meta_cache, invalidate_health_score_cache),
    DataChangeEvent.ALT_UPDATED: (invalidate_alt_cache, invalidate_health_score_cache),
    DataChangeEvent.GSC_SYNCED: (invalidate_gsc_cache, invalidate_health_score_cache),
}


async def on_data_change(cache: CacheBackend, store_id: str, event: DataChangeEvent) -> int:
    """Clear every cache entry the event makes stale; returns the number of keys removed."""
    event = DataChangeEvent(event)
    removed = 0
    for invalidate in _EVENT_INVALIDATORS[event]:
        removed += await invalidate(cache, store_id)
    logger.info(f"Cache invalidated for store {store_id} on {event.value} ({removed} keys)")
    return removed
