"""Storefront content snapshots fetched from the Shopify Admin GraphQL API."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from config import settings
from services.cache import CACHE_TTL, CacheBackend, CacheNamespace, build_cache_key
from services.errors import ContentFetchError

logger = logging.getLogger(__name__)

GRAPHQL_PAGE_SIZE = 50

PRODUCTS_QUERY = """
query getProducts($first: Int!, $after: String) {
  products(first: $first, after: $after, query: "status:active") {
    edges {
      node {
        id
        title
        handle
        descriptionHtml
        seo { title description }
        seoHidden: metafield(namespace: "seo", key: "hidden") { value }
        images(first: 10) { edges { node { id altText url } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

COLLECTIONS_QUERY = """
query getCollections($first: Int!, $after: String) {
  collections(first: $first, after: $after) {
    edges {
      node {
        id
        title
        handle
        descriptionHtml
        seo { title description }
        seoHidden: metafield(namespace: "seo", key: "hidden") { value }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PAGES_QUERY = """
query getPages($first: Int!, $after: String) {
  pages(first: $first, after: $after) {
    edges {
      node {
        id
        title
        handle
        body
        bodySummary
        seoHidden: metafield(namespace: "seo", key: "hidden") { value }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


@dataclass(frozen=True)
class StoreCredentials:
    store_id: str
    shop_domain: str
    access_token: str


@dataclass(frozen=True)
class ContentSnapshot:
    """Raw Shopify nodes for one store; normalized later into a check context."""

    products: List[Dict[str, Any]] = field(default_factory=list)
    collections: List[Dict[str, Any]] = field(default_factory=list)
    pages: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.products) + len(self.collections) + len(self.pages)


class ContentSource(ABC):
    @abstractmethod
    async def fetch(self, store: StoreCredentials) -> ContentSnapshot:
        raise NotImplementedError


class ShopifyContentSource(ContentSource):
    def __init__(
        self,
        cache: Optional[CacheBackend] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        api_version: Optional[str] = None,
        max_products: Optional[int] = None,
        max_collections: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> None:
        self.cache = cache
        self._client_factory = client_factory
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.max_products = settings.AUDIT_MAX_PRODUCTS if max_products is None else max_products
        self.max_collections = settings.AUDIT_MAX_COLLECTIONS if max_collections is None else max_collections
        self.max_pages = settings.AUDIT_MAX_PAGES if max_pages is None else max_pages

    def graphql_url(self, shop_domain: str) -> str:
        return f"https://{shop_domain}/admin/api/{self.api_version}/graphql.json"

    def _client(self) -> httpx.AsyncClient:
        if self._client_factory is not None:
            return self._client_factory()
        return httpx.AsyncClient(timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS)

    async def fetch(self, store: StoreCredentials) -> ContentSnapshot:
        async with self._client() as client:
            products = await self._cached(
                store, "products", lambda: self._fetch_all(client, store, "products", PRODUCTS_QUERY, self.max_products)
            )
            collections = await self._cached(
                store,
                "collections",
                lambda: self._fetch_all(client, store, "collections", COLLECTIONS_QUERY, self.max_collections),
            )
            pages = await self._cached(
                store, "pages", lambda: self._fetch_all(client, store, "pages", PAGES_QUERY, self.max_pages)
            )
        snapshot = ContentSnapshot(products=products, collections=collections, pages=pages)
        logger.info(
            f"Fetched content for {store.shop_domain}: {len(products)} products, "
            f"{len(collections)} collections, {len(pages)} pages"
        )
        return snapshot

    async def _cached(self, store: StoreCredentials, kind: str, factory) -> List[Dict[str, Any]]:
        if self.cache is None:
            return await factory()
        key = build_cache_key(CacheNamespace.SHOPIFY, store.store_id, kind)
        return await self.cache.get_or_set(key, factory, CACHE_TTL[kind])

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        store: StoreCredentials,
        root: str,
        query: str,
        limit: int,
    ) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while len(nodes) < limit:
            variables = {"first": min(GRAPHQL_PAGE_SIZE, limit - len(nodes)), "after": cursor}
            data = await self._execute(client, store, query, variables)
            connection = (data.get(root) or {}) if isinstance(data, dict) else {}
            for edge in connection.get("edges") or []:
                node = edge.get("node") if isinstance(edge, dict) else None
                if isinstance(node, dict):
                    nodes.append(node)
            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor:
                break
        return nodes[:limit]

    async def _execute(
        self,
        client: httpx.AsyncClient,
        store: StoreCredentials,
        query: str,
        variables: Dict[str, Any],
    ) -> Dict[str, Any]:
        try:
            response = await client.post(
                self.graphql_url(store.shop_domain),
                json={"query": query, "variables": variables},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": store.access_token,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ContentFetchError(
                f"Shopify API returned {exc.response.status_code} for {store.shop_domain}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ContentFetchError(f"Shopify API request failed for {store.shop_domain}: {exc}") from exc

        if payload.get("errors"):
            errors = payload["errors"]
            if isinstance(errors, list):
                detail = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors)
            else:
                detail = str(errors)
            raise ContentFetchError(f"Shopify GraphQL error for {store.shop_domain}: {detail}")
        return payload.get("data") or {}
