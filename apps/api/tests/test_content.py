import json

import httpx
import pytest

from services.cache import MemoryCache
from services.content import ShopifyContentSource, StoreCredentials
from services.errors import ContentFetchError

STORE = StoreCredentials(store_id="store-1", shop_domain="test-shop.myshopify.com", access_token="shpat_abc")


def _connection(nodes, has_next=False, cursor=None):
    return {
        "edges": [{"node": node} for node in nodes],
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
    }


def _products(start, count):
    return [{"id": f"p{i}", "title": f"Product {i}", "handle": f"product-{i}"} for i in range(start, start + count)]


class ShopifyStub:
    def __init__(self, products_pages, collections=None, pages=None):
        self.products_pages = products_pages
        self.collections = collections or []
        self.pages = pages or []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request, body))
        query = body["query"]
        variables = body["variables"]
        if "getProducts" in query:
            index = int(variables["after"] or 0)
            nodes = self.products_pages[index]
            has_next = index + 1 < len(self.products_pages)
            data = {"products": _connection(nodes, has_next, str(index + 1) if has_next else None)}
        elif "getCollections" in query:
            data = {"collections": _connection(self.collections)}
        else:
            data = {"pages": _connection(self.pages)}
        return httpx.Response(200, json={"data": data})


def _source(handler, **kwargs):
    return ShopifyContentSource(
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_follows_pagination_and_sends_token():
    stub = ShopifyStub(
        products_pages=[_products(0, 50), _products(50, 10)],
        collections=[{"id": "c1", "title": "Summer", "handle": "summer"}],
        pages=[{"id": "pg1", "title": "About", "handle": "about", "body": "<p>Hi</p>"}],
    )
    snapshot = await _source(stub, max_products=100).fetch(STORE)

    assert len(snapshot.products) == 60
    assert [c["id"] for c in snapshot.collections] == ["c1"]
    assert [p["id"] for p in snapshot.pages] == ["pg1"]
    assert snapshot.total == 62

    request, body = stub.requests[0]
    assert str(request.url) == "https://test-shop.myshopify.com/admin/api/2024-01/graphql.json"
    assert request.headers["X-Shopify-Access-Token"] == "shpat_abc"
    assert 'status:active' in body["query"]
    assert body["variables"] == {"first": 50, "after": None}


@pytest.mark.asyncio
async def test_fetch_stops_at_content_cap():
    stub = ShopifyStub(products_pages=[_products(0, 50), _products(50, 50), _products(100, 50)])
    snapshot = await _source(stub, max_products=60).fetch(STORE)

    product_requests = [body for _, body in stub.requests if "getProducts" in body["query"]]
    assert len(snapshot.products) == 60
    assert [body["variables"]["first"] for body in product_requests] == [50, 10]


@pytest.mark.asyncio
async def test_graphql_errors_raise_content_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

    with pytest.raises(ContentFetchError, match="Throttled"):
        await _source(handler).fetch(STORE)


@pytest.mark.asyncio
async def test_http_errors_raise_content_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"errors": "Invalid API key or access token"})

    with pytest.raises(ContentFetchError, match="401"):
        await _source(handler).fetch(STORE)


@pytest.mark.asyncio
async def test_fetch_reuses_cached_content_per_store():
    stub = ShopifyStub(products_pages=[_products(0, 3)])
    cache = MemoryCache(max_entries=10, default_ttl_seconds=60)
    source = _source(stub, cache=cache)

    first = await source.fetch(STORE)
    request_count = len(stub.requests)
    second = await source.fetch(STORE)

    assert request_count == 3
    assert len(stub.requests) == request_count
    assert second.products == first.products
    assert await cache.get("shopify:store-1:products") == first.products
