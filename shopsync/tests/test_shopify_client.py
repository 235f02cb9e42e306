"""Unit tests for the Shopify GraphQL client (httpx MockTransport, no network)."""

import asyncio
import json

import httpx
import pytest

from shopsync.services import shopify_client as sc


def _client(handler, **kwargs) -> sc.ShopifyClient:
    return sc.ShopifyClient(
        shop_domain=kwargs.pop("shop_domain", "acme.myshopify.com"),
        access_token=kwargs.pop("access_token", "shpat_abc"),
        rate_limit_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_normalize_store_domain():
    assert sc.normalize_store_domain("  HTTPS://MyStore.myshopify.com/ ") == "mystore.myshopify.com"
    assert sc.normalize_store_domain("http://a.myshopify.com") == "a.myshopify.com"
    assert sc.normalize_store_domain("b.myshopify.com") == "b.myshopify.com"


def test_build_endpoint_uses_version():
    assert (
        sc.build_endpoint("Acme.myshopify.com", "2024-10")
        == "https://acme.myshopify.com/admin/api/2024-10/graphql.json"
    )


def test_execute_sends_token_and_variables():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["token"] = request.headers.get("X-Shopify-Access-Token")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"shop": {"name": "Acme"}}})

    client = _client(handler, api_version="2024-10")
    data = asyncio.run(client.execute(sc.SHOP_QUERY))

    assert data == {"shop": {"name": "Acme"}}
    assert seen["url"] == "https://acme.myshopify.com/admin/api/2024-10/graphql.json"
    assert seen["token"] == "shpat_abc"
    assert seen["body"]["variables"] == {}
    assert "shop" in seen["body"]["query"]


def test_non_2xx_is_transport_error_with_status():
    client = _client(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(sc.ShopifyTransportError) as excinfo:
        asyncio.run(client.execute(sc.SHOP_QUERY))

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "boom"
    assert "500" in str(excinfo.value)


def test_timeout_is_transport_error_without_status():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = _client(handler)

    with pytest.raises(sc.ShopifyTransportError) as excinfo:
        asyncio.run(client.execute(sc.SHOP_QUERY))

    assert excinfo.value.status_code is None
    assert str(excinfo.value).startswith("Request failed:")


def test_graphql_errors_are_application_error():
    body = {"errors": [{"message": "Field 'x' doesn't exist"}, {"message": "Access denied"}]}
    client = _client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(sc.ShopifyApplicationError) as excinfo:
        asyncio.run(client.execute(sc.SHOP_QUERY))

    assert str(excinfo.value) == "Field 'x' doesn't exist; Access denied"
    assert len(excinfo.value.errors) == 2


def test_get_shop_without_shop_raises():
    client = _client(lambda request: httpx.Response(200, json={"data": {}}))

    with pytest.raises(sc.ShopifyApplicationError, match="No shop data"):
        asyncio.run(client.get_shop())


def test_fetch_orders_page_passes_cursor_and_filter():
    seen = {}

    def handler(request):
        seen["variables"] = json.loads(request.content)["variables"]
        return httpx.Response(200, json={"data": {"orders": {"edges": [], "pageInfo": {"hasNextPage": False}}}})

    client = _client(handler)
    page = asyncio.run(client.fetch_orders_page("cur-1", "created_at:>=2024-01-01"))

    assert page["pageInfo"]["hasNextPage"] is False
    assert seen["variables"] == {"cursor": "cur-1", "query": "created_at:>=2024-01-01"}


def test_fetch_products_page_missing_connection_is_none():
    client = _client(lambda request: httpx.Response(200, json={"data": {"products": None}}))
    assert asyncio.run(client.fetch_products_page()) is None


def test_from_credential_decrypts_token(credential):
    client = sc.ShopifyClient.from_credential(credential, rate_limit_delay=0)

    assert client.access_token == "shpat_test_token"
    assert client.shop_domain == "acme.myshopify.com"
    assert client.api_version == "2024-10"
