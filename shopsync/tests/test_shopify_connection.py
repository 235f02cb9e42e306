"""Tests for the connect flow (shop check, then store)."""

import asyncio

from shopsync.models import ShopifyCredential
from shopsync.security import decrypt_secret
from shopsync.services import shopify_connection
from shopsync.services.shopify_client import ShopifyApplicationError, ShopifyTransportError


class _ShopStub:
    """Answers ``execute`` with a canned payload or error."""

    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error
        self.kwargs = None

    def __call__(self, **kwargs):
        self.kwargs = kwargs
        return self

    async def execute(self, query, variables=None):
        if self.error is not None:
            raise self.error
        return self.data


def _connect(db, stub, **overrides):
    params = {
        "client_id": "acme",
        "store_domain": "https://Acme.myshopify.com/",
        "access_token": "shpat_new",
        "client_factory": stub,
    }
    params.update(overrides)
    return asyncio.run(shopify_connection.test_shopify_connection(db, **params))


def test_success_stores_encrypted_credential(test_db_session):
    stub = _ShopStub(data={"shop": {"name": "Acme Store", "myshopifyDomain": "acme.myshopify.com"}})

    result = _connect(test_db_session, stub)

    assert result.ok is True
    assert result.message == "Connection successful"
    assert result.shop_name == "Acme Store"
    assert result.domain == "acme.myshopify.com"
    assert stub.kwargs["shop_domain"] == "acme.myshopify.com"

    stored = test_db_session.query(ShopifyCredential).one()
    assert stored.store_domain == "acme.myshopify.com"
    assert stored.access_token_enc != "shpat_new"
    assert decrypt_secret(stored.access_token_enc, context="test") == "shpat_new"


def test_reconnect_replaces_token(test_db_session, credential):
    stub = _ShopStub(data={"shop": {"name": "Acme Store", "myshopifyDomain": "acme.myshopify.com"}})

    _connect(test_db_session, stub, access_token="shpat_rotated")

    stored = test_db_session.query(ShopifyCredential).one()
    assert decrypt_secret(stored.access_token_enc, context="test") == "shpat_rotated"


def test_unauthorized_does_not_store(test_db_session):
    stub = _ShopStub(error=ShopifyTransportError(401, "Invalid API key or access token"))

    result = _connect(test_db_session, stub)

    assert result.ok is False
    assert "401" in result.message
    assert test_db_session.query(ShopifyCredential).count() == 0


def test_graphql_errors_are_reported(test_db_session):
    stub = _ShopStub(error=ShopifyApplicationError("Access denied for shop field"))

    result = _connect(test_db_session, stub)

    assert result.ok is False
    assert result.message == "Shopify error: Access denied for shop field"


def test_missing_shop_is_a_failure(test_db_session):
    result = _connect(test_db_session, _ShopStub(data={}))

    assert result.ok is False
    assert result.message == "No shop data returned from Shopify"
    assert test_db_session.query(ShopifyCredential).count() == 0


def test_network_failure_is_reported(test_db_session):
    stub = _ShopStub(error=ShopifyTransportError(None, "connection refused"))

    result = _connect(test_db_session, stub)

    assert result.ok is False
    assert result.message == "Request failed: connection refused"


def test_missing_inputs_are_rejected(test_db_session):
    stub = _ShopStub(data={"shop": {"name": "x"}})

    result = _connect(test_db_session, stub, access_token="")

    assert result.ok is False
    assert stub.kwargs is None
