"""HTTP tests for the FastAPI app (lifespan not started; storage injected)."""

from fastapi.testclient import TestClient

from shopsync.main import create_app
from shopsync.routers import shopify as shopify_router
from shopsync.services.shopify_client import ShopifyTransportError
from shopsync.services.shopify_connection import ShopifyConnectionResult
from shopsync.tests.factories import FakeShopifyClient


def _client(session_factory, fake=None) -> TestClient:
    app = create_app(session_factory=session_factory, client_factory=lambda credential: fake or FakeShopifyClient())
    return TestClient(app)


def test_health(session_factory):
    response = _client(session_factory).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sync_endpoint_success(session_factory, credential):
    response = _client(session_factory).post("/shopify/sync", json={"client_id": "acme"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["phase"] == "completed"
    assert body["order_count"] == 0


def test_sync_endpoint_reports_failure_in_body(session_factory, credential):
    fake = FakeShopifyClient(shop_error=ShopifyTransportError(401, "Unauthorized"))

    response = _client(session_factory, fake).post(
        "/shopify/sync",
        json={"client_id": "acme", "start_date": "2024-01-01", "end_date": "2024-01-31"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["phase"] == "failed"
    assert "health check failed" in body["message"]


def test_sync_endpoint_unknown_tenant(session_factory):
    response = _client(session_factory).post("/shopify/sync", json={"client_id": "nobody"})

    assert response.status_code == 200
    assert response.json()["ok"] is False


def test_connect_endpoint(session_factory, monkeypatch):
    captured = {}

    async def fake_connect(db, client_id, store_domain, access_token, api_version=None):
        captured.update(client_id=client_id, store_domain=store_domain, api_version=api_version)
        return ShopifyConnectionResult(ok=True, message="Connection successful", shop_name="Acme", domain="acme.myshopify.com")

    monkeypatch.setattr(shopify_router, "test_shopify_connection", fake_connect)

    response = _client(session_factory).post(
        "/shopify/connect",
        json={"client_id": "acme", "store_domain": "acme.myshopify.com", "access_token": "shpat_x"},
    )

    assert response.status_code == 200
    assert response.json()["shop_name"] == "Acme"
    assert captured == {"client_id": "acme", "store_domain": "acme.myshopify.com", "api_version": None}


def test_connect_endpoint_validates_payload(session_factory):
    response = _client(session_factory).post(
        "/shopify/connect",
        json={"client_id": "acme", "store_domain": "acme.myshopify.com", "access_token": ""},
    )

    assert response.status_code == 422


def test_sync_endpoint_storage_failure_is_still_200():
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    # No tables: every query fails
    engine = create_engine("sqlite:///:memory:", poolclass=StaticPool, connect_args={"check_same_thread": False})
    client = _client(sessionmaker(bind=engine))

    response = client.post("/shopify/sync", json={"client_id": "acme"})
    engine.dispose()

    assert response.status_code == 200
    assert response.json()["ok"] is False
    assert response.json()["message"].startswith("Sync setup failed")
