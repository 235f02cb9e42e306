"""Pytest configuration for shopsync tests

WHAT: Shared fixtures: in-memory database, stored credential, fake Shopify client
WHY: Reconciler, orchestrator and HTTP tests run against real SQLAlchemy
     sessions without touching the network
REFERENCES:
    - shopsync/database.py: Session factory
    - shopsync/tests/factories.py: Shopify payload builders and FakeShopifyClient
"""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
# Must be URL-safe base64-encoded 32-byte string (shopsync.security builds a Fernet key from it)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("SENTRY_DSN", None)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs in one)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from shopsync.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine) -> sessionmaker:
    return sessionmaker(bind=test_db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def test_db_session(session_factory) -> Session:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def credential(test_db_session):
    """Stored credential for tenant "acme"."""
    from shopsync.services.credential_store import upsert_credential

    return upsert_credential(
        test_db_session,
        client_id="acme",
        store_domain="https://Acme.myshopify.com/",
        access_token="shpat_test_token",
        api_version="2024-10",
    )
