"""FastAPI application entrypoint.

Exposes the connect flow, on-demand sync and a healthcheck endpoint.

USAGE:
    uvicorn --factory shopsync.main:create_app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from shopsync import __version__, schemas
from shopsync.database import build_session_factory
from shopsync.routers import shopify as shopify_router
from shopsync.telemetry import init_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    owns_engine = getattr(app.state, "session_factory", None) is None
    if owns_engine:
        app.state.session_factory = build_session_factory()
        logger.info("[APP] Session factory built from DATABASE_URL")

    status = init_observability()
    logger.info(f"[APP] Observability: {status}")

    yield

    if owns_engine:
        app.state.session_factory.kw["bind"].dispose()


def create_app(session_factory: Optional[sessionmaker] = None, client_factory=None) -> FastAPI:
    """Build the app.

    Args:
        session_factory: Storage handle; built from DATABASE_URL on startup when omitted
        client_factory: Optional credential -> Shopify client override for sync runs
    """
    app = FastAPI(
        title="shopsync API",
        description="Shopify catalog and order ingestion with margin metrics.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.client_factory = client_factory

    app.include_router(shopify_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app
