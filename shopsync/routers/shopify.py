"""Shopify connect and sync endpoints.

WHAT:
    Thin HTTP wrappers for the connect flow and the sync orchestrator.

WHY:
    - Routers handle request parsing only
    - Business logic is shared with the arq worker and the CLI

REFERENCES:
    - shopsync/services/shopify_connection.py
    - shopsync/services/shopify_sync_service.py
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from shopsync.database import get_db
from shopsync.schemas import (
    ShopifyConnectionResponse,
    ShopifyCredentialInput,
    SyncInput,
    SyncResultResponse,
)
from shopsync.services.shopify_connection import test_shopify_connection
from shopsync.services.shopify_sync_service import sync_shopify_data

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/shopify", tags=["Shopify"])


@router.post("/connect", response_model=ShopifyConnectionResponse)
async def connect_shopify(
    payload: ShopifyCredentialInput,
    db: Session = Depends(get_db),
) -> ShopifyConnectionResponse:
    """Probe the store with the given token and save the credential on success."""
    result = await test_shopify_connection(
        db,
        client_id=payload.client_id,
        store_domain=payload.store_domain,
        access_token=payload.access_token,
        api_version=payload.api_version,
    )
    return ShopifyConnectionResponse(
        ok=result.ok,
        message=result.message,
        shop_name=result.shop_name,
        domain=result.domain,
    )


@router.post("/sync", response_model=SyncResultResponse)
async def sync_shopify(
    payload: SyncInput,
    request: Request,
    db: Session = Depends(get_db),
) -> SyncResultResponse:
    """Run products -> orders for one tenant.

    Always answers 200; ``ok`` in the body says whether the sync succeeded.
    """
    logger.info(f"[SHOPIFY_SYNC] Sync requested over HTTP: client={payload.client_id}")
    result = await sync_shopify_data(
        db,
        payload.client_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        client_factory=getattr(request.app.state, "client_factory", None),
    )
    return SyncResultResponse(**result.to_dict())
