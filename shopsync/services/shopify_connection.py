"""Connect flow: probe a store with a token, then save the credential.

WHAT:
    ``test_shopify_connection`` runs ``shop { name myshopifyDomain }`` with
    the supplied domain and token. Only a successful probe stores the
    credential.

WHY:
    Scheduled syncs iterate stored credentials. Saving a token that never
    worked would turn into a failed sync every interval.

REFERENCES:
    - shopsync/routers/shopify.py (POST /shopify/connect)
    - shopsync/scripts/shopify_sync.py (connect subcommand)
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from shopsync.services.credential_store import upsert_credential
from shopsync.services.shopify_client import (
    SHOP_QUERY,
    ShopifyApplicationError,
    ShopifyClient,
    ShopifyTransportError,
    get_default_api_version,
    normalize_store_domain,
)

logger = logging.getLogger(__name__)


@dataclass
class ShopifyConnectionResult:
    ok: bool
    message: str
    shop_name: Optional[str] = None
    domain: Optional[str] = None


async def test_shopify_connection(
    db: Session,
    client_id: str,
    store_domain: str,
    access_token: str,
    api_version: Optional[str] = None,
    client_factory: Callable[..., ShopifyClient] = ShopifyClient,
) -> ShopifyConnectionResult:
    """Probe Shopify and persist the credential on success.

    Args:
        db: Database session
        client_id: Tenant identifier
        store_domain: Store domain as entered (normalized here)
        access_token: Admin API access token (encrypted before storage)
        api_version: API version (default: SHOPIFY_API_VERSION or 2024-10)
        client_factory: Builds the client from (shop_domain, access_token, api_version)

    Returns:
        ShopifyConnectionResult; ``ok`` is False for every failure
    """
    domain = normalize_store_domain(store_domain)
    version = api_version or get_default_api_version()

    if not client_id or not domain or not access_token:
        return ShopifyConnectionResult(ok=False, message="client_id, store_domain and access_token are required")

    logger.info(f"[SHOPIFY_CONNECT] Testing connection: client={client_id}, domain={domain}")

    try:
        client = client_factory(shop_domain=domain, access_token=access_token, api_version=version)
        data = await client.execute(SHOP_QUERY)
    except ShopifyTransportError as e:
        logger.warning(f"[SHOPIFY_CONNECT] Transport failure for {domain}: {e}")
        return ShopifyConnectionResult(ok=False, message=str(e))
    except ShopifyApplicationError as e:
        logger.warning(f"[SHOPIFY_CONNECT] GraphQL errors for {domain}: {e}")
        return ShopifyConnectionResult(ok=False, message=f"Shopify error: {e}")

    shop = data.get("shop")
    if not shop:
        return ShopifyConnectionResult(ok=False, message="No shop data returned from Shopify")

    upsert_credential(db, client_id, domain, access_token, version)

    shop_domain = shop.get("myshopifyDomain") or domain
    logger.info(f"[SHOPIFY_CONNECT] Connected client={client_id} to {shop_domain}")
    return ShopifyConnectionResult(
        ok=True,
        message="Connection successful",
        shop_name=shop.get("name"),
        domain=shop_domain,
    )
