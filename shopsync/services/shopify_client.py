"""Shopify GraphQL Admin API client.

WHAT:
    Wrapper for the Shopify Admin GraphQL API with:
    - Access-token authentication
    - Minimum spacing between requests
    - Error classification (transport vs. in-band GraphQL errors)
    - Raw page fetches for cursor pagination

WHY:
    Encapsulates all Shopify API interaction for the sync services.
    The client never retries; a failed call surfaces as an exception and the
    orchestrator decides what to do with the run. Re-running a sync is safe
    because every write is an upsert keyed by Shopify GID.

REFERENCES:
    - Shopify GraphQL Admin API: https://shopify.dev/docs/api/admin-graphql
    - Rate limits: https://shopify.dev/docs/api/usage/rate-limits
    - Pagination: https://shopify.dev/docs/api/usage/pagination-graphql
"""

import asyncio
import logging
import os
import re
import time
from typing import Any, Dict, List, Optional

import httpx

from shopsync.security import decrypt_secret

logger = logging.getLogger(__name__)

# Default API version
DEFAULT_API_VERSION = "2024-10"

# Shopify allows 2 requests/second for regular apps
RATE_LIMIT_DELAY = 0.5  # seconds between requests

DEFAULT_TIMEOUT = 30.0

PRODUCTS_PAGE_SIZE = 100
VARIANTS_PER_PRODUCT = 100
ORDERS_PAGE_SIZE = 50
LINE_ITEMS_PER_ORDER = 100


# =============================================================================
# ERRORS
# =============================================================================

class ShopifyAPIError(Exception):
    """Base exception for Shopify API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class ShopifyTransportError(ShopifyAPIError):
    """Non-2xx response, network failure or timeout.

    ``status_code`` is None when no response was received.
    """

    def __init__(self, status_code: Optional[int], body: str):
        if status_code is None:
            message = f"Request failed: {body}"
        else:
            message = f"Shopify responded with {status_code}: {body}"
        super().__init__(message, status_code=status_code)
        self.body = body


class ShopifyApplicationError(ShopifyAPIError):
    """In-band GraphQL ``errors`` returned with a 2xx response."""


class EmptyFirstPageError(ShopifyAPIError):
    """The first page of a sync phase carried no connection object.

    Treating this as "zero items" could hide a broken query or revoked scope,
    so the phase fails instead.
    """


# =============================================================================
# DOMAIN HELPERS
# =============================================================================

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_store_domain(domain: str) -> str:
    """Normalize user-entered store domains.

    "  HTTPS://MyStore.myshopify.com/ " -> "mystore.myshopify.com"
    """
    value = (domain or "").strip()
    value = _SCHEME_RE.sub("", value)
    if value.endswith("/"):
        value = value[:-1]
    return value.lower()


def build_endpoint(store_domain: str, api_version: Optional[str] = None) -> str:
    """GraphQL endpoint for a store."""
    version = api_version or get_default_api_version()
    return f"https://{normalize_store_domain(store_domain)}/admin/api/{version}/graphql.json"


def get_default_api_version() -> str:
    return os.getenv("SHOPIFY_API_VERSION") or DEFAULT_API_VERSION


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[SHOPIFY_CLIENT] Invalid {name}={raw!r}, using {default}")
        return default


# =============================================================================
# QUERIES
# =============================================================================

SHOP_QUERY = """
query GetShop {
    shop {
        name
        myshopifyDomain
    }
}
"""

PRODUCTS_QUERY = """
query GetProducts($cursor: String) {
    products(first: %d, after: $cursor) {
        pageInfo {
            hasNextPage
            endCursor
        }
        edges {
            node {
                id
                title
                handle
                vendor
                productType
                status
                updatedAt
                createdAt
                variants(first: %d) {
                    edges {
                        node {
                            id
                            title
                            sku
                            barcode
                            price
                            compareAtPrice
                            inventoryQuantity
                            inventoryItem {
                                id
                                unitCost {
                                    amount
                                    currencyCode
                                }
                            }
                            updatedAt
                        }
                    }
                }
            }
        }
    }
}
""" % (PRODUCTS_PAGE_SIZE, VARIANTS_PER_PRODUCT)

ORDERS_QUERY = """
query GetOrders($cursor: String, $query: String) {
    orders(first: %d, after: $cursor, query: $query) {
        pageInfo {
            hasNextPage
            endCursor
        }
        edges {
            node {
                id
                name
                processedAt
                updatedAt
                currencyCode
                currentSubtotalLineItemsSet { presentmentMoney { amount } }
                currentTotalDiscountsSet { presentmentMoney { amount } }
                currentTotalTaxSet { presentmentMoney { amount } }
                currentShippingPriceSet { presentmentMoney { amount } }
                currentTotalPriceSet { presentmentMoney { amount } }
                financialStatus: displayFinancialStatus
                discountCodes
                shippingLines(first: 20) {
                    nodes {
                        title
                        priceSet: originalPriceSet { presentmentMoney { amount } }
                    }
                }
                lineItems(first: %d) {
                    edges {
                        node {
                            id
                            title
                            product { id }
                            variant { id sku title }
                            quantity
                            originalUnitPriceSet { presentmentMoney { amount } }
                            totalDiscountSet { presentmentMoney { amount } }
                            discountedTotalSet { presentmentMoney { amount } }
                            fulfillmentStatus
                        }
                    }
                }
            }
        }
    }
}
""" % (ORDERS_PAGE_SIZE, LINE_ITEMS_PER_ORDER)


# =============================================================================
# CLIENT
# =============================================================================

class ShopifyClient:
    """GraphQL client for Shopify Admin API.

    WHAT: Handles all communication with Shopify's GraphQL Admin API
    WHY: Centralized API access with request spacing and error classification

    Usage:
        client = ShopifyClient(shop_domain="mystore.myshopify.com", access_token="shpat_xxx")
        shop = await client.get_shop()
        connection = await client.fetch_products_page(cursor=None)
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        rate_limit_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Shopify client.

        Args:
            shop_domain: Store domain, normalized before use
            access_token: Shopify Admin API access token
            api_version: API version (default: SHOPIFY_API_VERSION or 2024-10)
            timeout: Request timeout in seconds (default: SHOPIFY_REQUEST_TIMEOUT or 30)
            rate_limit_delay: Minimum seconds between requests (default: SHOPIFY_RATE_LIMIT_DELAY or 0.5)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.shop_domain = normalize_store_domain(shop_domain)
        self.access_token = access_token
        self.api_version = api_version or get_default_api_version()
        self.base_url = build_endpoint(self.shop_domain, self.api_version)
        self.timeout = timeout if timeout is not None else _env_float("SHOPIFY_REQUEST_TIMEOUT", DEFAULT_TIMEOUT)
        self.rate_limit_delay = (
            rate_limit_delay if rate_limit_delay is not None
            else _env_float("SHOPIFY_RATE_LIMIT_DELAY", RATE_LIMIT_DELAY)
        )
        self._transport = transport

        # Rate limiting
        self._last_request_time: float = 0

        logger.info(f"[SHOPIFY_CLIENT] Initialized for {self.shop_domain} (API version: {self.api_version})")

    @classmethod
    def from_credential(cls, credential, **kwargs) -> "ShopifyClient":
        """Build a client from a stored ShopifyCredential, decrypting its token."""
        access_token = decrypt_secret(
            credential.access_token_enc,
            context=f"shopify:{credential.client_id}",
        )
        return cls(
            shop_domain=credential.store_domain,
            access_token=access_token,
            api_version=credential.api_version,
            **kwargs,
        )

    async def _rate_limit(self) -> None:
        """Enforce minimum spacing between requests.

        WHAT: Wait if needed to respect the configured delay
        WHY: Shopify returns 429 errors if we exceed rate limits
        """
        if self.rate_limit_delay <= 0:
            return

        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.rate_limit_delay:
            wait_time = self.rate_limit_delay - elapsed
            logger.debug(f"[SHOPIFY_CLIENT] Rate limiting: waiting {wait_time:.3f}s")
            await asyncio.sleep(wait_time)

        self._last_request_time = time.monotonic()

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a GraphQL query against Shopify Admin API.

        Args:
            query: GraphQL query string
            variables: Query variables (optional)

        Returns:
            The ``data`` member of the response ({} when absent)

        Raises:
            ShopifyTransportError: Non-2xx status, network failure or timeout
            ShopifyApplicationError: Non-empty GraphQL ``errors`` list
        """
        await self._rate_limit()

        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        payload = {"query": query, "variables": variables or {}}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"[SHOPIFY_CLIENT] Timeout after {self.timeout}s: {e}")
            raise ShopifyTransportError(None, f"timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.warning(f"[SHOPIFY_CLIENT] Request error: {e}")
            raise ShopifyTransportError(None, str(e) or e.__class__.__name__) from e

        if not response.is_success:
            logger.warning(f"[SHOPIFY_CLIENT] HTTP error {response.status_code} from {self.shop_domain}")
            raise ShopifyTransportError(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise ShopifyTransportError(response.status_code, f"invalid JSON body: {response.text[:200]}") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            if isinstance(errors, list):
                error_messages = [
                    e.get("message", str(e)) if isinstance(e, dict) else str(e)
                    for e in errors
                ]
            else:
                error_messages = [str(errors)]
                errors = [errors]
            logger.error(f"[SHOPIFY_CLIENT] GraphQL errors: {error_messages}")
            raise ShopifyApplicationError("; ".join(error_messages), status_code=response.status_code, errors=errors)

        if not isinstance(body, dict):
            return {}
        return body.get("data") or {}

    # =========================================================================
    # SHOP QUERIES
    # =========================================================================

    async def get_shop(self) -> Dict[str, Any]:
        """Health probe: fetch ``shop { name myshopifyDomain }``.

        Raises:
            ShopifyApplicationError: If the response carries no shop object
        """
        data = await self.execute(SHOP_QUERY)
        shop = data.get("shop")
        if not shop:
            raise ShopifyApplicationError("No shop data returned from Shopify")
        return shop

    # =========================================================================
    # PAGE FETCHES
    # =========================================================================

    async def fetch_products_page(self, cursor: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch one raw ``products`` connection (or None when missing)."""
        data = await self.execute(PRODUCTS_QUERY, {"cursor": cursor})
        return data.get("products")

    async def fetch_orders_page(
        self,
        cursor: Optional[str] = None,
        search_query: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Fetch one raw ``orders`` connection (or None when missing).

        Args:
            cursor: Opaque endCursor from the previous page
            search_query: Shopify search syntax filter, e.g. "created_at:>=2024-01-01"
        """
        data = await self.execute(ORDERS_QUERY, {"cursor": cursor, "query": search_query})
        return data.get("orders")
