"""Product catalog reconciliation.

WHAT:
    Pages through the Shopify product catalog and upserts ``Product`` and
    nested ``Variant`` rows keyed by Shopify GID.

WHY:
    - Variant ``inventory_cost`` is the source of every landing cost computed
      during order sync.
    - Unknown costs stay null. Defaulting to zero here would make products
      look free in margin reports.
    - One commit per page: a failure mid-catalog keeps every finished page.

REFERENCES:
    - shopsync/services/pagination.py (CursorPager)
    - shopsync/services/cost_index.py (reads inventory_cost)
    - https://shopify.dev/docs/api/admin-graphql/2024-10/queries/products
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from shopsync.models import Product, ShopifyCredential, Variant
from shopsync.money import to_decimal
from shopsync.services.normalize import clean_str, parse_datetime, to_int
from shopsync.services.pagination import CursorPager, connection_nodes

logger = logging.getLogger(__name__)


@dataclass
class ProductSyncResult:
    """Counts from one product sync."""
    product_count: int = 0
    variant_count: int = 0
    last_cursor: Optional[str] = None
    has_more: bool = False


def upsert_product(db: Session, credential: ShopifyCredential, node: Dict[str, Any]) -> Product:
    """Insert or update one product by Shopify GID and flush it."""
    shopify_id = node["id"]
    product = db.query(Product).filter(Product.shopify_id == shopify_id).first()
    if product is None:
        product = Product(shopify_id=shopify_id)
        db.add(product)

    product.client_id = credential.client_id
    product.credential_id = credential.id
    product.title = clean_str(node.get("title"))
    product.handle = clean_str(node.get("handle"))
    product.vendor = clean_str(node.get("vendor"))
    product.product_type = clean_str(node.get("productType"))
    product.status = clean_str(node.get("status"))
    product.tags = None
    product.shopify_updated_at = parse_datetime(node.get("updatedAt"))

    # Variants need the local id
    db.flush()
    return product


def upsert_variant(db: Session, product: Product, node: Dict[str, Any]) -> Variant:
    """Insert or update one variant by Shopify GID under ``product``."""
    shopify_id = node["id"]
    variant = db.query(Variant).filter(Variant.shopify_id == shopify_id).first()
    if variant is None:
        variant = Variant(shopify_id=shopify_id)
        db.add(variant)

    inventory_item = node.get("inventoryItem") or {}
    unit_cost = inventory_item.get("unitCost") or {}

    variant.product_id = product.id
    variant.sku = clean_str(node.get("sku"))
    variant.title = clean_str(node.get("title"))
    variant.barcode = clean_str(node.get("barcode"))
    variant.price = to_decimal(node.get("price"))
    variant.compare_at_price = to_decimal(node.get("compareAtPrice"))
    variant.inventory_cost = to_decimal(unit_cost.get("amount"))
    variant.inventory_quantity = to_int(node.get("inventoryQuantity"))
    variant.inventory_item_id = clean_str(inventory_item.get("id"))
    variant.shopify_updated_at = parse_datetime(node.get("updatedAt"))

    db.flush()
    return variant


async def sync_products(db: Session, client, credential: ShopifyCredential) -> ProductSyncResult:
    """Sync the full product catalog for one credential.

    Args:
        db: Database session (committed once per page)
        client: ShopifyClient (or anything with ``fetch_products_page``)
        credential: Tenant credential the rows belong to

    Returns:
        ProductSyncResult with counts, last cursor and has_more

    Raises:
        EmptyFirstPageError: No products connection on the first page
        ShopifyAPIError: Any transport or GraphQL failure
    """
    result = ProductSyncResult()
    pager = CursorPager(client.fetch_products_page, label="products")

    logger.info(f"[SHOPIFY_SYNC] Starting product sync: client={credential.client_id}")

    async for page in pager.pages():
        page_variants = 0
        for node in page.nodes:
            product = upsert_product(db, credential, node)
            for variant_node in connection_nodes(node.get("variants")):
                upsert_variant(db, product, variant_node)
                page_variants += 1
        db.commit()

        result.product_count += len(page.nodes)
        result.variant_count += page_variants

    result.last_cursor = pager.last_cursor
    result.has_more = pager.has_more

    logger.info(
        f"[SHOPIFY_SYNC] Product sync complete: client={credential.client_id}, "
        f"products={result.product_count}, variants={result.variant_count}, has_more={result.has_more}"
    )
    return result
