"""Order reconciliation with derived revenue and cost.

WHAT:
    Pages through Shopify orders (optionally filtered by creation date) and
    upserts ``Order`` and nested ``LineItem`` rows keyed by Shopify GID,
    computing:
        order.net_payment    = total_price - total_discounts + total_shipping - total_tax
        line.landing_cost    = unit cost (CostIndex) * quantity
        order.landing_cost   = sum of the order's stored line item landing costs

WHY:
    - Orders are the source of truth for revenue and margin metrics.
    - All arithmetic is Decimal; Shopify amounts never pass through float.
    - Line item landing cost uses the cost known at sync time (historical
      snapshot). A later product-only sync does not touch it.
    - Order-level fulfillment status is left unset; line items carry their own.

REFERENCES:
    - shopsync/services/cost_index.py
    - shopsync/services/pagination.py
    - https://shopify.dev/docs/api/usage/search-syntax (created_at filter)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from shopsync.models import LineItem, Order, ShopifyCredential
from shopsync.money import ZERO, money_from_set, money_from_set_or_none
from shopsync.services.cost_index import CostIndex
from shopsync.services.normalize import clean_str, parse_datetime, to_int
from shopsync.services.pagination import CursorPager, connection_nodes

logger = logging.getLogger(__name__)

DateInput = Union[str, date, None]

DEFAULT_LINE_ITEM_TITLE = "Line Item"


@dataclass
class OrderSyncResult:
    """Counts from one order sync."""
    order_count: int = 0
    line_item_count: int = 0
    last_cursor: Optional[str] = None
    has_more: bool = False


# =============================================================================
# HELPERS
# =============================================================================

def _coerce_date(value: DateInput, label: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValueError(f"Invalid {label} {value!r}: expected YYYY-MM-DD") from e


def build_order_search_query(start_date: DateInput = None, end_date: DateInput = None) -> Optional[str]:
    """Build the Shopify ``created_at`` search filter.

    The end date is inclusive at day granularity, so the upper bound is the
    exclusive day after it:

        2024-01-01..2024-01-31 -> "created_at:>=2024-01-01 created_at:<2024-02-01"

    Raises:
        ValueError: Malformed date, or start after end
    """
    start = _coerce_date(start_date, "start_date")
    end = _coerce_date(end_date, "end_date")

    if start and end and start > end:
        raise ValueError(f"start_date {start.isoformat()} is after end_date {end.isoformat()}")

    parts = []
    if start:
        parts.append(f"created_at:>={start.isoformat()}")
    if end:
        parts.append(f"created_at:<{(end + timedelta(days=1)).isoformat()}")
    return " ".join(parts) or None


def compute_net_payment(
    total_price: Decimal,
    total_discounts: Decimal,
    total_shipping: Decimal,
    total_tax: Decimal,
) -> Decimal:
    """total_price - total_discounts + total_shipping - total_tax"""
    return total_price - total_discounts + total_shipping - total_tax


_DIGITS_RE = re.compile(r"\D")


def parse_order_number(name: Optional[str]) -> Optional[int]:
    """Digits of the display name ("#1001" -> 1001), or None when there are none."""
    if not name:
        return None
    digits = _DIGITS_RE.sub("", name)
    return int(digits) if digits else None


def _json_blob(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        value = connection_nodes(value)
    return json.dumps(value)


def _normalize_status(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else None


# =============================================================================
# UPSERTS
# =============================================================================

def upsert_order(db: Session, credential: ShopifyCredential, node: Dict[str, Any]) -> Order:
    """Insert or update one order by Shopify GID (line items excluded)."""
    shopify_id = node["id"]
    order = db.query(Order).filter(Order.shopify_id == shopify_id).first()
    if order is None:
        order = Order(shopify_id=shopify_id)
        db.add(order)

    subtotal = money_from_set(node.get("currentSubtotalLineItemsSet"))
    total_price = money_from_set(node.get("currentTotalPriceSet"))
    total_discounts = money_from_set(node.get("currentTotalDiscountsSet"))
    total_shipping = money_from_set(node.get("currentShippingPriceSet"))
    total_tax = money_from_set(node.get("currentTotalTaxSet"))

    processed_at = parse_datetime(node.get("processedAt"))

    order.client_id = credential.client_id
    order.credential_id = credential.id
    order.name = clean_str(node.get("name"))
    order.order_number = parse_order_number(node.get("name"))
    order.currency = clean_str(node.get("currencyCode"))
    order.subtotal = subtotal
    order.total_price = total_price
    order.total_discounts = total_discounts
    order.total_shipping = total_shipping
    order.total_tax = total_tax
    order.net_payment = compute_net_payment(total_price, total_discounts, total_shipping, total_tax)
    order.financial_status = _normalize_status(node.get("financialStatus"))
    order.fulfillment_status = None
    order.processed_at = processed_at
    order.shopify_updated_at = parse_datetime(node.get("updatedAt")) or processed_at
    order.discount_codes = _json_blob(node.get("discountCodes"))
    order.shipping_lines = _json_blob(node.get("shippingLines"))

    db.flush()
    return order


def upsert_line_item(
    db: Session,
    order: Order,
    node: Dict[str, Any],
    cost_index: CostIndex,
) -> LineItem:
    """Insert or update one line item, snapshotting its landing cost."""
    shopify_id = node["id"]
    line_item = db.query(LineItem).filter(LineItem.shopify_id == shopify_id).first()
    if line_item is None:
        line_item = LineItem(shopify_id=shopify_id)
        db.add(line_item)

    variant = node.get("variant") or {}
    product = node.get("product") or {}
    variant_id = variant.get("id")
    quantity = to_int(node.get("quantity")) or 0

    unit_price = money_from_set(node.get("originalUnitPriceSet"))
    discounted_total = money_from_set_or_none(node.get("discountedTotalSet"))

    line_item.order_id = order.id
    line_item.product_shopify_id = product.get("id")
    line_item.variant_shopify_id = variant_id
    line_item.title = clean_str(variant.get("title")) or clean_str(node.get("title")) or DEFAULT_LINE_ITEM_TITLE
    line_item.sku = clean_str(variant.get("sku"))
    line_item.quantity = quantity
    line_item.price = unit_price
    line_item.total_discount = money_from_set(node.get("totalDiscountSet"))
    line_item.discounted_total = discounted_total
    line_item.fulfillment_status = clean_str(node.get("fulfillmentStatus"))
    line_item.landing_cost = cost_index.landing_cost(variant_id, quantity)
    line_item.net_payment = discounted_total if discounted_total is not None else unit_price

    return line_item


def _stored_landing_cost(db: Session, order: Order) -> Decimal:
    rows = db.query(LineItem.landing_cost).filter(LineItem.order_id == order.id).all()
    return sum((cost for (cost,) in rows if cost is not None), ZERO)


# =============================================================================
# SYNC
# =============================================================================

async def sync_orders(
    db: Session,
    client,
    credential: ShopifyCredential,
    start_date: DateInput = None,
    end_date: DateInput = None,
) -> OrderSyncResult:
    """Sync orders (and line items) for one credential.

    Args:
        db: Database session (committed once per page)
        client: ShopifyClient (or anything with ``fetch_orders_page``)
        credential: Tenant credential the rows belong to
        start_date: Inclusive creation date lower bound (YYYY-MM-DD or date)
        end_date: Inclusive creation date upper bound (YYYY-MM-DD or date)

    Returns:
        OrderSyncResult with counts, last cursor and has_more

    Raises:
        ValueError: Invalid date range (raised before any request)
        EmptyFirstPageError: No orders connection on the first page
        ShopifyAPIError: Any transport or GraphQL failure
    """
    search_query = build_order_search_query(start_date, end_date)
    cost_index = CostIndex.build(db, credential.client_id)

    async def fetch_page(cursor: Optional[str]):
        return await client.fetch_orders_page(cursor, search_query)

    result = OrderSyncResult()
    pager = CursorPager(fetch_page, label="orders")

    logger.info(
        f"[SHOPIFY_SYNC] Starting order sync: client={credential.client_id}, filter={search_query!r}"
    )

    async for page in pager.pages():
        page_line_items = 0
        for node in page.nodes:
            order = upsert_order(db, credential, node)

            running_total = ZERO
            for line_node in connection_nodes(node.get("lineItems")):
                line_item = upsert_line_item(db, order, line_node, cost_index)
                running_total += line_item.landing_cost
                page_line_items += 1

            db.flush()
            stored_total = _stored_landing_cost(db, order)
            if stored_total != running_total:
                logger.debug(
                    f"[SHOPIFY_SYNC] Order {order.shopify_id}: stored line items cost {stored_total}, "
                    f"this page saw {running_total}"
                )
            order.landing_cost = stored_total
        db.commit()

        result.order_count += len(page.nodes)
        result.line_item_count += page_line_items

    result.last_cursor = pager.last_cursor
    result.has_more = pager.has_more

    logger.info(
        f"[SHOPIFY_SYNC] Order sync complete: client={credential.client_id}, "
        f"orders={result.order_count}, line_items={result.line_item_count}, has_more={result.has_more}"
    )
    return result
