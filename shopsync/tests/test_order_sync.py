"""Tests for order reconciliation and derived revenue/cost."""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from shopsync.models import LineItem, Order, Variant
from shopsync.services import order_sync, product_sync
from shopsync.tests.factories import (
    FakeShopifyClient,
    connection,
    line_item_node,
    order_node,
    product_node,
    variant_node,
)

PRODUCT = "gid://shopify/Product/1"
VARIANT = "gid://shopify/ProductVariant/11"
ORDER = "gid://shopify/Order/1001"
LINE = "gid://shopify/LineItem/5001"


def _seed_catalog(db, credential, cost="15.00"):
    client = FakeShopifyClient(product_pages=[connection([product_node(PRODUCT, [variant_node(VARIANT, cost=cost)])])])
    asyncio.run(product_sync.sync_products(db, client, credential))


def _order_pages():
    return [
        connection(
            [order_node(ORDER, [line_item_node(LINE, VARIANT, quantity=3, unit_price="40.00", discounted_total="110.00")])],
            end_cursor="o1",
        )
    ]


def _sync(db, credential, client, **kwargs):
    return asyncio.run(order_sync.sync_orders(db, client, credential, **kwargs))


# =============================================================================
# Pure helpers
# =============================================================================

def test_compute_net_payment():
    net = order_sync.compute_net_payment(Decimal("120.00"), Decimal("10.00"), Decimal("5.00"), Decimal("8.00"))
    assert net == Decimal("107.00")


def test_build_order_search_query_end_is_inclusive():
    assert (
        order_sync.build_order_search_query("2024-01-01", "2024-01-31")
        == "created_at:>=2024-01-01 created_at:<2024-02-01"
    )
    assert order_sync.build_order_search_query(date(2024, 3, 5), None) == "created_at:>=2024-03-05"
    assert order_sync.build_order_search_query(None, "2024-12-31") == "created_at:<2025-01-01"
    assert order_sync.build_order_search_query() is None


def test_build_order_search_query_rejects_bad_ranges():
    with pytest.raises(ValueError, match="after"):
        order_sync.build_order_search_query("2024-02-01", "2024-01-01")
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        order_sync.build_order_search_query("01/02/2024", None)


def test_parse_order_number():
    assert order_sync.parse_order_number("#1001") == 1001
    assert order_sync.parse_order_number("draft") is None
    assert order_sync.parse_order_number(None) is None


# =============================================================================
# Reconciliation
# =============================================================================

def test_sync_orders_maps_fields_and_derives_totals(test_db_session, credential):
    _seed_catalog(test_db_session, credential)
    client = FakeShopifyClient(order_pages=_order_pages())

    result = _sync(test_db_session, credential, client)

    assert result.order_count == 1
    assert result.line_item_count == 1
    assert result.last_cursor == "o1"
    assert result.has_more is False

    order = test_db_session.query(Order).filter(Order.shopify_id == ORDER).one()
    assert order.client_id == "acme"
    assert order.name == "#1001"
    assert order.order_number == 1001
    assert order.currency == "USD"
    assert order.total_price == Decimal("120.00")
    assert order.net_payment == Decimal("107.00")
    assert order.landing_cost == Decimal("45.00")
    assert order.financial_status == "paid"
    assert order.fulfillment_status is None
    assert order.processed_at == datetime(2024, 1, 10, 12, 0, 0)
    assert json.loads(order.discount_codes) == ["WELCOME10"]
    assert json.loads(order.shipping_lines)[0]["title"] == "Standard"

    line = test_db_session.query(LineItem).filter(LineItem.shopify_id == LINE).one()
    assert line.order_id == order.id
    assert line.variant_shopify_id == VARIANT
    assert line.title == "Blue"
    assert line.quantity == 3
    assert line.price == Decimal("40.00")
    assert line.net_payment == Decimal("110.00")
    assert line.landing_cost == Decimal("45.00")


def test_line_item_without_variant(test_db_session, credential):
    node = order_node(ORDER, [
        line_item_node(LINE, None, quantity=2, unit_price="12.50", title="Gift wrap"),
        line_item_node("gid://shopify/LineItem/5002", None, quantity=1, title=""),
    ])
    client = FakeShopifyClient(order_pages=[connection([node])])

    _sync(test_db_session, credential, client)

    wrap = test_db_session.query(LineItem).filter(LineItem.shopify_id == LINE).one()
    assert wrap.title == "Gift wrap"
    assert wrap.landing_cost == Decimal("0")
    # No discounted total: net payment falls back to the unit price
    assert wrap.net_payment == Decimal("12.50")

    untitled = test_db_session.query(LineItem).filter(LineItem.shopify_id == "gid://shopify/LineItem/5002").one()
    assert untitled.title == order_sync.DEFAULT_LINE_ITEM_TITLE


def test_missing_totals_count_as_zero(test_db_session, credential):
    node = order_node(ORDER, [], total="50.00", discounts=None, shipping=None, tax=None)
    client = FakeShopifyClient(order_pages=[connection([node])])

    _sync(test_db_session, credential, client)

    order = test_db_session.query(Order).one()
    assert order.net_payment == Decimal("50.00")
    assert order.landing_cost == Decimal("0")


def test_resync_is_idempotent(test_db_session, credential):
    _seed_catalog(test_db_session, credential)
    client = FakeShopifyClient(order_pages=_order_pages())

    _sync(test_db_session, credential, client)
    client.reset()
    _sync(test_db_session, credential, client)

    assert test_db_session.query(Order).count() == 1
    assert test_db_session.query(LineItem).count() == 1
    order = test_db_session.query(Order).one()
    assert order.landing_cost == Decimal("45.00")
    assert order.net_payment == Decimal("107.00")


def test_landing_cost_is_a_sync_time_snapshot(test_db_session, credential):
    _seed_catalog(test_db_session, credential, cost="15.00")
    _sync(test_db_session, credential, FakeShopifyClient(order_pages=_order_pages()))

    # Cost changes later; a product-only sync does not rewrite history
    _seed_catalog(test_db_session, credential, cost="20.00")
    assert test_db_session.query(Variant).one().inventory_cost == Decimal("20.00")

    line = test_db_session.query(LineItem).one()
    assert line.landing_cost == Decimal("45.00")
    assert test_db_session.query(Order).one().landing_cost == Decimal("45.00")


def test_order_landing_cost_sums_line_items(test_db_session, credential):
    _seed_catalog(test_db_session, credential)
    node = order_node(ORDER, [
        line_item_node(LINE, VARIANT, quantity=3),
        line_item_node("gid://shopify/LineItem/5002", VARIANT, quantity=1),
        line_item_node("gid://shopify/LineItem/5003", "gid://shopify/ProductVariant/unknown", quantity=5),
    ])

    _sync(test_db_session, credential, FakeShopifyClient(order_pages=[connection([node])]))

    assert test_db_session.query(Order).one().landing_cost == Decimal("60.00")


def test_date_range_is_sent_as_search_filter(test_db_session, credential):
    client = FakeShopifyClient(order_pages=_order_pages())

    _sync(test_db_session, credential, client, start_date="2024-01-01", end_date="2024-01-31")

    assert client.requested("orders") == [
        ("orders", None, "created_at:>=2024-01-01 created_at:<2024-02-01"),
    ]


def test_invalid_dates_make_no_requests(test_db_session, credential):
    client = FakeShopifyClient(order_pages=_order_pages())

    with pytest.raises(ValueError):
        _sync(test_db_session, credential, client, start_date="2024-02-01", end_date="2024-01-01")

    assert client.calls == []
    assert test_db_session.query(Order).count() == 0


def test_pages_are_followed_and_counted(test_db_session, credential):
    client = FakeShopifyClient(order_pages=[
        connection([order_node("gid://shopify/Order/1", [], name="#1")], has_next=True, end_cursor="o1"),
        connection([order_node("gid://shopify/Order/2", [], name="#2")], end_cursor="o2"),
    ])

    result = _sync(test_db_session, credential, client)

    assert result.order_count == 2
    assert result.last_cursor == "o2"
    assert [call[1] for call in client.requested("orders")] == [None, "o1"]


def test_completion_is_logged(test_db_session, credential, caplog):
    caplog.set_level("INFO", logger="shopsync.services.order_sync")

    _sync(test_db_session, credential, FakeShopifyClient(order_pages=_order_pages()))

    assert "[SHOPIFY_SYNC] Order sync complete: client=acme, orders=1, line_items=1, has_more=False" in caplog.text
