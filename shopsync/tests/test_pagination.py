"""Unit tests for CursorPager."""

import asyncio

import pytest

from shopsync.services.pagination import CursorPager, connection_nodes
from shopsync.services.shopify_client import EmptyFirstPageError
from shopsync.tests.factories import connection


def _scripted(pages):
    requested = []

    async def fetch(cursor):
        requested.append(cursor)
        return pages[len(requested) - 1]

    return fetch, requested


def _collect(pager):
    async def run():
        return [page async for page in pager.pages()]

    return asyncio.run(run())


def test_connection_nodes_handles_edges_and_nodes():
    assert connection_nodes({"edges": [{"node": {"id": 1}}, {"node": None}]}) == [{"id": 1}]
    assert connection_nodes({"nodes": [{"id": 2}, None]}) == [{"id": 2}]
    assert connection_nodes(None) == []


def test_follows_cursors_until_last_page():
    fetch, requested = _scripted([
        connection([{"id": "a"}], has_next=True, end_cursor="c1"),
        connection([{"id": "b"}], has_next=True, end_cursor="c2"),
        connection([{"id": "c"}], has_next=False, end_cursor="c3"),
    ])
    pager = CursorPager(fetch, label="products")

    pages = _collect(pager)

    assert [p.nodes[0]["id"] for p in pages] == ["a", "b", "c"]
    assert requested == [None, "c1", "c2"]
    assert pager.last_cursor == "c3"
    assert pager.has_more is False
    assert pager.pages_fetched == 3


def test_missing_connection_on_later_page_is_partial():
    fetch, requested = _scripted([
        connection([{"id": "a"}], has_next=True, end_cursor="c1"),
        None,
    ])
    pager = CursorPager(fetch, label="products")

    pages = _collect(pager)

    assert len(pages) == 1
    assert pager.last_cursor == "c1"
    assert pager.has_more is True


def test_missing_connection_on_first_page_raises():
    fetch, _ = _scripted([None])
    pager = CursorPager(fetch, label="orders")

    with pytest.raises(EmptyFirstPageError, match="orders"):
        _collect(pager)


def test_has_next_without_cursor_stops():
    fetch, requested = _scripted([
        connection([{"id": "a"}], has_next=True, end_cursor=None),
    ])
    pager = CursorPager(fetch)

    pages = _collect(pager)

    assert len(pages) == 1
    assert requested == [None]
    assert pager.has_more is True


def test_next_page_waits_for_consumer():
    events = []

    async def fetch(cursor):
        events.append(f"fetch:{cursor}")
        if cursor is None:
            return connection([{"id": "a"}], has_next=True, end_cursor="c1")
        return connection([{"id": "b"}])

    async def run():
        async for page in CursorPager(fetch).pages():
            events.append(f"consume:{page.number}")

    asyncio.run(run())

    assert events == ["fetch:None", "consume:1", "fetch:c1", "consume:2"]
