"""Cursor pagination over Shopify GraphQL connections.

WHAT:
    ``CursorPager`` drives "fetch page -> hand to consumer -> advance cursor"
    as an async generator, shared by product and order sync.

WHY:
    - A missing connection on the very first page usually means a broken query
      or a revoked scope. Reporting it as "zero items" would let a sync look
      successful while writing nothing, so the pager raises instead.
    - A missing connection on a later page is treated as a partial result:
      everything already processed stays, and ``has_more`` tells the caller
      the catalog was not exhausted.
    - The next page is requested only after the consumer finished the current
      one, so at most one request is in flight per sync run.

REFERENCES:
    - https://shopify.dev/docs/api/usage/pagination-graphql
    - shopsync/services/product_sync.py, shopsync/services/order_sync.py
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from shopsync.services.shopify_client import EmptyFirstPageError

logger = logging.getLogger(__name__)

PageFetcher = Callable[[Optional[str]], Awaitable[Optional[Dict[str, Any]]]]


@dataclass
class Page:
    """One fetched page of a connection."""
    number: int
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    end_cursor: Optional[str] = None
    has_next_page: bool = False


def connection_nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten ``{edges: [{node}]}`` or ``{nodes: [...]}`` into a list of nodes."""
    if not connection:
        return []
    if connection.get("nodes") is not None:
        return [n for n in connection["nodes"] if n]
    return [edge["node"] for edge in connection.get("edges") or [] if edge and edge.get("node")]


class CursorPager:
    """Sequential async page iterator.

    Usage:
        pager = CursorPager(client.fetch_products_page, label="products")
        async for page in pager.pages():
            for node in page.nodes:
                ...
            db.commit()
        print(pager.last_cursor, pager.has_more)

    Attributes:
        last_cursor: endCursor of the last page the consumer finished
        has_more: True when iteration stopped before the remote reported the end
        pages_fetched: Number of pages handed to the consumer
    """

    def __init__(self, fetch_page: PageFetcher, *, label: str = "items"):
        self._fetch_page = fetch_page
        self.label = label
        self.last_cursor: Optional[str] = None
        self.has_more: bool = False
        self.pages_fetched: int = 0

    async def pages(self) -> AsyncIterator[Page]:
        cursor: Optional[str] = None
        number = 0

        while True:
            number += 1
            connection = await self._fetch_page(cursor)

            if connection is None:
                if number == 1:
                    logger.error(f"[PAGER] No {self.label} connection on first page, aborting")
                    raise EmptyFirstPageError(
                        f"Shopify returned no {self.label} data on the first page"
                    )
                logger.warning(
                    f"[PAGER] No {self.label} connection on page {number}, "
                    f"keeping {number - 1} processed page(s) as a partial result"
                )
                self.has_more = True
                return

            page_info = connection.get("pageInfo") or {}
            page = Page(
                number=number,
                nodes=connection_nodes(connection),
                end_cursor=page_info.get("endCursor"),
                has_next_page=bool(page_info.get("hasNextPage")),
            )
            logger.info(
                f"[PAGER] {self.label} page {number}: {len(page.nodes)} node(s) "
                f"(has_next: {page.has_next_page})"
            )

            yield page

            # Consumer finished this page
            self.pages_fetched = number
            if page.end_cursor:
                self.last_cursor = page.end_cursor
            self.has_more = page.has_next_page

            if not page.has_next_page:
                return
            if not page.end_cursor:
                logger.warning(
                    f"[PAGER] {self.label} page {number} reports hasNextPage without endCursor, stopping"
                )
                return

            cursor = page.end_cursor
