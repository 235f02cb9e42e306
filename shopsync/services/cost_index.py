"""Point-in-time variant cost lookup for order sync.

WHAT:
    Maps variant Shopify GID -> unit landing cost for one tenant, read once
    at the start of an order sync.

WHY:
    Line item landing costs are a historical snapshot: the cost known when the
    line item is synced. Building the index once per order sync gives every
    line item in that run the same view, and saves a query per line item.
    Unknown costs are stored as null; zero is substituted only here, at the
    lookup boundary.

REFERENCES:
    - shopsync/services/order_sync.py
    - shopsync/models.py::Variant.inventory_cost
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from shopsync.models import Product, Variant
from shopsync.money import ZERO

logger = logging.getLogger(__name__)


class CostIndex:
    """Read-only variant cost snapshot."""

    def __init__(self, costs: Optional[Dict[str, Optional[Decimal]]] = None):
        self._costs: Dict[str, Optional[Decimal]] = dict(costs or {})

    @classmethod
    def build(cls, db: Session, client_id: str) -> "CostIndex":
        rows = (
            db.query(Variant.shopify_id, Variant.inventory_cost)
            .join(Product, Variant.product_id == Product.id)
            .filter(Product.client_id == client_id)
            .all()
        )
        index = cls({shopify_id: cost for shopify_id, cost in rows})
        logger.info(f"[COST_INDEX] Built for client={client_id}: {len(index)} variant(s)")
        return index

    def __len__(self) -> int:
        return len(self._costs)

    def __contains__(self, variant_id: str) -> bool:
        return variant_id in self._costs

    def unit_cost(self, variant_id: Optional[str]) -> Decimal:
        """Stored unit cost, or zero for unknown variants and null costs."""
        if not variant_id:
            return ZERO
        cost = self._costs.get(variant_id)
        return cost if cost is not None else ZERO

    def landing_cost(self, variant_id: Optional[str], quantity: int) -> Decimal:
        return self.unit_cost(variant_id) * Decimal(quantity or 0)
