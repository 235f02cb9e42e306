"""Shopify sync orchestration.

WHAT:
    Runs one complete sync for a tenant: health check -> products -> orders,
    and converts every outcome into a ``ShopifySyncResult``.

WHY:
    - Enables HTTP endpoints, the arq worker, the scheduler and the CLI to
      share the same logic.
    - Products must be reconciled before orders so the CostIndex sees the
      freshest variant costs.
    - The pre-flight health check keeps a dead or revoked credential from
      reaching the reconcilers, so local data is never touched by a run that
      cannot talk to Shopify.
    - Callers only ever see a result object, never a raw exception.

PHASES:
    idle -> health_checking -> syncing_products -> syncing_orders -> completed
    (failed is reachable from every phase)

REFERENCES:
    - shopsync/services/product_sync.py
    - shopsync/services/order_sync.py
    - shopsync/services/sync_scheduler.py (scheduled caller)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from shopsync.models import Order, ShopifyCredential
from shopsync.services.credential_store import get_credential
from shopsync.services.order_sync import DateInput, build_order_search_query, sync_orders
from shopsync.services.product_sync import sync_products
from shopsync.services.shopify_client import ShopifyClient
from shopsync.telemetry import capture_exception, capture_message

logger = logging.getLogger(__name__)


class SyncPhase(str, enum.Enum):
    idle = "idle"
    health_checking = "health_checking"
    syncing_products = "syncing_products"
    syncing_orders = "syncing_orders"
    completed = "completed"
    failed = "failed"


# Human-readable phase names for result messages
PHASE_LABELS = {
    SyncPhase.idle: "Sync setup",
    SyncPhase.health_checking: "Health check",
    SyncPhase.syncing_products: "Product sync",
    SyncPhase.syncing_orders: "Order sync",
}


class NoCredentialError(Exception):
    """Tenant has no stored Shopify credential."""


class HealthCheckFailedError(Exception):
    """Pre-flight ``shop`` probe failed."""


@dataclass
class ShopifySyncResult:
    """Outcome of one orchestrated sync."""
    ok: bool
    message: str
    product_count: int = 0
    variant_count: int = 0
    order_count: int = 0
    line_item_count: int = 0
    last_cursor: Optional[str] = None
    has_more: bool = False
    phase: SyncPhase = SyncPhase.idle

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


ClientFactory = Callable[[ShopifyCredential], Any]


def _count_orders(db: Session, client_id: str) -> int:
    return db.query(Order).filter(Order.client_id == client_id).count()


class ShopifySyncOrchestrator:
    """Runs one tenant sync against an explicit session.

    Usage:
        orchestrator = ShopifySyncOrchestrator(db)
        result = await orchestrator.run("client-1", start_date="2024-01-01")
    """

    def __init__(self, db: Session, client_factory: Optional[ClientFactory] = None):
        self.db = db
        self.client_factory = client_factory or ShopifyClient.from_credential
        self.phase = SyncPhase.idle

    def _enter(self, phase: SyncPhase) -> None:
        logger.info(f"[SHOPIFY_SYNC] Phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    async def run(
        self,
        client_id: str,
        start_date: DateInput = None,
        end_date: DateInput = None,
    ) -> ShopifySyncResult:
        result = ShopifySyncResult(ok=False, message="", phase=SyncPhase.idle)
        self.phase = SyncPhase.idle

        logger.info(f"[SHOPIFY_SYNC] Starting sync: client={client_id}, start={start_date}, end={end_date}")

        # Entry guard: no network, no writes
        try:
            credential = get_credential(self.db, client_id)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"[SHOPIFY_SYNC] Credential lookup failed for client={client_id}: {e}")
            capture_exception(e, extra={"operation": "shopify_credential_lookup", "client_id": client_id})
            return self._fail(result, f"Sync setup failed: {e}. Local data was not touched.")

        if credential is None:
            error = NoCredentialError(f"No Shopify credential stored for client {client_id}")
            logger.warning(f"[SHOPIFY_SYNC] {error}")
            return self._fail(result, f"Sync setup failed: {error}. Local data was not touched.")

        try:
            build_order_search_query(start_date, end_date)
        except ValueError as e:
            logger.warning(f"[SHOPIFY_SYNC] Invalid date range for client={client_id}: {e}")
            return self._fail(result, f"Invalid date range: {e}. Local data was not touched.")

        # Health check
        self._enter(SyncPhase.health_checking)
        try:
            client = self.client_factory(credential)
            await client.get_shop()
        except Exception as e:
            error = HealthCheckFailedError(f"Shopify health check failed: {e}")
            logger.error(f"[SHOPIFY_SYNC] {error} (client={client_id})")
            capture_exception(error, extra={"operation": "shopify_health_check", "client_id": client_id})
            return self._fail(result, f"{error}. Local data was not touched; existing data was preserved.")

        try:
            self._enter(SyncPhase.syncing_products)
            orders_before = _count_orders(self.db, client_id)

            product_result = await sync_products(self.db, client, credential)
            result.product_count = product_result.product_count
            result.variant_count = product_result.variant_count

            self._enter(SyncPhase.syncing_orders)
            order_result = await sync_orders(self.db, client, credential, start_date, end_date)
            result.order_count = order_result.order_count
            result.line_item_count = order_result.line_item_count
            result.last_cursor = order_result.last_cursor
            result.has_more = order_result.has_more

            orders_after = _count_orders(self.db, client_id)

        except Exception as e:
            # Discard the in-flight page; committed pages stay
            self.db.rollback()
            label = PHASE_LABELS.get(self.phase, self.phase.value)
            logger.exception(f"[SHOPIFY_SYNC] {label} failed for client={client_id}: {e}")
            capture_exception(e, extra={
                "operation": "shopify_sync",
                "phase": self.phase.value,
                "client_id": client_id,
            })
            return self._fail(result, f"{label} failed: {e}. Existing data was preserved.")

        if orders_before > 0 and orders_after == 0:
            warning = (
                f"Sync for client {client_id} finished with 0 local orders "
                f"(had {orders_before} before the run)"
            )
            logger.warning(f"[SHOPIFY_SYNC] {warning}")
            capture_message(warning, level="warning", extra={"client_id": client_id})

        self._enter(SyncPhase.completed)
        result.ok = True
        result.phase = SyncPhase.completed
        result.message = (
            f"Synced {result.product_count} products ({result.variant_count} variants) "
            f"and {result.order_count} orders ({result.line_item_count} line items)"
        )
        if result.has_more:
            result.message += "; more orders remain"

        logger.info(f"[SHOPIFY_SYNC] Sync complete: client={client_id}: {result.message}")
        return result

    def _fail(self, result: ShopifySyncResult, message: str) -> ShopifySyncResult:
        self.phase = SyncPhase.failed
        result.ok = False
        result.phase = SyncPhase.failed
        result.message = message
        return result


async def sync_shopify_data(
    db: Session,
    client_id: str,
    start_date: DateInput = None,
    end_date: DateInput = None,
    client_factory: Optional[ClientFactory] = None,
) -> ShopifySyncResult:
    """Run products -> orders for one tenant and return the structured result."""
    orchestrator = ShopifySyncOrchestrator(db, client_factory=client_factory)
    return await orchestrator.run(client_id, start_date=start_date, end_date=end_date)
