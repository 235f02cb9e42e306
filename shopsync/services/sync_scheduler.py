"""Scheduled Shopify sync.

WHAT:
    Iterates every stored credential and runs one orchestrated sync for each,
    serially, on every scheduler tick.

WHY:
    - One tenant's failure (including an unexpected exception) must never stop
      the others from syncing.
    - Two runs for the same tenant would race on the same rows. The
      ``TenantSyncGuard`` skips a tenant whose previous run is still going;
      arq's ``unique`` cron keeps ticks themselves from overlapping.

SYNC SCHEDULE:
    Every SYNC_INTERVAL_MINUTES (default 60), driven by the arq cron in
    shopsync/workers/arq_worker.py.

REFERENCES:
    - shopsync/services/shopify_sync_service.py
    - shopsync/workers/arq_worker.py
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from sqlalchemy.orm import sessionmaker

from shopsync.database import session_scope
from shopsync.services.credential_store import list_credentials
from shopsync.services.order_sync import DateInput
from shopsync.services.shopify_sync_service import (
    ClientFactory,
    ShopifySyncResult,
    sync_shopify_data,
)
from shopsync.telemetry import capture_exception

logger = logging.getLogger(__name__)


class TenantSyncGuard:
    """In-process skip-if-running guard keyed by client_id."""

    def __init__(self):
        self._running: Set[str] = set()
        self._lock = asyncio.Lock()

    async def acquire(self, client_id: str) -> bool:
        async with self._lock:
            if client_id in self._running:
                return False
            self._running.add(client_id)
            return True

    async def release(self, client_id: str) -> None:
        async with self._lock:
            self._running.discard(client_id)

    def is_running(self, client_id: str) -> bool:
        return client_id in self._running


async def run_tenant_sync(
    session_factory: sessionmaker,
    client_id: str,
    guard: Optional[TenantSyncGuard] = None,
    start_date: DateInput = None,
    end_date: DateInput = None,
    client_factory: Optional[ClientFactory] = None,
) -> Optional[ShopifySyncResult]:
    """Run one guarded sync in its own session.

    Returns:
        The sync result, or None when the tenant was skipped because a run
        for it is already in progress.
    """
    guard = guard or TenantSyncGuard()
    if not await guard.acquire(client_id):
        logger.info(f"[SCHEDULER] Sync already running for client={client_id}, skipping")
        return None

    try:
        with session_scope(session_factory) as db:
            return await sync_shopify_data(
                db,
                client_id,
                start_date=start_date,
                end_date=end_date,
                client_factory=client_factory,
            )
    finally:
        await guard.release(client_id)


async def run_scheduled_sync(
    session_factory: sessionmaker,
    guard: Optional[TenantSyncGuard] = None,
    client_factory: Optional[ClientFactory] = None,
) -> Dict[str, int]:
    """Sync every stored credential, one at a time.

    Returns:
        Totals: {"total", "succeeded", "failed", "skipped"}
    """
    logger.info("[SCHEDULER] Starting scheduled Shopify sync")
    guard = guard or TenantSyncGuard()
    summary = {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    with session_scope(session_factory) as db:
        client_ids = [credential.client_id for credential in list_credentials(db)]

    summary["total"] = len(client_ids)
    logger.info(f"[SCHEDULER] Found {len(client_ids)} credential(s) to sync")

    for client_id in client_ids:
        try:
            result = await run_tenant_sync(
                session_factory,
                client_id,
                guard=guard,
                client_factory=client_factory,
            )
        except Exception as e:
            summary["failed"] += 1
            logger.exception(f"[SCHEDULER] Unexpected error syncing client={client_id}: {e}")
            capture_exception(e, extra={
                "operation": "scheduled_shopify_sync",
                "client_id": client_id,
            })
            continue

        if result is None:
            summary["skipped"] += 1
        elif result.ok:
            summary["succeeded"] += 1
            logger.info(f"[SCHEDULER] client={client_id} ok: {result.message}")
        else:
            summary["failed"] += 1
            logger.warning(f"[SCHEDULER] client={client_id} failed: {result.message}")

    logger.info(
        "[SCHEDULER] Scheduled sync complete: total=%d, succeeded=%d, failed=%d, skipped=%d",
        summary["total"], summary["succeeded"], summary["failed"], summary["skipped"],
    )
    return summary
