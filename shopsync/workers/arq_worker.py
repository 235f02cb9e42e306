"""ARQ async worker for Shopify sync.

WHAT:
    Runs the scheduled sync of every stored credential on a cron, and
    processes on-demand single-tenant sync jobs.

WHY:
    - ARQ provides async job processing with built-in cron scheduling
    - ``unique=True`` on the cron keeps two ticks from running at once
    - The worker owns its engine and session factory through ``ctx``;
      nothing opens a connection at import time

USAGE:
    # Start worker
    arq shopsync.workers.arq_worker.WorkerSettings

    # Or use the start script
    python -m shopsync.workers.start_arq_worker

REFERENCES:
    - https://arq-docs.helpmanual.io/
    - shopsync/services/sync_scheduler.py
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from arq import cron, func

from shopsync.database import build_engine, build_session_factory
from shopsync.services.sync_scheduler import TenantSyncGuard, run_scheduled_sync, run_tenant_sync
from shopsync.telemetry import capture_exception, init_sentry
from shopsync.workers.arq_enqueue import QUEUE_NAME, get_redis_settings

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_MINUTES = 60


# =============================================================================
# SETTINGS
# =============================================================================

def get_sync_interval_minutes() -> int:
    """SYNC_INTERVAL_MINUTES clamped to 1..60 (cron minutes within an hour)."""
    raw = os.getenv("SYNC_INTERVAL_MINUTES")
    if not raw:
        return DEFAULT_SYNC_INTERVAL_MINUTES
    try:
        interval = int(raw)
    except ValueError:
        logger.warning(f"[ARQ] Invalid SYNC_INTERVAL_MINUTES={raw!r}, using {DEFAULT_SYNC_INTERVAL_MINUTES}")
        return DEFAULT_SYNC_INTERVAL_MINUTES
    return min(max(interval, 1), 60)


def cron_minutes(interval: int) -> set:
    """Minutes of the hour the cron fires at, e.g. 15 -> {0, 15, 30, 45}."""
    return set(range(0, 60, interval))


# =============================================================================
# JOBS
# =============================================================================

async def scheduled_shopify_sync(ctx: Dict) -> Dict:
    """Scheduled job: sync every stored credential serially.

    WHEN:
        Every SYNC_INTERVAL_MINUTES (default: top of every hour).
    """
    logger.info("[ARQ] Starting scheduled Shopify sync")
    try:
        return await run_scheduled_sync(ctx["session_factory"], guard=ctx["sync_guard"])
    except Exception as e:
        # Listing credentials failed; per-tenant errors never reach here
        logger.exception(f"[ARQ] Scheduled Shopify sync failed: {e}")
        capture_exception(e, extra={"operation": "scheduled_shopify_sync"})
        return {"success": False, "error": str(e)}


async def process_shopify_sync_job(
    ctx: Dict,
    client_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict:
    """On-demand job: sync one tenant.

    Returns:
        The sync result as a dict, or {"skipped": True} when a run for the
        tenant is already in progress in this worker.
    """
    logger.info(f"[ARQ] Starting Shopify sync job for client={client_id}")
    try:
        result = await run_tenant_sync(
            ctx["session_factory"],
            client_id,
            guard=ctx["sync_guard"],
            start_date=start_date,
            end_date=end_date,
        )
    except Exception as e:
        logger.exception(f"[ARQ] Shopify sync job failed for client={client_id}: {e}")
        capture_exception(e, extra={"operation": "process_shopify_sync_job", "client_id": client_id})
        return {"ok": False, "message": str(e)}

    if result is None:
        return {"ok": False, "skipped": True, "message": "Sync already running"}
    return result.to_dict()


# =============================================================================
# LIFECYCLE
# =============================================================================

async def startup(ctx: Dict) -> None:
    """Worker startup - build storage handles and init telemetry."""
    engine = build_engine()
    ctx["engine"] = engine
    ctx["session_factory"] = build_session_factory(engine)
    ctx["sync_guard"] = TenantSyncGuard()
    ctx["startup_time"] = datetime.now(timezone.utc)
    ctx["jobs_processed"] = 0

    sentry_enabled = init_sentry()

    logger.info("=" * 60)
    logger.info("[ARQ] Worker starting up")
    logger.info(f"[ARQ] Sync interval: {get_sync_interval_minutes()} min")
    logger.info(f"[ARQ] Sentry: {'enabled' if sentry_enabled else 'disabled'}")
    logger.info("=" * 60)


async def shutdown(ctx: Dict) -> None:
    """Worker shutdown - dispose the engine and log stats."""
    engine = ctx.get("engine")
    if engine is not None:
        engine.dispose()

    uptime = datetime.now(timezone.utc) - ctx.get("startup_time", datetime.now(timezone.utc))
    logger.info("=" * 60)
    logger.info("[ARQ] Worker shutting down")
    logger.info(f"[ARQ] Jobs processed: {ctx.get('jobs_processed', 0)}")
    logger.info(f"[ARQ] Uptime: {uptime}")
    logger.info("=" * 60)


async def on_job_end(ctx: Dict) -> None:
    """Called after each job completes."""
    ctx["jobs_processed"] = ctx.get("jobs_processed", 0) + 1


# =============================================================================
# WORKER SETTINGS
# =============================================================================

class WorkerSettings:
    """ARQ worker configuration.

    - cron: scheduled_shopify_sync every SYNC_INTERVAL_MINUTES, unique
    - job_timeout=3600: a full catalog + order history can be large
    - max_tries=1: the sync core never retries; the next tick is the retry
    - process_shopify_sync_job keeps no result, so arq accepts the next
      on-demand job for a tenant as soon as the previous one finished
    """

    functions = [
        # No stored result: the per-tenant job id must be free again once the run ends
        func(process_shopify_sync_job, keep_result=0),
        scheduled_shopify_sync,
    ]

    cron_jobs = [
        cron(
            scheduled_shopify_sync,
            minute=cron_minutes(get_sync_interval_minutes()),
            second=0,
            unique=True,
            run_at_startup=False,
        ),
    ]

    on_startup = startup
    on_shutdown = shutdown
    after_job_end = on_job_end

    redis_settings = get_redis_settings()

    # Performance settings
    max_jobs = 10                    # Different tenants may sync concurrently
    job_timeout = 3600               # 1 hour per job
    keep_result = 3600               # Keep results for 1 hour
    max_tries = 1                    # No retries
    health_check_interval = 30

    # Queue name
    queue_name = QUEUE_NAME
