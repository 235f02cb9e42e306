"""
Sentry Error Tracking
=====================

Centralized error tracking for sync runs.

Related files:
- shopsync/workers/arq_worker.py: Initializes Sentry on worker startup
- shopsync/main.py: Initializes Sentry when the HTTP app is created
- shopsync/services/shopify_sync_service.py: Captures reconciliation failures
- shopsync/services/sync_scheduler.py: Captures per-tenant failures

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def get_sentry_dsn() -> Optional[str]:
    """Get Sentry DSN from environment variable.

    Returns:
        DSN string if configured, None otherwise.
    """
    return os.environ.get("SENTRY_DSN")


def init_sentry() -> bool:
    """
    Initialize Sentry SDK.

    Should be called once during worker or app startup.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
        or initialization failed.
    """
    global _initialized

    dsn = get_sentry_dsn()
    if not dsn:
        logger.debug("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # Capture INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            release=os.environ.get("RELEASE_VERSION"),
        )
    except Exception as e:
        logger.error("[SENTRY] Failed to initialize: %s", e)
        return False

    _initialized = True
    logger.debug("[SENTRY] Initialized for %s environment", environment)
    return True


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are caught and converted into a result
    object but should still be tracked for monitoring purposes.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event

    Example:
        try:
            await sync_orders(db, client, credential)
        except Exception as e:
            capture_exception(e, extra={"operation": "order_sync", "client_id": client_id})
    """
    if not _initialized:
        logger.debug("Exception (Sentry disabled): %s", exception)
        return

    try:
        with sentry_sdk.new_scope() as scope:
            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error("[SENTRY] Failed to capture exception: %s", e)


def capture_message(message: str, level: str = "info", extra: Optional[dict] = None) -> None:
    """
    Capture a message to Sentry.

    Use this for important events that aren't exceptions but should
    be tracked, such as a sync that left a tenant with zero orders.

    Args:
        message: The message to capture
        level: Severity level (debug, info, warning, error, fatal)
        extra: Additional context to attach
    """
    if not _initialized:
        logger.debug("Message (Sentry disabled): %s", message)
        return

    try:
        with sentry_sdk.new_scope() as scope:
            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.error("[SENTRY] Failed to capture message: %s", e)
