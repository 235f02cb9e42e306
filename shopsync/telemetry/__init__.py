"""
Telemetry Module
================

Observability for shopsync.

Components:
- sentry.py: Error tracking for sync runs and scheduler iterations

Environment Variables:
- SENTRY_DSN: Sentry project DSN
- ENVIRONMENT: Environment name reported with events

Usage:
    from shopsync.telemetry import init_observability, capture_exception

    init_observability()
"""

from shopsync.telemetry.sentry import (
    init_sentry,
    capture_exception,
    capture_message,
)


def init_observability() -> dict:
    """
    Initialize all observability tools.

    Returns:
        Dict with status of each tool initialization, e.g. {"sentry": False}
    """
    return {
        "sentry": init_sentry(),
    }


__all__ = [
    "init_observability",
    "init_sentry",
    "capture_exception",
    "capture_message",
]
