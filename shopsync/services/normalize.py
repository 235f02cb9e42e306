"""Field normalization shared by the product and order reconcilers."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string to a naive UTC datetime.

    WHAT: Convert Shopify datetime strings to Python datetime
    WHY: Shopify returns ISO format strings; DateTime columns store naive UTC
    """
    if not dt_str:
        return None
    try:
        parsed = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        logger.warning(f"[SHOPIFY_SYNC] Unparseable datetime {dt_str!r}, storing null")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def clean_str(value: Any) -> Optional[str]:
    """Empty strings become None."""
    if value is None:
        return None
    value = str(value)
    return value if value != "" else None


def to_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"[SHOPIFY_SYNC] Unparseable integer {value!r}, storing null")
        return None
