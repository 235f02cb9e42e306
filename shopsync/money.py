"""Exact money helpers.

WHAT:
    Converts Shopify money payloads (strings, ints, floats, MoneyBag sets)
    into ``Decimal`` values for Numeric(18, 4) columns.

WHY:
    - Shopify sends amounts as decimal strings; a float round trip would drift
      cents across thousands of line items.
    - Absent amounts must stay ``None`` so "unknown cost" is never mistaken
      for "free". Zero is only defaulted where a calculation needs it.

REFERENCES:
    - https://shopify.dev/docs/api/admin-graphql/2024-10/objects/MoneyBag
    - shopsync/services/order_sync.py (net payment and landing cost math)
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a remote numeric value into a Decimal.

    Floats go through ``str()`` first so 0.1 stays 0.1 instead of its binary
    expansion. Empty and unparseable input is logged and returned as None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        # bool is an int subclass; Shopify never sends money as a boolean
        logger.warning("[MONEY] Ignoring boolean amount %r", value)
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)

    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning("[MONEY] Unparseable amount %r, storing null", value)
        return None

    if not parsed.is_finite():
        logger.warning("[MONEY] Non-finite amount %r, storing null", value)
        return None
    return parsed


def money_from_set_or_none(money_set: Optional[dict]) -> Optional[Decimal]:
    """Read ``presentmentMoney.amount`` from a MoneyBag, or None when absent."""
    if not money_set:
        return None
    presentment = money_set.get("presentmentMoney") or {}
    return to_decimal(presentment.get("amount"))


def money_from_set(money_set: Optional[dict]) -> Decimal:
    """Same as ``money_from_set_or_none`` but an absent amount counts as zero."""
    amount = money_from_set_or_none(money_set)
    return amount if amount is not None else ZERO
