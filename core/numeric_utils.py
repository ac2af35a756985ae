"""Numeric helper utilities."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

__all__ = ["safe_decimal", "to_minor_units"]


def safe_decimal(value: Any) -> Optional[Decimal]:
    """Best-effort conversion to Decimal returning None on failure."""

    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (e.g. dollars) into minor units (cents).

    Assumes a two-decimal currency. Zero-decimal currencies (JPY) and
    three-decimal currencies (KWD) are not handled.
    """

    parsed = safe_decimal(amount)
    if parsed is None:
        raise ValueError(f"Invalid price amount: {amount!r}")
    if parsed < 0:
        raise ValueError(f"Price amount must not be negative: {amount!r}")
    return int((parsed * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
