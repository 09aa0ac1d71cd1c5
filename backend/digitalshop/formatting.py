# Overview: JSON-friendly conversions for NUMERIC columns.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


def to_money(value: Optional[Decimal]) -> Optional[float]:
    """Decimal money -> float rounded to cents (None stays None)."""
    if value is None:
        return None
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_qty(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(value).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))


def to_rate(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def format_qty(value) -> str:
    """Human-readable quantity for messages: 5, 2.5 (never 1E+2)."""
    return format(Decimal(value).normalize(), "f")
