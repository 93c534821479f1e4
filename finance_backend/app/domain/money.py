"""
Monetary value helpers.

Amounts are Decimal end to end. Values coming from outside (provider
payloads, aggregation rows) are parsed once, here.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")


def parse_amount(value: Any) -> Decimal:
    """
    Parse a raw numeric value into a finite Decimal.

    None, empty or non-numeric strings, NaN and infinities all become 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO

    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return ZERO
        return parsed if parsed.is_finite() else ZERO

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ZERO
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return ZERO
        return parsed if parsed.is_finite() else ZERO

    return ZERO


def cents_to_decimal(cents: Any) -> Decimal:
    """Convert an amount in minor units (cents) to major units, exactly."""
    return (parse_amount(cents) / 100).quantize(CENT)


def to_money(value: Decimal) -> Decimal:
    """Round to two decimal places."""
    return value.quantize(CENT)


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return ZERO
    return to_money(part / whole * 100)
