# Overview: Exact decimal helpers for money and stock quantities.

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationFailedError

ZERO = Decimal("0")
ONE = Decimal("1")

# Storage scale of every Numeric(18, 4) column
STORAGE_EXPONENT = Decimal("0.0001")

# FULLY_RECEIVED classification only. Payment totals compare exactly.
RECEIPT_TOLERANCE = Decimal("0.00001")


def to_decimal(value, field: str = "value", *, allow_none: bool = False) -> Decimal | None:
    """
    Convert API/DB input to Decimal without passing through binary float math.

    Floats are converted from their shortest repr (0.1 -> Decimal("0.1")).
    Booleans, NaN and infinities are rejected.
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationFailedError(f"{field} is required", {"field": field})
    if isinstance(value, bool):
        raise ValidationFailedError(f"{field} must be a number", {"field": field})
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationFailedError(f"{field} must be a number", {"field": field, "value": value})
    else:
        raise ValidationFailedError(f"{field} must be a number", {"field": field})

    if not result.is_finite():
        raise ValidationFailedError(f"{field} must be a finite number", {"field": field})
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round half-up to the storage scale."""
    return value.quantize(STORAGE_EXPONENT, rounding=ROUND_HALF_UP)


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(value, upper))


def is_whole_number(value: Decimal) -> bool:
    return value == value.to_integral_value()


def decimal_str(value: Decimal | None) -> str | None:
    """Plain-notation string for messages and payloads ("10", "4.5", never "1E+1")."""
    if value is None:
        return None
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(ONE))
    return format(normalized, "f")
