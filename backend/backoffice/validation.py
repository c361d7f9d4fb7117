# Overview: Request payload coercion helpers used by the route layer.

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .errors import ValidationFailedError
from .money import to_decimal
from .time_utils import parse_iso_date


def require_payload(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationFailedError("Request body must be a JSON object")
    return data


def require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        raise ValidationFailedError(f"{key} is required", {"field": key})
    return coerce_int(value, key)


def optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return coerce_int(value, key)


def coerce_int(value: Any, key: str) -> int:
    # Integers - reject floats, bools and scientific notation
    if isinstance(value, bool):
        raise ValidationFailedError(f"{key} must be an integer", {"field": key})
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationFailedError(f"{key} must be an integer", {"field": key})


def require_decimal(data: dict, key: str) -> Decimal:
    return to_decimal(data.get(key), key)


def optional_decimal(data: dict, key: str) -> Decimal | None:
    return to_decimal(data.get(key), key, allow_none=True)


def optional_str(data: dict, key: str, *, max_length: int | None = None) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailedError(f"{key} must be a string", {"field": key})
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationFailedError(f"{key} must be at most {max_length} characters", {"field": key})
    return value or None


def require_str(data: dict, key: str, *, max_length: int | None = None) -> str:
    value = optional_str(data, key, max_length=max_length)
    if value is None:
        raise ValidationFailedError(f"{key} is required", {"field": key})
    return value


def optional_date(data: dict, key: str):
    value = data.get(key)
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationFailedError(f"{key} must be an ISO-8601 date", {"field": key, "value": value})


def require_list(data: dict, key: str) -> list:
    value = data.get(key)
    if not isinstance(value, list):
        raise ValidationFailedError(f"{key} must be a list", {"field": key})
    return value
