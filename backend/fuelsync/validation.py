from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import Any

from fuelsync.domain.money import to_cents, to_quantity
from fuelsync.errors import SettlementError
from fuelsync.time_utils import parse_clock_time, parse_iso_date


# Maximum money amount: 99,999,999.99 (9,999,999,999 cents)
# Above int4, so every *_cents column is BIGINT
MAX_AMOUNT_CENTS = 9_999_999_999


class ValidationError(SettlementError, ValueError):
    """400-level intake problem, raised before any state is touched."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ConflictError(SettlementError, ValueError):
    """409-level business rule conflict (e.g., duplicate station code)."""

    code = "CONFLICT"
    http_status = 409


_MISSING = object()


def pick(payload: dict, *keys: str, default: Any = None) -> Any:
    """
    Return the first present key.

    Intake accepts both the camelCase keys the web clients send and the
    snake_case keys used internally (e.g. "nozzleId" / "nozzle_id").
    """
    for key in keys:
        value = payload.get(key, _MISSING)
        if value is not _MISSING:
            return value
    return default


def require(payload: dict, *keys: str) -> Any:
    value = pick(payload, *keys)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{keys[0]} is required", field=keys[0])
    return value


def parse_money(value: Any, field: str, *, allow_negative: bool = False, required: bool = True) -> int | None:
    """Decimal currency input -> integer cents."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        cents = to_cents(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be an amount with at most 2 decimals ({exc})", field=field)
    if cents < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative", field=field, value=str(value))
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount", field=field)
    return cents


def parse_quantity(value: Any, field: str) -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    try:
        quantity = to_quantity(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be a meter value ({exc})", field=field)
    if quantity < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return quantity


def parse_int(value: Any, field: str, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    # Reject bools and floats explicitly (True == 1 in Python)
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        return value
    stripped = str(value).strip()
    if not stripped.lstrip("-").isdigit():
        raise ValidationError(f"{field} must be an integer", field=field)
    return int(stripped)


def parse_int_list(value: Any, field: str) -> list[int]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ValidationError(f"{field} must be a non-empty array", field=field)
    ids = [parse_int(v, field) for v in value]
    if len(set(ids)) != len(ids):
        raise ValidationError(f"{field} contains duplicates", field=field)
    return ids


def parse_date(value: Any, field: str, *, required: bool = True) -> date | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required (YYYY-MM-DD)", field=field)
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date", field=field, value=str(value))


def parse_time(value: Any, field: str) -> time | None:
    if value is None or value == "":
        return None
    try:
        return parse_clock_time(value)
    except ValueError:
        raise ValidationError(f"{field} must be HH:MM or HH:MM:SS", field=field)


def parse_bool(value: Any, field: str, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no", ""}:
        return False
    raise ValidationError(f"{field} must be a boolean", field=field)


def parse_choice(value: Any, field: str, choices, *, default: str | None = None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required", field=field)
        return default
    text = str(value).strip().lower()
    if text not in choices:
        raise ValidationError(f"{field} must be one of {sorted(choices)}", field=field, value=text)
    return text


def clean_text(value: Any, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"text exceeds {max_length} characters")
    return text
