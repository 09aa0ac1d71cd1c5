# Overview: Request payload checks, Decimal helpers and the 400/404/409 error types.

from __future__ import annotations
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from digitalshop.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import Boolean, Integer, Numeric, String, Text, Date, DateTime, JSON
from sqlalchemy.orm import DeclarativeMeta


# Largest value NUMERIC(15, 2) can hold
MAX_MONEY = Decimal("9999999999999.99")

CENT = Decimal("0.01")
QTY_STEP = Decimal("0.0001")

# Totals closer than a cent are equal
MONEY_TOLERANCE = Decimal("0.01")


class ValidationError(ValueError):
    """Bad input. Maps to 400."""


class ConflictError(ValueError):
    """Duplicate or clashing record. Maps to 409."""


class NotFoundError(LookupError):
    """Maps to 404."""


def money(value) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def quantity(value) -> Decimal:
    return Decimal(value or 0).quantize(QTY_STEP, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """JSON number or numeric string -> Decimal. Booleans and NaN are refused."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        result = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write for one model.

    writable_fields is the allowlist; anything else in the body is a 400.
    required_on_create only applies to full (non-partial) payloads.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    non_negative_fields: set[str] = field(default_factory=set)


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # plain digits only: no "12.5", no "1e3"
        if re.fullmatch(r"-?\d+", text):
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _as_decimal(key: str, value: Any) -> Decimal:
    result = to_decimal(value, key)
    if abs(result) > MAX_MONEY:
        raise ValidationError(f"{key} is out of range")
    return result


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "1"}:
        return True
    if text in {"false", "0"}:
        return False
    raise ValidationError(f"{key} must be a boolean")


def _as_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _as_date(key: str, value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_date(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date")
    return parsed


def _as_json(key: str, value: Any):
    if not isinstance(value, (dict, list)):
        raise ValidationError(f"{key} must be an object")
    return value


def _as_text(key: str, value: Any) -> str:
    return str(value).strip()


_COERCERS: tuple[tuple[type, Callable[[str, Any], Any]], ...] = (
    (Integer, _as_int),
    (Numeric, _as_decimal),
    (Boolean, _as_bool),
    (DateTime, _as_datetime),
    (Date, _as_date),
    (JSON, _as_json),
    (String, _as_text),
    (Text, _as_text),
)


def _coerce(column, value: Any):
    for coltype, coercer in _COERCERS:
        if isinstance(column.type, coltype):
            return coercer(column.key, value)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a patch of column values for ``model``.

    Keys must be in the policy allowlist and be real columns. Values are
    coerced by column type, then checked for NULL on non-nullable columns,
    blank required text, String(n) length and the non-negative rule.

    partial=True is PATCH/PUT semantics: only the keys sent are validated.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    for key in payload:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    patch: dict = {}
    for key, raw in payload.items():
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce(column, raw)
        if isinstance(value, str):
            if value == "" and not column.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(column.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")
        if key in policy.non_negative_fields and value < 0:
            raise ValidationError(f"{key} cannot be negative")

        patch[key] = value

    return patch


def date_param(value: str | None, field: str) -> date | None:
    """Parse an optional YYYY-MM-DD query parameter."""
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def bool_param(value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes"}
