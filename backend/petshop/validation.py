# Overview: Request-body cleaning driven by the model's column metadata.

"""
Payload validation

Every write endpoint passes its JSON body through validate_payload() with a
per-model policy. Only policy-listed fields get through; each value is coerced
to its column type (ints stay strict, Numeric columns become 3-decimal
quantities, ISO strings become dates). The result is a patch dict the
services apply with setattr. Domain rules that the column types cannot
express live in the enforce_rules_* helpers below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text

from .errors import ValidationError
from .quantities import to_quantity
from .time_utils import parse_iso_date, parse_iso_datetime

# R$ 9.999.999,99
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)

    def missing_on_create(self, payload: dict) -> list[str]:
        return sorted(name for name in self.required_on_create if name not in payload)


def _as_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true must not become 1
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("+-").isdigit():
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _as_quantity(key: str, value: Any):
    return to_quantity(value, key)


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false")
    return value


def _as_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _as_date(key: str, value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 date")
    return parsed


def _as_text(key: str, value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{key} must be a string")
    return str(value).strip()


# Checked in order: DateTime before Date, Integer before Numeric.
_COERCERS: list[tuple[type, Callable[[str, Any], Any]]] = [
    (Boolean, _as_bool),
    (Integer, _as_int),
    (Numeric, _as_quantity),
    (DateTime, _as_datetime),
    (Date, _as_date),
    (JSON, lambda key, value: value),
    (String, _as_text),
    (Text, _as_text),
]


def _coerce(column, value: Any) -> Any:
    for sql_type, coerce in _COERCERS:
        if isinstance(column.type, sql_type):
            return coerce(column.key, value)
    return value


def _clean_value(column, raw: Any) -> Any:
    if raw is None:
        if not column.nullable:
            raise ValidationError(f"{column.key} cannot be null")
        return None

    value = _coerce(column, raw)
    if not isinstance(value, str):
        return value

    # "" on a nullable column is stored as NULL so optional unique columns
    # (barcode, tax_id) never collide on the empty string
    if value == "":
        if not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        return None

    max_len = getattr(column.type, "length", None)
    if max_len and len(value) > max_len:
        raise ValidationError(f"{column.key} exceeds max length {max_len}")
    return value


def validate_payload(*, model, payload: dict | None, policy: ModelValidationPolicy, partial: bool) -> dict:
    """Return the cleaned patch for ``model``; partial=True skips the required-field check."""
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = policy.missing_on_create(payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    rejected = [name for name in payload if name not in policy.writable_fields]
    if rejected:
        raise ValidationError(f"Field not allowed: {rejected[0]}", details={"fields": rejected})
    unknown = [name for name in payload if name not in columns]
    if unknown:
        raise ValidationError(f"Unknown field: {unknown[0]}", details={"fields": unknown})

    return {name: _clean_value(columns[name], raw) for name, raw in payload.items()}


def _check_cents(patch: dict, name: str, *, allow_zero: bool = True, ceiling: int | None = None) -> None:
    cents = patch.get(name)
    if cents is None:
        return
    if cents < 0 or (cents == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'>=' if allow_zero else '>'} 0")
    if ceiling is not None and cents > ceiling:
        raise ValidationError(f"{name} cannot exceed {ceiling}")


def enforce_rules_product(patch: dict) -> None:
    _check_cents(patch, "price_cents", ceiling=MAX_PRICE_CENTS)
    _check_cents(patch, "cost_cents", ceiling=MAX_PRICE_CENTS)
    if patch.get("min_stock") is not None and patch["min_stock"] < 0:
        raise ValidationError("min_stock must be >= 0")


def enforce_rules_customer(patch: dict) -> None:
    _check_cents(patch, "credit_limit_cents")


def enforce_rules_transaction(patch: dict) -> None:
    """amount_cents is always positive; the category kind carries the sign."""
    _check_cents(patch, "amount_cents", allow_zero=False)
    tags = patch.get("tags")
    if tags is None:
        return
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags must be a list of strings")
    patch["tags"] = [t.strip() for t in tags if t.strip()]
