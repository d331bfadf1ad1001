from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Upper bound for stock counts and order quantities; fits a 32-bit INTEGER column
MAX_QUANTITY = 999_999_999

# dd/mm/yyyy or dd-mm-yyyy
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required on create
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_code", "name", "category", "unit",
        "price_cents", "quantity", "threshold", "expiry_date",
    },
    required_on_create={
        "product_code", "name", "category", "unit",
        "price_cents", "quantity", "expiry_date",
    },
)


def parse_day_first_date(value: str) -> datetime | None:
    """
    Parse dd/mm/yyyy or dd-mm-yyyy into a UTC-naive midnight.

    Returns None when the text is not in that shape or names an impossible
    day (31/02/2025).
    """
    m = _DAY_FIRST_DATE.match(value.strip())
    if not m:
        return None
    day, month, year = (int(part) for part in m.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_money_to_cents(value: Any) -> int:
    """'12.5' -> 1250. Rounds half-up to the nearest cent."""
    if isinstance(value, bool):
        raise ValidationError("price must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("price must be a number")
    if not amount.is_finite():
        raise ValidationError("price must be a finite number")
    if abs(amount) > Decimal(MAX_PRICE_CENTS) / 100:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Datetimes: ISO-8601 or day-first calendar dates; normalized to UTC-naive
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            dt = parse_day_first_date(value)
            if dt is not None:
                return dt
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (dd/mm/yyyy or ISO-8601)")
            if dt is None:
                raise ValidationError(f"{col.key} must be a date (dd/mm/yyyy or ISO-8601)")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, String):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming data against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, String) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    for field in ("quantity", "threshold"):
        if field in patch and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
        if field in patch and patch[field] > MAX_QUANTITY:
            raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
