# Overview: Free-text search over products and invoices with paginated results.

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import PRODUCT_STATUSES, Invoice, Product
from ..time_utils import day_window
from .invoice_service import PAID, UNPAID

"""
A query matches when ANY of these hold:
- case-insensitive substring on the text fields
- numeric equality, when the query parses as a number
- same calendar day, when the query is dd/mm/yyyy; the day is checked as a
  UTC day and as a day at the reference offset, so stored timestamps match
  whichever way they were written
- status: exact match when the query is a status word, else substring
"""

_SEARCH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

# Numbers beyond this exponent cannot match a stored integer column
_MAX_SEARCH_EXPONENT = 18
_INT64_MIN, _INT64_MAX = -(2 ** 63), 2 ** 63 - 1


def parse_search_date(q: str) -> date | None:
    m = _SEARCH_DATE.match(q)
    if not m:
        return None
    day, month, year = (int(part) for part in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_search_number(q: str) -> Decimal | None:
    try:
        value = Decimal(q)
    except InvalidOperation:
        return None
    if not value.is_finite() or value.adjusted() > _MAX_SEARCH_EXPONENT:
        return None
    return value


def _as_int(value: Decimal) -> int | None:
    """Whole value in the signed 64-bit range, else None."""
    if value != value.to_integral_value():
        return None
    whole = int(value)
    return whole if _INT64_MIN <= whole <= _INT64_MAX else None


def _contains(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ilike(column, q: str):
    return column.ilike(_contains(q), escape="\\")


def _same_day(column, day: date, offset_minutes: int):
    windows = [day_window(day), day_window(day, offset_minutes)]
    return or_(*(and_(column >= start, column <= end) for start, end in windows))


def _paginate(query, order_by, page: int | None, per_page: int | None) -> dict:
    per_page = per_page or current_app.config["SEARCH_PAGE_SIZE"]
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    items = query.order_by(*order_by).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [item.to_dict() for item in items],
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
    }


def product_filter(q: str):
    """Build the OR filter for a product query; None means match everything."""
    q = (q or "").strip()
    if not q:
        return None

    clauses = [
        _ilike(Product.product_code, q),
        _ilike(Product.name, q),
        _ilike(Product.category, q),
        _ilike(Product.unit, q),
    ]

    number = parse_search_number(q)
    if number is not None:
        cents = _as_int(number * 100)
        if cents is not None:
            clauses.append(Product.price_cents == cents)
        whole = _as_int(number)
        if whole is not None:
            clauses.append(Product.quantity == whole)
            clauses.append(Product.threshold == whole)

    day = parse_search_date(q)
    if day is not None:
        clauses.append(
            _same_day(Product.expiry_date, day, current_app.config["REFERENCE_TZ_OFFSET_MINUTES"])
        )

    # "In-stock" and "in stock" both mean in_stock
    status = q.lower().replace("-", "_").replace(" ", "_")
    if status in PRODUCT_STATUSES:
        clauses.append(Product.status == status)
    else:
        clauses.append(_ilike(Product.status, status))

    return or_(*clauses)


def invoice_filter(q: str):
    q = (q or "").strip()
    if not q:
        return None

    clauses = [
        _ilike(Invoice.invoice_number, q),
        _ilike(Invoice.reference_number, q),
    ]

    number = parse_search_number(q)
    if number is not None:
        cents = _as_int(number * 100)
        if cents is not None:
            clauses.append(Invoice.amount_cents == cents)

    day = parse_search_date(q)
    if day is not None:
        clauses.append(
            _same_day(Invoice.due_date, day, current_app.config["REFERENCE_TZ_OFFSET_MINUTES"])
        )

    # Substring would let "paid" match "Unpaid"
    lowered = q.lower()
    if lowered in (PAID.lower(), UNPAID.lower()):
        clauses.append(Invoice.status == lowered.capitalize())
    else:
        clauses.append(_ilike(Invoice.status, q))

    return or_(*clauses)


def search_products(q: str | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Product)
    condition = product_filter(q)
    if condition is not None:
        query = query.filter(condition)
    return _paginate(query, (Product.created_at.desc(), Product.id.desc()), page, per_page)


def search_invoices(q: str | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Invoice)
    condition = invoice_filter(q)
    if condition is not None:
        query = query.filter(condition)
    return _paginate(query, (Invoice.created_at.desc(), Invoice.id.desc()), page, per_page)
