# Overview: Product status derivation; the single source of truth for stock status.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, case, event
from sqlalchemy.orm import Session

from ..models import Product
from ..time_utils import normalize_utc, utcnow

"""
Stocktrail Status Invariants (authoritative)

- status is a pure function of (quantity, threshold, expiry_date, now).
- Rules, first match wins:
    1. quantity <= 0          -> out_of_stock
    2. expiry_date < now      -> expired (and quantity is forced to 0)
    3. quantity > threshold   -> in_stock
    4. otherwise              -> low_stock
- ORM writes: the before_flush hook recomputes status for every new or
  modified Product in the same flush.
- Core UPDATE writes (orders, expiry sweep) use status_case() so the new
  status is computed by the same statement that changes quantity.
"""

OUT_OF_STOCK = "out_of_stock"
EXPIRED = "expired"
IN_STOCK = "in_stock"
LOW_STOCK = "low_stock"


def derive_status(quantity: int, threshold: int, expiry_date: datetime, now: datetime) -> str:
    if quantity <= 0:
        return OUT_OF_STOCK
    if normalize_utc(expiry_date) < normalize_utc(now):
        return EXPIRED
    if quantity > threshold:
        return IN_STOCK
    return LOW_STOCK


def _apply_status(product: Product, now: datetime) -> str:
    status = derive_status(product.quantity or 0, product.threshold or 0, product.expiry_date, now)
    if status == EXPIRED or (product.quantity or 0) < 0:
        product.quantity = 0
    product.status = status
    return status


def refresh_status(product: Product, now: datetime | None = None) -> str:
    """
    Recompute and store a product's status.

    Expired stock is unsellable, so quantity is zeroed alongside the status.
    """
    now = now or utcnow()
    # Remember the evaluation time so the next flush agrees with the caller
    product._status_as_of = now
    return _apply_status(product, now)


def status_case(quantity_expr, now: datetime):
    """SQL CASE mirroring derive_status(); quantity_expr is the post-write quantity."""
    return case(
        (quantity_expr <= 0, OUT_OF_STOCK),
        (Product.expiry_date < now, EXPIRED),
        (quantity_expr > Product.threshold, IN_STOCK),
        else_=LOW_STOCK,
    )


def quantity_case(quantity_expr, now: datetime):
    """SQL CASE for the stored quantity: floored at 0, and 0 once expired."""
    return case(
        (quantity_expr <= 0, 0),
        (and_(quantity_expr > 0, Product.expiry_date < now), 0),
        else_=quantity_expr,
    )


def _refresh_dirty_products(session, flush_context, instances) -> None:
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Product):
            _apply_status(obj, obj.__dict__.pop("_status_as_of", None) or utcnow())


def install_status_hook() -> None:
    """Attach the before_flush recompute hook once per process."""
    if not event.contains(Session, "before_flush", _refresh_dirty_products):
        event.listen(Session, "before_flush", _refresh_dirty_products)
