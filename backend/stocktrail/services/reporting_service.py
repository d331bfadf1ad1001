# Overview: Read-only dashboard aggregations over products, orders and invoices.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from flask import current_app
from sqlalchemy import extract, func

from ..errors import ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceLine, Order, Product
from ..time_utils import to_utc_z, trailing_window, utcnow
from .invoice_service import PAID, UNPAID
from .status_service import OUT_OF_STOCK

"""
Stocktrail Reporting Semantics (authoritative)

- Reports never write. Each figure is its own query, so numbers from one
  report may be momentarily inconsistent with each other.
- Money is reported in integer cents.
- Chart buckets always exist; an empty bucket reports 0.
- Weekly buckets are Monday first. The raw day of week is 1-indexed from
  Sunday (1=Sun .. 7=Sat) and re-indexed with (day + 5) % 7.
- Rankings are stable: equal quantities keep first-seen order.
- Product references that no longer resolve are reported as "Unknown".
"""

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
GRANULARITIES = ("weekly", "monthly", "yearly")
UNKNOWN_PRODUCT = "Unknown"
TRAILING_DAYS = 7


def _scalar_int(query) -> int:
    return int(query.scalar() or 0)


def _percent_of(amount_cents: int, percent: int) -> int:
    value = Decimal(amount_cents) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def weekday_bucket(raw_day: int) -> int:
    """Map a Sunday-first 1..7 day of week onto a Monday-first 0..6 axis."""
    return (raw_day + 5) % 7


def rank_by_quantity(totals: dict, limit: int) -> list[tuple]:
    """
    Rank (key, {"qty", "amount_cents"}) pairs by qty, highest first.

    totals must be insertion-ordered by first appearance; sorted() is stable,
    so ties keep that order.
    """
    ranked = sorted(totals.items(), key=lambda item: item[1]["qty"], reverse=True)
    return ranked[:limit]


def _accumulate(rows: Iterable[tuple]) -> dict:
    totals: dict = {}
    for product_id, qty, price_cents in rows:
        entry = totals.setdefault(product_id, {"qty": 0, "amount_cents": 0})
        entry["qty"] += int(qty or 0)
        entry["amount_cents"] += int(qty or 0) * int(price_cents or 0)
    return totals


def _product_names(product_ids: Iterable) -> dict:
    ids = {pid for pid in product_ids if pid is not None}
    if not ids:
        return {}
    return dict(db.session.query(Product.id, Product.name).filter(Product.id.in_(ids)).all())


def home_summary() -> dict:
    """Dashboard home: sales, purchase, inventory and product overviews."""
    total_sales = _scalar_int(db.session.query(func.count(Invoice.id)))
    revenue = _scalar_int(db.session.query(func.coalesce(func.sum(Invoice.amount_cents), 0)))
    profit = _percent_of(revenue, current_app.config["PROFIT_SHARE_PERCENT"])
    cost = revenue - profit

    total_purchase = _scalar_int(db.session.query(func.count(Product.id)))
    qty_in_hand = _scalar_int(db.session.query(func.coalesce(func.sum(Product.quantity), 0)))
    cancelled = _scalar_int(
        db.session.query(func.count(Invoice.id)).filter(Invoice.status == UNPAID)
    )
    returns = _scalar_int(db.session.query(func.count(Order.id)).filter(Order.qty <= 0))
    to_be_received = _scalar_int(db.session.query(func.coalesce(func.sum(Order.qty), 0)))

    suppliers = _scalar_int(db.session.query(func.count(func.distinct(Product.created_by))))
    categories = _scalar_int(db.session.query(func.count(func.distinct(Product.category))))

    return {
        "sales_overview": {
            "sales": total_sales,
            "revenue_cents": revenue,
            "profit_cents": profit,
            "cost_cents": cost,
        },
        "purchase_overview": {
            "purchase": total_purchase,
            "cost_cents": cost,
            "cancel": cancelled,
            "return": returns,
        },
        "inventory_summary": {
            "qty_in_hand": qty_in_hand,
            "to_be_received": to_be_received,
        },
        "product_summary": {
            "suppliers": suppliers,
            "categories": categories,
        },
    }


def invoice_statistics(now: datetime | None = None) -> dict:
    now = now or utcnow()
    start, _ = trailing_window(now, TRAILING_DAYS)

    def amount_for(status: str) -> int:
        return _scalar_int(
            db.session.query(func.coalesce(func.sum(Invoice.amount_cents), 0))
            .filter(Invoice.status == status)
        )

    return {
        "recent_transactions": _scalar_int(
            db.session.query(func.count(Invoice.id)).filter(Invoice.created_at >= start)
        ),
        "total_invoices": _scalar_int(db.session.query(func.count(Invoice.id))),
        "paid_amount_cents": amount_for(PAID),
        "unpaid_amount_cents": amount_for(UNPAID),
        "pending": _scalar_int(
            db.session.query(func.count(Invoice.id)).filter(Invoice.status == UNPAID)
        ),
        "processed": _scalar_int(
            db.session.query(func.coalesce(func.sum(Invoice.processed_count), 0))
        ),
        "customers": _scalar_int(db.session.query(func.count(func.distinct(Order.created_by)))),
    }


def inventory_statistics() -> dict:
    return {
        "total_revenue_cents": _scalar_int(
            db.session.query(func.coalesce(func.sum(Invoice.amount_cents), 0))
        ),
        "products_sold": _scalar_int(db.session.query(func.coalesce(func.sum(InvoiceLine.qty), 0))),
        "products_in_stock": _scalar_int(db.session.query(func.coalesce(func.sum(Product.quantity), 0))),
    }


def _totals_by(part: str) -> tuple[dict, dict]:
    """Invoice amounts and order purchase totals grouped by a date part."""
    sales_key = extract(part, Invoice.created_at).label("bucket")
    sales_rows = (
        db.session.query(sales_key, func.sum(Invoice.amount_cents))
        .group_by(sales_key)
        .all()
    )

    purchase_key = extract(part, Order.created_at).label("bucket")
    purchase_rows = (
        db.session.query(purchase_key, func.sum(Order.qty * Order.price_at_order_cents))
        .group_by(purchase_key)
        .all()
    )

    sales = {int(k): int(v or 0) for k, v in sales_rows if k is not None}
    purchases = {int(k): int(v or 0) for k, v in purchase_rows if k is not None}
    return sales, purchases


def chart_series(granularity: str) -> dict:
    """
    Sales (invoice amounts) and purchases (qty * price_at_order) per bucket.

    - weekly: 7 buckets Mon..Sun over all records
    - monthly: 12 calendar-month buckets over all years
    - yearly: CHART_YEAR_COUNT buckets starting at CHART_YEAR_START
    """
    if granularity == "weekly":
        # dow is 0=Sunday; +1 gives the Sunday-first 1..7 numbering
        sales, purchases = _totals_by("dow")
        sales_axis = defaultdict(int)
        purchase_axis = defaultdict(int)
        for raw, total in sales.items():
            sales_axis[weekday_bucket(raw + 1)] += total
        for raw, total in purchases.items():
            purchase_axis[weekday_bucket(raw + 1)] += total
        labels = list(WEEKDAY_LABELS)
        keys = range(7)
    elif granularity == "monthly":
        sales_axis, purchase_axis = _totals_by("month")
        labels = list(MONTH_LABELS)
        keys = range(1, 13)
    elif granularity == "yearly":
        sales_axis, purchase_axis = _totals_by("year")
        start = current_app.config["CHART_YEAR_START"]
        keys = range(start, start + current_app.config["CHART_YEAR_COUNT"])
        labels = list(keys)
    else:
        raise ValidationError(f"type must be one of: {', '.join(GRANULARITIES)}")

    return {
        "granularity": granularity,
        "labels": labels,
        "sales": [sales_axis.get(k, 0) for k in keys],
        "purchases": [purchase_axis.get(k, 0) for k in keys],
    }


def top_products(limit: int = 3) -> list[dict]:
    """Best sellers by quantity across all invoice lines."""
    rows = (
        db.session.query(InvoiceLine.product_id, InvoiceLine.qty, InvoiceLine.price_cents)
        .order_by(InvoiceLine.id.asc())
        .all()
    )
    ranked = rank_by_quantity(_accumulate(rows), limit)
    names = _product_names(pid for pid, _ in ranked)

    return [
        {
            "product_id": pid,
            "name": names.get(pid, UNKNOWN_PRODUCT),
            "total_qty": totals["qty"],
            "revenue_cents": totals["amount_cents"],
        }
        for pid, totals in ranked
    ]


def product_statistics(now: datetime | None = None, *, top_limit: int = 5) -> dict:
    """
    Trailing 7-day product dashboard.

    categories_avg is the mean, over days that saw new products, of the
    number of distinct categories created that day (one decimal, half-up).
    """
    now = now or utcnow()
    start, end = trailing_window(now, TRAILING_DAYS)

    created = (
        db.session.query(Product.created_at, Product.category)
        .filter(Product.created_at >= start, Product.created_at <= end)
        .all()
    )
    per_day: dict = defaultdict(set)
    for created_at, category in created:
        per_day[created_at.date()].add(category)
    if per_day:
        mean = Decimal(sum(len(c) for c in per_day.values())) / Decimal(len(per_day))
        categories_avg = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    else:
        categories_avg = 0

    recent_orders = (
        db.session.query(Order.product_id, Order.qty, Order.price_at_order_cents)
        .filter(Order.created_at >= start, Order.created_at <= end)
        .order_by(Order.id.asc())
        .all()
    )
    order_totals = _accumulate(recent_orders)
    revenue = sum(t["amount_cents"] for t in order_totals.values())
    top = rank_by_quantity(order_totals, top_limit)
    names = _product_names(pid for pid, _ in top)

    not_in_stock = _scalar_int(
        db.session.query(func.count(Product.id)).filter(Product.status == OUT_OF_STOCK)
    )

    return {
        "window": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "categories_avg": categories_avg,
        "total_products": len(created),
        "revenue_cents": revenue,
        "top_selling": {
            "count": len(top),
            "cost_cents": sum(t["amount_cents"] for _, t in top),
            "products": [
                {
                    "product_id": pid,
                    "name": names.get(pid, UNKNOWN_PRODUCT),
                    "qty": t["qty"],
                    "amount_cents": t["amount_cents"],
                }
                for pid, t in top
            ],
        },
        "low_stocks": {
            "ordered": len(recent_orders),
            "not_in_stock": not_in_stock,
        },
    }
