from datetime import datetime, timedelta

import pytest

from stocktrail.errors import ValidationError
from stocktrail.services import reporting_service
from stocktrail.services.reporting_service import chart_series, rank_by_quantity, weekday_bucket


NOW = datetime(2025, 3, 15, 12, 0, 0)


def test_weekday_bucket_is_monday_first():
    assert weekday_bucket(1) == 6  # Sunday
    assert weekday_bucket(2) == 0  # Monday
    assert weekday_bucket(7) == 5  # Saturday


def test_rank_by_quantity_keeps_first_seen_order_on_ties():
    totals = {
        "x": {"qty": 4, "amount_cents": 0},
        "y": {"qty": 9, "amount_cents": 0},
        "z": {"qty": 4, "amount_cents": 0},
    }
    assert [key for key, _ in rank_by_quantity(totals, 3)] == ["y", "x", "z"]
    assert [key for key, _ in rank_by_quantity(totals, 1)] == ["y"]


def test_home_summary(db_session, make_product, make_order, make_invoice):
    a = make_product(category="Grocery", created_by="supplier-1", quantity=10)
    make_product(category="Dairy", created_by="supplier-2", quantity=5)
    make_invoice(lines=((a.id, 1, 1000),), status="Paid")
    make_invoice(lines=((a.id, 3, 1000),), status="Unpaid")
    make_order(a.id, 3, 1000)

    summary = reporting_service.home_summary()

    assert summary["sales_overview"] == {
        "sales": 2,
        "revenue_cents": 4000,
        "profit_cents": 1000,
        "cost_cents": 3000,
    }
    assert summary["purchase_overview"] == {
        "purchase": 2,
        "cost_cents": 3000,
        "cancel": 1,
        "return": 0,
    }
    assert summary["inventory_summary"] == {"qty_in_hand": 15, "to_be_received": 3}
    assert summary["product_summary"] == {"suppliers": 2, "categories": 2}


def test_home_summary_profit_rounds_to_whole_cents(db_session, make_invoice):
    make_invoice(lines=((None, 1, 1001),))

    overview = reporting_service.home_summary()["sales_overview"]

    assert overview["profit_cents"] == 250
    assert overview["cost_cents"] == 751


def test_home_summary_on_empty_store(db_session):
    summary = reporting_service.home_summary()
    assert summary["sales_overview"]["revenue_cents"] == 0
    assert summary["inventory_summary"] == {"qty_in_hand": 0, "to_be_received": 0}


def test_invoice_statistics(db_session, make_product, make_order, make_invoice):
    product = make_product()
    make_invoice(lines=((None, 1, 1000),), created_at=NOW - timedelta(days=2), status="Paid", processed_count=2)
    make_invoice(lines=((None, 1, 500),), created_at=NOW - timedelta(days=10), processed_count=1)
    make_invoice(lines=((None, 1, 250),), created_at=NOW - timedelta(days=1))
    make_order(product.id, 1, 100, created_by="customer-1")
    make_order(product.id, 1, 100, created_by="customer-1")
    make_order(product.id, 1, 100, created_by="customer-2")

    stats = reporting_service.invoice_statistics(now=NOW)

    assert stats == {
        "recent_transactions": 2,
        "total_invoices": 3,
        "paid_amount_cents": 1000,
        "unpaid_amount_cents": 750,
        "pending": 2,
        "processed": 3,
        "customers": 2,
    }


def test_inventory_statistics(db_session, make_product, make_invoice):
    make_product(quantity=7)
    make_product(quantity=3)
    make_invoice(lines=((None, 2, 500), (None, 4, 100)))

    assert reporting_service.inventory_statistics() == {
        "total_revenue_cents": 1400,
        "products_sold": 6,
        "products_in_stock": 10,
    }


# ---------------------------------------------------------------------------
# charts
# ---------------------------------------------------------------------------

def test_weekly_chart_buckets_monday_first(db_session, make_product, make_order, make_invoice):
    product = make_product()
    make_invoice(lines=((None, 1, 700),), created_at=datetime(2025, 3, 16, 10, 0))  # Sunday
    make_invoice(lines=((None, 1, 300),), created_at=datetime(2025, 3, 17, 10, 0))  # Monday
    make_order(product.id, 2, 150, created_at=datetime(2025, 3, 19, 10, 0))  # Wednesday

    chart = chart_series("weekly")

    assert chart["labels"] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    assert chart["sales"] == [300, 0, 0, 0, 0, 0, 700]
    assert chart["purchases"] == [0, 0, 300, 0, 0, 0, 0]


def test_monthly_chart_spans_all_years(db_session, make_invoice):
    make_invoice(lines=((None, 1, 700),), created_at=datetime(2025, 3, 2))
    make_invoice(lines=((None, 1, 300),), created_at=datetime(2024, 3, 20))
    make_invoice(lines=((None, 1, 50),), created_at=datetime(2025, 12, 31))

    chart = chart_series("monthly")

    assert len(chart["labels"]) == 12
    assert chart["sales"][2] == 1000
    assert chart["sales"][11] == 50
    assert sum(chart["sales"]) == 1050
    assert chart["purchases"] == [0] * 12


def test_yearly_chart_uses_configured_range(db_session, make_invoice):
    make_invoice(lines=((None, 1, 500),), created_at=datetime(2027, 6, 1))
    make_invoice(lines=((None, 1, 900),), created_at=datetime(2019, 6, 1))

    chart = chart_series("yearly")

    assert chart["labels"] == [2025, 2026, 2027, 2028, 2029, 2030]
    assert chart["sales"] == [0, 0, 500, 0, 0, 0]


def test_empty_chart_is_all_zero(db_session):
    chart = chart_series("weekly")
    assert chart["sales"] == [0] * 7
    assert chart["purchases"] == [0] * 7


def test_unknown_granularity(db_session):
    with pytest.raises(ValidationError):
        chart_series("hourly")


# ---------------------------------------------------------------------------
# rankings
# ---------------------------------------------------------------------------

def test_top_products_by_invoiced_quantity(db_session, make_product, make_invoice):
    a = make_product(name="A")
    b = make_product(name="B")
    c = make_product(name="C")
    make_invoice(lines=((a.id, 5, 100), (b.id, 4, 200)))
    make_invoice(lines=((b.id, 5, 200), (c.id, 2, 300)))
    make_invoice(lines=((9999, 1, 50),))

    top = reporting_service.top_products(3)

    assert [(row["name"], row["total_qty"]) for row in top] == [("B", 9), ("A", 5), ("C", 2)]
    assert top[0]["revenue_cents"] == 1800


def test_top_products_reports_unknown_products(db_session, make_invoice):
    make_invoice(lines=((9999, 7, 100),))

    top = reporting_service.top_products()

    assert top == [{"product_id": 9999, "name": "Unknown", "total_qty": 7, "revenue_cents": 700}]


def test_product_statistics(db_session, make_product, make_order):
    p1 = make_product(category="Grocery", created_at=datetime(2025, 3, 14, 9, 0))
    p2 = make_product(category="Dairy", created_at=datetime(2025, 3, 14, 10, 0))
    make_product(category="Grocery", quantity=0, created_at=datetime(2025, 3, 13, 9, 0))
    p4 = make_product(category="Grocery", created_at=datetime(2025, 3, 1, 9, 0))
    make_order(p1.id, 4, 1000, created_at=datetime(2025, 3, 14, 11, 0))
    make_order(p2.id, 6, 500, created_at=datetime(2025, 3, 14, 12, 0))
    make_order(p4.id, 9, 100, created_at=datetime(2025, 3, 1, 12, 0))

    stats = reporting_service.product_statistics(now=NOW)

    assert stats["window"] == {"start": "2025-03-08T12:00:00Z", "end": "2025-03-15T12:00:00Z"}
    assert stats["categories_avg"] == 1.5
    assert stats["total_products"] == 3
    assert stats["revenue_cents"] == 7000
    assert stats["top_selling"]["count"] == 2
    assert stats["top_selling"]["cost_cents"] == 7000
    assert [(p["product_id"], p["qty"]) for p in stats["top_selling"]["products"]] == [(p2.id, 6), (p1.id, 4)]
    assert stats["low_stocks"] == {"ordered": 2, "not_in_stock": 1}


def test_product_statistics_on_empty_store(db_session):
    stats = reporting_service.product_statistics(now=NOW)
    assert stats["categories_avg"] == 0
    assert stats["top_selling"] == {"count": 0, "cost_cents": 0, "products": []}
