# Overview: Invoice factory and invoice mutations (payment, processed counter).

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from flask import current_app
from sqlalchemy import update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceLine, Product
from ..time_utils import to_utc_z, utcnow
from ..validation import MAX_PRICE_CENTS, MAX_QUANTITY
from .concurrency import run_with_retry
from .sequence_service import next_invoice_number

"""
Stocktrail Invoice Invariants (authoritative)

- invoice_number comes from the "invoice" sequence and is unique.
- amount_cents is the sum of qty * price_cents at creation and is never
  recomputed; later product price changes do not touch it.
- Unpaid -> Paid is the only status transition. Payment assigns a display
  reference_number ("INV-" + 3 random digits) that may repeat across invoices.
- processed_count only ever changes through an atomic +1.
"""

UNPAID = "Unpaid"
PAID = "Paid"

INVOICE_TAX_RATE = Decimal("0.10")


@dataclass(frozen=True)
class LineItem:
    product_id: int | None
    qty: int
    price_cents: int

    @property
    def total_cents(self) -> int:
        return self.qty * self.price_cents


def _validate_line_items(line_items: Iterable[LineItem]) -> list[LineItem]:
    items = list(line_items)
    if not items:
        raise ValidationError("An invoice needs at least one line item")
    for item in items:
        for field, limit in (("qty", MAX_QUANTITY), ("price_cents", MAX_PRICE_CENTS)):
            value = getattr(item, field)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"line item {field} must be an integer")
            if value < 0:
                raise ValidationError(f"line item {field} must be >= 0")
            if value > limit:
                raise ValidationError(f"line item {field} cannot exceed {limit}")
    return items


def build_invoice(line_items: Iterable[LineItem], *, now: datetime | None = None) -> Invoice:
    """
    Build and add an invoice to the current transaction without committing.

    Used by product registration and bulk upload so the products and their
    invoice land in one commit.
    """
    items = _validate_line_items(line_items)
    now = now or utcnow()
    grace = timedelta(days=current_app.config["INVOICE_GRACE_DAYS"])

    invoice = Invoice(
        invoice_number=next_invoice_number(),
        amount_cents=sum(item.total_cents for item in items),
        status=UNPAID,
        due_date=now + grace,
        processed_count=0,
        created_at=now,
    )
    invoice.lines = [
        InvoiceLine(product_id=item.product_id, qty=item.qty, price_cents=item.price_cents)
        for item in items
    ]
    db.session.add(invoice)
    db.session.flush()
    return invoice


def create_invoice(line_items: Iterable[LineItem], *, now: datetime | None = None) -> Invoice:
    """Create and commit an invoice from priced line items."""
    items = _validate_line_items(line_items)

    def _op() -> Invoice:
        invoice = build_invoice(items, now=now)
        db.session.commit()
        current_app.logger.info(
            "Created invoice %s amount_cents=%d lines=%d",
            invoice.invoice_number, invoice.amount_cents, len(items),
        )
        return invoice

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def generate_reference_number() -> str:
    # Not unique by design: a short label for the payment slip
    return f"INV-{random.randint(100, 999)}"


def mark_paid(invoice_id: int) -> Invoice:
    """
    Transition Unpaid -> Paid and assign a reference number.

    The guarded UPDATE makes concurrent payments safe: only one caller flips
    the status; an already paid invoice is returned unchanged.
    """
    def _op() -> Invoice:
        result = db.session.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == UNPAID)
            .values(status=PAID, reference_number=generate_reference_number())
        )
        db.session.commit()
        invoice = db.session.get(Invoice, invoice_id, populate_existing=True)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if result.rowcount:
            current_app.logger.info(
                "Invoice %s marked paid (reference %s)",
                invoice.invoice_number, invoice.reference_number,
            )
        return invoice

    return run_with_retry(_op)


def increment_processed(invoice_id: int) -> Invoice:
    """Atomically add 1 to processed_count; no other field changes."""
    def _op() -> Invoice:
        result = db.session.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id)
            .values(processed_count=Invoice.processed_count + 1)
        )
        if not result.rowcount:
            db.session.rollback()
            raise NotFoundError("Invoice not found")
        db.session.commit()
        return db.session.get(Invoice, invoice_id, populate_existing=True)

    return run_with_retry(_op)


def invoice_detail(invoice_id: int) -> dict:
    """
    Invoice view with resolved product names and totals.

    Lines whose product no longer resolves are shown as "Unknown".
    """
    invoice = get_invoice(invoice_id)
    product_ids = {line.product_id for line in invoice.lines if line.product_id is not None}
    names = {}
    if product_ids:
        names = dict(
            db.session.query(Product.id, Product.name).filter(Product.id.in_(product_ids)).all()
        )

    rows = [
        {
            "product_id": line.product_id,
            "name": names.get(line.product_id, "Unknown"),
            "qty": line.qty,
            "price_cents": line.price_cents,
            "line_total_cents": line.line_total_cents,
        }
        for line in invoice.lines
    ]
    subtotal = sum(row["line_total_cents"] for row in rows)
    tax = int((Decimal(subtotal) * INVOICE_TAX_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "reference_number": invoice.reference_number,
        "created_at": to_utc_z(invoice.created_at),
        "due_date": to_utc_z(invoice.due_date),
        "status": invoice.status,
        "rows": rows,
        "totals": {
            "subtotal_cents": subtotal,
            "tax_cents": tax,
            "total_due_cents": subtotal + tax,
        },
    }
