# backend/stocktrail/services/products_service.py
"""
Products Service

Product registration and bulk upsert. Both paths generate an invoice in the
same transaction as the product writes:
- register_product: one product, one single-line invoice
- bulk_upsert_products: many rows, one invoice covering every accepted row

Status is never taken from input; the before_flush hook recomputes it from
quantity, threshold and expiry on every write.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, Product
from ..time_utils import utcnow
from ..validation import (
    PRODUCT_POLICY,
    enforce_rules_product,
    parse_day_first_date,
    parse_money_to_cents,
    validate_payload,
)
from .concurrency import run_with_retry
from .invoice_service import LineItem, build_invoice
from .status_service import refresh_status

PRODUCT_MUTABLE_FIELDS = PRODUCT_POLICY.writable_fields - {"product_code"}

# Header names of the uploaded product sheet
CSV_COLUMNS = {
    "Product ID": "product_code",
    "Product Name": "name",
    "Category": "category",
    "Price": "price_cents",
    "Quantity": "quantity",
    "Unit": "unit",
    "Expiry Date": "expiry_date",
    "Threshold Value": "threshold",
}


@dataclass
class BulkUploadResult:
    products: list[Product] = field(default_factory=list)
    invoice: Invoice | None = None
    rejected: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "products": [p.to_dict() for p in self.products],
            "invoice": self.invoice.to_dict() if self.invoice else None,
            "rejected": self.rejected,
        }


def apply_product_patch(p: Product, patch: dict, now: datetime | None = None) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)
    refresh_status(p, now)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _clean_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


def register_product(
    *,
    payload: dict,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> tuple[Product, Invoice]:
    """
    Create a product and its single-line invoice.

    Raises:
        ValidationError: invalid or missing fields, duplicate product code
    """
    patch = _clean_patch(payload, partial=False)
    patch.setdefault("threshold", 0)
    now = now or utcnow()

    def _op() -> tuple[Product, Invoice]:
        existing = db.session.query(Product.id).filter_by(product_code=patch["product_code"]).first()
        if existing:
            raise ValidationError("Product ID already exists")

        p = Product(product_code=patch["product_code"], created_by=actor_id, created_at=now)
        apply_product_patch(p, patch, now)
        db.session.add(p)
        db.session.flush()

        invoice = build_invoice(
            [LineItem(product_id=p.id, qty=p.quantity, price_cents=p.price_cents)],
            now=now,
        )
        db.session.commit()
        current_app.logger.info(
            "Registered product %s (%s) with invoice %s",
            p.product_code, p.status, invoice.invoice_number,
        )
        return p, invoice

    return run_with_retry(_op)


def update_product(*, product_id: int, payload: dict, now: datetime | None = None) -> Product:
    """
    Update price, stock, threshold, expiry or descriptive fields.

    product_code and status are not writable here; status follows the new values.
    """
    if "status" in (payload or {}):
        raise ValidationError("status is derived and cannot be set")
    patch = _clean_patch(payload, partial=True)
    if "product_code" in patch:
        raise ValidationError("product_code cannot be changed")

    def _op() -> Product:
        p = get_product(product_id)
        apply_product_patch(p, patch, now)
        db.session.commit()
        return p

    return run_with_retry(_op)


def _row_to_payload(row: dict) -> dict:
    payload = {}
    for header, key in CSV_COLUMNS.items():
        raw = row.get(header)
        if isinstance(raw, str):
            raw = raw.strip()
        if raw in (None, ""):
            continue
        payload[key] = raw

    # Sheet values are loose: prices in currency units, counts may be blank
    if "price_cents" in payload:
        payload["price_cents"] = parse_money_to_cents(payload["price_cents"])
    payload.setdefault("price_cents", 0)
    payload.setdefault("quantity", 0)
    payload.setdefault("threshold", 0)

    expiry = payload.get("expiry_date")
    if expiry is not None:
        parsed = parse_day_first_date(expiry)
        if parsed is None:
            raise ValidationError("Expiry Date must be dd-mm-yyyy or dd/mm/yyyy")
        payload["expiry_date"] = parsed
    return payload


def bulk_upsert_products(
    rows: list[dict],
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> BulkUploadResult:
    """
    Upsert already-parsed sheet rows by product code and invoice the batch.

    Rows that fail validation are reported in ``rejected`` with their row
    number (1-based) and reason; every accepted row becomes one line of a
    single invoice. Raises ValidationError if no row is accepted.
    """
    now = now or utcnow()
    accepted: list[tuple[int, dict]] = []
    rejected: list[dict] = []

    for row_number, row in enumerate(rows, start=1):
        try:
            patch = _clean_patch(_row_to_payload(row), partial=False)
        except ValidationError as exc:
            rejected.append({"row": row_number, "error": str(exc)})
            continue
        accepted.append((row_number, patch))

    if not accepted:
        raise ValidationError("No valid rows to upload", details={"rejected": rejected})

    def _op() -> BulkUploadResult:
        products: list[Product] = []
        for _, patch in accepted:
            p = db.session.query(Product).filter_by(product_code=patch["product_code"]).first()
            if p is None:
                p = Product(product_code=patch["product_code"], created_at=now)
                db.session.add(p)
            p.created_by = actor_id
            apply_product_patch(p, patch, now)
            products.append(p)
        db.session.flush()

        invoice = build_invoice(
            [LineItem(product_id=p.id, qty=p.quantity, price_cents=p.price_cents) for p in products],
            now=now,
        )
        db.session.commit()
        current_app.logger.info(
            "Bulk upload: %d rows upserted, %d rejected, invoice %s",
            len(products), len(rejected), invoice.invoice_number,
        )
        return BulkUploadResult(products=products, invoice=invoice, rejected=rejected)

    return run_with_retry(_op)
