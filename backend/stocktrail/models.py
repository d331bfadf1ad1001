# backend/stocktrail/models.py
from __future__ import annotations
from .extensions import db
from .time_utils import to_utc_z, utcnow


PRODUCT_STATUSES = ("in_stock", "low_stock", "out_of_stock", "expired")


class Product(db.Model):
    """
    Stocked item.

    ``status`` is derived: it is recomputed from quantity, threshold and
    expiry on every write (see services/status_service.py) and is never
    assigned by callers.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("product_code", name="uq_products_product_code"),
        db.Index("ix_products_status_expiry", "status", "expiry_date"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonneg"),
        db.CheckConstraint("threshold >= 0", name="ck_products_threshold_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.String(120), nullable=False, index=True)
    unit = db.Column(db.String(32), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    threshold = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="in_stock")

    created_by = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "threshold": self.threshold,
            "expiry_date": to_utc_z(self.expiry_date),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Order(db.Model):
    """
    Immutable order ledger entry.

    WHY: price_at_order_cents is a snapshot so revenue and top-seller
    reports never move when the product price changes later.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    price_at_order_cents = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "qty": self.qty,
            "price_at_order_cents": self.price_at_order_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class Invoice(db.Model):
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.Index("ix_invoices_status", "status"),
        db.Index("ix_invoices_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    # Display label only; not unique
    reference_number = db.Column(db.String(32), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="Unpaid")
    due_date = db.Column(db.DateTime, nullable=False)
    processed_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} status={self.status} amount_cents={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "reference_number": self.reference_number,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "due_date": to_utc_z(self.due_date),
            "processed_count": self.processed_count,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class InvoiceLine(db.Model):
    """One priced product reference inside an invoice."""
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    # No FK: reports must survive references to products that are gone
    product_id = db.Column(db.Integer, nullable=True, index=True)
    qty = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "qty": self.qty,
            "price_cents": self.price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Counter(db.Model):
    """
    Named monotonic counter.

    WHY: Owned by services/sequence_service.py; only ever touched through a
    single atomic upsert-and-increment statement.
    """
    __tablename__ = "counters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
