# Overview: Order placement; atomic stock decrement plus an immutable order record.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, update

from ..errors import ConflictError, InvalidQuantityError, NotFoundError, OutOfStockError
from ..extensions import db
from ..models import Order, Product
from ..time_utils import utcnow
from ..validation import MAX_QUANTITY
from .concurrency import run_with_retry
from .status_service import quantity_case, status_case

"""
Stocktrail Order Invariants (authoritative)

- The decrement is a single conditional UPDATE guarded by quantity > 0:
  two orders racing for the last unit cannot both succeed, and stock never
  goes negative.
- Over-ordering floors at zero (partial fulfilment is accepted, not rejected).
- Status is recomputed by the same UPDATE statement.
- price_at_order_cents is read from the row the UPDATE returned, so the
  snapshot matches the price at the moment of the decrement.
- Orders are append-only.
"""


def _coerce_qty(qty) -> int:
    if isinstance(qty, bool):
        raise InvalidQuantityError("qty must be an integer >= 1")
    if isinstance(qty, str):
        qty = qty.strip()
        if not qty.isdecimal():
            raise InvalidQuantityError("qty must be an integer >= 1")
        if len(qty.lstrip("0")) > len(str(MAX_QUANTITY)):
            raise InvalidQuantityError(f"qty cannot exceed {MAX_QUANTITY}")
        qty = int(qty)
    if not isinstance(qty, int) or qty < 1:
        raise InvalidQuantityError("qty must be an integer >= 1")
    if qty > MAX_QUANTITY:
        raise InvalidQuantityError(f"qty cannot exceed {MAX_QUANTITY}")
    return qty


def place_order(
    product_id: int,
    qty,
    actor_id: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[Product, Order]:
    """
    Decrement stock for product_id and append an Order.

    Raises:
        InvalidQuantityError: qty is not an integer >= 1
        NotFoundError: product does not exist
        OutOfStockError: product quantity is already 0
    """
    qty = _coerce_qty(qty)

    def _op() -> tuple[Product, Order]:
        ts = now or utcnow()
        remaining = case(
            (Product.quantity - qty > 0, Product.quantity - qty),
            else_=0,
        )
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.quantity > 0)
            .values(
                quantity=quantity_case(remaining, ts),
                status=status_case(remaining, ts),
                updated_at=ts,
            )
            .returning(Product.price_cents)
            .execution_options(synchronize_session=False)
        )
        price_cents = db.session.execute(stmt).scalar_one_or_none()

        if price_cents is None:
            db.session.rollback()
            if db.session.get(Product, product_id) is None:
                raise NotFoundError("Product not found")
            raise OutOfStockError("Can't order, product out of stock")

        order = Order(
            product_id=product_id,
            qty=qty,
            price_at_order_cents=price_cents,
            created_by=actor_id,
            created_at=ts,
        )
        db.session.add(order)
        db.session.commit()

        product = db.session.get(Product, product_id, populate_existing=True)
        if product is None or product.quantity < 0:
            # Only reachable if the guarded UPDATE stopped being atomic
            raise ConflictError("Stock changed inconsistently during order")

        current_app.logger.info(
            "Order %d: product %s qty=%d remaining=%d status=%s",
            order.id, product.product_code, qty, product.quantity, product.status,
        )
        return product, order

    return run_with_retry(_op)


def list_orders(product_id: int | None = None) -> list[Order]:
    query = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if product_id is not None:
        query = query.filter(Order.product_id == product_id)
    return query.all()
