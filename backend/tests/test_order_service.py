import threading
from datetime import timedelta

import pytest

from stocktrail.errors import InvalidQuantityError, NotFoundError, OutOfStockError
from stocktrail.extensions import db
from stocktrail.models import Order, Product
from stocktrail.services import order_service, products_service
from stocktrail.services.order_service import place_order
from stocktrail.time_utils import utcnow


def test_order_decrements_stock_and_recomputes_status(db_session, make_product):
    product = make_product(quantity=10, threshold=5)
    assert product.status == "in_stock"

    updated, order = place_order(product.id, 6, actor_id="customer-1")

    assert updated.quantity == 4
    assert updated.status == "low_stock"
    assert order.qty == 6
    assert order.created_by == "customer-1"


def test_order_snapshots_price(db_session, make_product):
    product = make_product(price_cents=1000)
    _, order = place_order(product.id, 1)

    products_service.update_product(product_id=product.id, payload={"price_cents": 2500})

    stored = db_session.get(Order, order.id, populate_existing=True)
    assert stored.price_at_order_cents == 1000


def test_over_order_floors_at_zero(db_session, make_product):
    product = make_product(quantity=3, threshold=1)

    updated, order = place_order(product.id, 10)

    assert updated.quantity == 0
    assert updated.status == "out_of_stock"
    assert order.qty == 10


def test_last_unit_goes_out_of_stock(db_session, make_product):
    product = make_product(quantity=1, threshold=0)

    updated, _ = place_order(product.id, 1)
    assert (updated.quantity, updated.status) == (0, "out_of_stock")

    with pytest.raises(OutOfStockError):
        place_order(product.id, 1)
    assert db_session.query(Order).count() == 1


def test_order_on_empty_product_is_rejected(db_session, make_product):
    product = make_product(quantity=0)

    with pytest.raises(OutOfStockError):
        place_order(product.id, 1)
    assert db_session.query(Order).count() == 0


def test_order_on_missing_product(db_session):
    with pytest.raises(NotFoundError):
        place_order(9999, 1)


@pytest.mark.parametrize("qty", [0, -1, 1.5, "abc", "", None, True, 10**20, "99999999999999999999", "²"])
def test_invalid_quantity_is_rejected(db_session, make_product, qty):
    product = make_product(quantity=10)

    with pytest.raises(InvalidQuantityError):
        place_order(product.id, qty)

    db_session.refresh(product)
    assert product.quantity == 10


def test_numeric_string_quantity_is_accepted(db_session, make_product):
    product = make_product(quantity=10)
    updated, _ = place_order(product.id, "3")
    assert updated.quantity == 7


def test_list_orders_newest_first(db_session, make_product, make_order):
    a = make_product()
    b = make_product()
    now = utcnow()
    first = make_order(a.id, 1, 100, created_at=now - timedelta(hours=2))
    second = make_order(b.id, 2, 100, created_at=now - timedelta(hours=1))
    third = make_order(a.id, 3, 100, created_at=now)

    assert [o.id for o in order_service.list_orders()] == [third.id, second.id, first.id]
    assert [o.id for o in order_service.list_orders(a.id)] == [third.id, first.id]


def test_concurrent_orders_for_last_unit(file_app):
    with file_app.app_context():
        product = Product(
            product_code="LAST-1",
            name="Last unit",
            category="Grocery",
            unit="Packets",
            price_cents=500,
            quantity=1,
            threshold=0,
            expiry_date=utcnow() + timedelta(days=30),
        )
        db.session.add(product)
        db.session.commit()
        product_id = product.id
        db.session.remove()

    outcomes = []
    lock = threading.Lock()
    start = threading.Barrier(2)

    def worker():
        with file_app.app_context():
            try:
                start.wait()
                place_order(product_id, 1)
                outcome = "ok"
            except OutOfStockError:
                outcome = "out_of_stock"
            except Exception as exc:
                outcome = repr(exc)
            finally:
                db.session.remove()
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "out_of_stock"]

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert product.quantity == 0
        assert product.status == "out_of_stock"
        assert db.session.query(Order).count() == 1
