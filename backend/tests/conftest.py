"""
Pytest fixtures for Stocktrail backend tests.

Provides the application, a clean database per test, and small factories
for products, orders and invoices with controllable timestamps.
"""

from datetime import timedelta

import pytest
from stocktrail import create_app
from stocktrail.extensions import db
from stocktrail.models import Invoice, InvoiceLine, Order, Product
from stocktrail.services.status_service import refresh_status
from stocktrail.time_utils import utcnow


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'EXPIRY_SWEEP_ENABLED': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture
def file_app(tmp_path):
    """
    App bound to a file-backed SQLite database.

    Concurrency tests need real separate connections per thread, which the
    shared in-memory database cannot give.
    """
    db_path = tmp_path / "concurrency.db"
    app = create_app({**TEST_CONFIG, 'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}"})
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def make_product(db_session):
    """Insert a product straight through the ORM (status still derived on flush)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        now = utcnow()
        fields = {
            "product_code": f"P-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "category": "Grocery",
            "unit": "Packets",
            "price_cents": 1000,
            "quantity": 10,
            "threshold": 5,
            "expiry_date": now + timedelta(days=30),
            "created_by": "supplier-1",
        }
        fields.update(overrides)
        product = Product(**fields)
        refresh_status(product, now)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_order(db_session):
    def _make(product_id, qty, price_cents, created_at=None, created_by="customer-1"):
        order = Order(
            product_id=product_id,
            qty=qty,
            price_at_order_cents=price_cents,
            created_by=created_by,
            created_at=created_at or utcnow(),
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture
def make_invoice(db_session):
    """Insert an invoice row directly, bypassing the sequence."""
    counter = {"n": 0}

    def _make(lines=((None, 1, 1000),), created_at=None, due_date=None, status="Unpaid", processed_count=0):
        counter["n"] += 1
        created_at = created_at or utcnow()
        invoice = Invoice(
            invoice_number=f"INV-T{counter['n']:03d}",
            amount_cents=sum(qty * price for _, qty, price in lines),
            status=status,
            due_date=due_date or created_at + timedelta(days=10),
            processed_count=processed_count,
            created_at=created_at,
        )
        invoice.lines = [
            InvoiceLine(product_id=pid, qty=qty, price_cents=price) for pid, qty, price in lines
        ]
        db_session.add(invoice)
        db_session.commit()
        return invoice

    return _make
