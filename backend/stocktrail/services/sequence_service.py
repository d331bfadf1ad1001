# Overview: Named monotonic sequences backing invoice numbers.

from __future__ import annotations

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite

from ..errors import StocktrailError
from ..extensions import db
from ..models import Counter
from ..time_utils import utcnow
from .concurrency import run_with_retry


_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SequenceError(StocktrailError):
    """Raised when a sequence cannot be allocated atomically."""
    http_status = 500
    code = "sequence_unavailable"


def _upsert_increment(sequence_name: str) -> int:
    insert = _UPSERT_DIALECTS.get(db.engine.dialect.name)
    if insert is None:
        # A read-then-write fallback could hand out duplicates; refuse instead.
        raise SequenceError(
            f"Atomic sequences are not supported on dialect {db.engine.dialect.name!r}"
        )

    now = utcnow()
    stmt = (
        insert(Counter)
        .values(name=sequence_name, value=1, updated_at=now)
        .on_conflict_do_update(
            index_elements=[Counter.name],
            set_={"value": Counter.value + 1, "updated_at": now},
        )
        .returning(Counter.value)
    )
    return int(db.session.execute(stmt).scalar_one())


def next_value(sequence_name: str) -> int:
    """
    Atomically allocate the next value of a named sequence.

    Create-or-increment is one INSERT ... ON CONFLICT DO UPDATE ... RETURNING
    statement, so the first caller gets 1 and concurrent callers never observe
    the same value. The row stays locked until the caller's transaction ends.
    """
    if not sequence_name:
        raise SequenceError("sequence_name is required")
    return _upsert_increment(sequence_name)


def format_invoice_number(value: int, offset: int) -> str:
    return f"INV-{offset + value}"


def next_invoice_number() -> str:
    """Allocate the next invoice number, e.g. INV-1001 for a fresh counter."""
    value = next_value(current_app.config["INVOICE_SEQUENCE_NAME"])
    return format_invoice_number(value, current_app.config["INVOICE_NUMBER_OFFSET"])


def allocate(sequence_name: str) -> int:
    """Standalone allocation in its own transaction."""
    def _op() -> int:
        value = next_value(sequence_name)
        db.session.commit()
        return value

    return run_with_retry(_op)
