from datetime import datetime

import pytest

from stocktrail.errors import ValidationError
from stocktrail.models import Product
from stocktrail.validation import (
    PRODUCT_POLICY,
    parse_day_first_date,
    parse_money_to_cents,
    validate_payload,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("11/12/2030", datetime(2030, 12, 11)),
        ("11-12-2030", datetime(2030, 12, 11)),
        ("1/2/2030", datetime(2030, 2, 1)),
        ("31/02/2030", None),
        ("2030-12-11", None),
        ("soon", None),
    ],
)
def test_parse_day_first_date(text, expected):
    assert parse_day_first_date(text) == expected


@pytest.mark.parametrize(
    "value, cents",
    [("12.5", 1250), ("0.005", 1), (4, 400), ("  7.99 ", 799)],
)
def test_parse_money_to_cents(value, cents):
    assert parse_money_to_cents(value) == cents


@pytest.mark.parametrize("value", ["abc", "Infinity", True, "1e999999999", "10000000"])
def test_parse_money_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        parse_money_to_cents(value)


def test_validate_payload_rejects_unknown_and_derived_fields():
    with pytest.raises(ValidationError, match="not allowed"):
        validate_payload(model=Product, payload={"status": "in_stock"}, policy=PRODUCT_POLICY, partial=True)


def test_validate_payload_reports_missing_fields():
    with pytest.raises(ValidationError, match="Missing required fields"):
        validate_payload(model=Product, payload={"name": "Maggi"}, policy=PRODUCT_POLICY, partial=False)


@pytest.mark.parametrize("qty", ["1.5", "1e3", 2.0, ""])
def test_validate_payload_integers_are_strict(qty):
    with pytest.raises(ValidationError):
        validate_payload(model=Product, payload={"quantity": qty}, policy=PRODUCT_POLICY, partial=True)


def test_validate_payload_coerces_dates():
    patch = validate_payload(
        model=Product,
        payload={"expiry_date": "2030-12-11T00:00:00Z", "quantity": "5"},
        policy=PRODUCT_POLICY,
        partial=True,
    )
    assert patch == {"expiry_date": datetime(2030, 12, 11), "quantity": 5}
