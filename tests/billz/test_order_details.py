import json
from decimal import Decimal

import pytest

from application.dtos.billz import PaymeOrderDetails, extract_internal_order_id
from application.dtos.payme import CreateTransactionParams, StatementParams, normalize_transaction_id


PAYLOAD = {
    "items": [
        {"productId": "p-1", "quantity": 2},
        {"product_id": "p-2", "qty": "3"},
        {"productId": "p-3", "quantity": 0, "qty": 4},
    ],
    "checkout": {"payment_method": "payme", "notes": "ring twice"},
    "totals": {"total": "120000.50"},
    "user": {"user_id": "cust-1"},
}


def test_parse_plain_json():
    details = PaymeOrderDetails.parse_stored(json.dumps(PAYLOAD))
    assert [(i.product_id, i.quantity) for i in details.items] == [("p-1", 2), ("p-2", 3), ("p-3", 4)]
    assert details.checkout.payment_method == "payme"
    assert details.checkout.comment == "ring twice"
    assert details.totals.amount == Decimal("120000.50")
    assert details.user.id == "cust-1"


def test_parse_double_encoded_json():
    details = PaymeOrderDetails.parse_stored(json.dumps(json.dumps(PAYLOAD)))
    assert details.user.id == "cust-1"


@pytest.mark.parametrize("raw", [None, "", "   ", "not json", "[1, 2]", json.dumps("plain text")])
def test_parse_rejects_bad_payloads(raw):
    with pytest.raises(ValueError):
        PaymeOrderDetails.parse_stored(raw)


def test_valid_items_filter():
    details = PaymeOrderDetails.parse_stored(json.dumps({"items": [{"productId": "", "quantity": 1}, {"productId": "p"}]}))
    assert details.valid_items() == []


@pytest.mark.parametrize(
    "details,expected",
    [
        ({"internalOrderId": "A", "order_id": "B"}, "A"),
        ({"internal_order_id": " C "}, "C"),
        ({"orderId": 42}, "42"),
        ({}, ""),
        (None, ""),
    ],
)
def test_extract_internal_order_id(details, expected):
    assert extract_internal_order_id(details) == expected


@pytest.mark.parametrize("value,expected", [("abc", "abc"), (123, "123"), (123.0, "123"), (True, None), (None, None)])
def test_normalize_transaction_id(value, expected):
    assert normalize_transaction_id(value) == expected


def test_create_params_coerce_numeric_account():
    params = CreateTransactionParams.model_validate(
        {"id": 77, "time": 1, "amount": 100, "account": {"order_id": 5001}}
    )
    assert params.id == "77"
    assert params.account.order_id == "5001"


def test_statement_params_from_alias():
    params = StatementParams.model_validate({"from": 1, "to": 2})
    assert (params.from_, params.to) == (1, 2)
