import pytest

from domain.common.exceptions import DomainValidationException
from domain.payme.entity import PaymeTransaction, canceled_state
from domain.payme.exceptions import CantDoOperation, InvalidAuthorization, Pending, TransactionNotFound
from domain.payme.service import to_major_units


def _txn(**fields) -> PaymeTransaction:
    fields.setdefault("amount", 1000)
    return PaymeTransaction(id=None, **fields)


@pytest.mark.parametrize("state,expected", [(1, -1), (2, -2), (-1, -1), (-2, -2), (0, 0)])
def test_canceled_state(state, expected):
    assert canceled_state(state) == expected


def test_to_major_units_truncates():
    assert to_major_units(15_000_099) == 150000
    assert to_major_units(99) == 0
    assert to_major_units(1500.0) == 15


def test_bind_then_pay_then_cancel():
    txn = _txn()
    txn.bind("t-1", 100)
    assert txn.is_pending() and txn.create_time == 100

    txn.mark_paid(200)
    assert txn.is_paid() and txn.perform_time == 200

    assert txn.cancel(5, 300) is True
    assert (txn.state, txn.reason, txn.cancel_time) == (-2, 5, 300)
    assert txn.cancel(7, 400) is False
    assert (txn.reason, txn.cancel_time) == (5, 300)


def test_bind_keeps_original_id():
    txn = _txn()
    txn.bind("t-1", 100)
    with pytest.raises(DomainValidationException):
        txn.bind("t-2", 200)


def test_cannot_pay_canceled():
    txn = _txn(status=-1, transaction_id="t-1")
    with pytest.raises(DomainValidationException):
        txn.mark_paid(1)


def test_expiry_window_is_inclusive():
    txn = _txn(status=1, transaction_id="t-1", create_time=0)
    assert txn.is_expired(719_999, 720_000) is False
    assert txn.is_expired(720_000, 720_000) is True


def test_protocol_error_shape():
    err = TransactionNotFound(rpc_id=12)
    assert err.to_rpc() == {
        "error": {
            "code": -31050,
            "message": {
                "uz": "Tranzaktsiya topilmadi",
                "ru": "Транзакция не найдена",
                "en": "Transaction not found",
            },
            "data": None,
        },
        "id": 12,
    }
    assert Pending().code == TransactionNotFound().code
    assert CantDoOperation(data="transaction_id").to_rpc()["error"]["data"] == "transaction_id"
    assert InvalidAuthorization().code == -32504
