import pytest

from application.services import payme_service as payme_service_module
from application.services.payme_service import PaymeApplicationService
from domain.common.exceptions import InvalidRequestException
from domain.payme.exceptions import PaymeError
from infrastructure.repositories.payme_transaction_repository import SQLAlchemyPaymeTransactionRepository


TWELVE_MINUTES = 12 * 60 * 1000


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def dispatch_transaction(self, txn_pk):
        self.calls.append(txn_pk)
        if self.fail:
            raise RuntimeError("billz is down")


class RecordingLogger:
    def __init__(self):
        self.records = []

    def info(self, event, **kw):
        self.records.append((event, kw))

    warning = error = info


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(uow_factory, dispatcher, clock):
    return PaymeApplicationService(uow_factory, dispatcher, clock=clock)


async def _create(service, clock, txn_id="t-1", order_id="ORD-1", amount=15_000_000):
    return await service.handle(
        "CreateTransaction",
        {"id": txn_id, "time": clock(), "amount": amount, "account": {"order_id": order_id}},
        rpc_id=1,
    )


@pytest.mark.asyncio
async def test_check_perform_allows_matching_amount(service, seed_checkout):
    await seed_checkout(amount=150000)
    resp = await service.handle(
        "CheckPerformTransaction",
        {"amount": 15_000_000, "account": {"order_id": "ORD-1"}},
        rpc_id=7,
    )
    assert resp == {"result": {"allow": True}, "id": 7}


@pytest.mark.asyncio
async def test_check_perform_rejects_wrong_amount(service, seed_checkout):
    await seed_checkout(amount=150000)
    with pytest.raises(PaymeError) as err:
        await service.handle(
            "CheckPerformTransaction",
            {"amount": 14_999_900, "account": {"order_id": "ORD-1"}},
            rpc_id=8,
        )
    assert err.value.code == -31001
    assert err.value.to_rpc()["id"] == 8


@pytest.mark.asyncio
async def test_check_perform_truncates_minor_units(service, seed_checkout):
    await seed_checkout(amount=150000)
    resp = await service.handle(
        "CheckPerformTransaction",
        {"amount": 15_000_099, "account": {"order_id": "ORD-1"}},
    )
    assert resp["result"]["allow"] is True


@pytest.mark.asyncio
async def test_check_perform_unknown_account(service, seed_checkout):
    await seed_checkout()
    with pytest.raises(PaymeError) as err:
        await service.handle(
            "CheckPerformTransaction",
            {"amount": 15_000_000, "account": {"order_id": "nope"}},
        )
    assert err.value.code == -31050


@pytest.mark.asyncio
async def test_account_reference_accepts_row_id(service, seed_checkout):
    txn = await seed_checkout(order_id="")
    resp = await service.handle(
        "CheckPerformTransaction",
        {"amount": 15_000_000, "account": {"order_id": str(txn.id)}},
    )
    assert resp["result"]["allow"] is True


@pytest.mark.asyncio
async def test_create_binds_and_is_idempotent(service, seed_checkout, clock):
    await seed_checkout()
    first = await _create(service, clock)
    assert first["result"] == {"create_time": clock(), "transaction": "t-1", "state": 1}

    clock.advance(1000)
    again = await service.handle(
        "CreateTransaction",
        {"id": "t-1", "time": clock(), "amount": 15_000_000, "account": {"order_id": "ORD-1"}},
    )
    assert again["result"] == first["result"]


@pytest.mark.asyncio
async def test_create_with_second_id_on_pending_account(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock)
    with pytest.raises(PaymeError) as err:
        await _create(service, clock, txn_id="t-2")
    assert err.value.code == -31050
    assert err.value.error_type == "Pending"


@pytest.mark.asyncio
async def test_create_retry_racing_the_first_bind_is_idempotent(service, seed_checkout, clock, monkeypatch):
    await seed_checkout()
    lookup = SQLAlchemyPaymeTransactionRepository.get_by_transaction_id
    concurrent = {}

    async def lookup_then_let_retry_commit(self, transaction_id, *, for_update=False):
        found = await lookup(self, transaction_id, for_update=for_update)
        if for_update and "result" not in concurrent:
            concurrent["result"] = None
            concurrent["result"] = await _create(service, clock)
        return found

    monkeypatch.setattr(
        SQLAlchemyPaymeTransactionRepository, "get_by_transaction_id", lookup_then_let_retry_commit
    )
    resp = await _create(service, clock)

    expected = {"create_time": clock(), "transaction": "t-1", "state": 1}
    assert concurrent["result"]["result"] == expected
    assert resp["result"] == expected


@pytest.mark.asyncio
async def test_bound_id_cannot_be_bound_to_a_second_account(service, seed_checkout, clock, monkeypatch):
    await seed_checkout(order_id="ORD-1")
    await seed_checkout(order_id="ORD-2")
    await _create(service, clock)

    async def missed_lookup(self, transaction_id, *, for_update=False):
        return None

    monkeypatch.setattr(SQLAlchemyPaymeTransactionRepository, "get_by_transaction_id", missed_lookup)
    with pytest.raises(PaymeError) as err:
        await _create(service, clock, order_id="ORD-2")
    assert err.value.code == -31008
    monkeypatch.undo()

    status = await service.handle("CheckTransaction", {"id": "t-1"})
    assert status["result"]["state"] == 1


@pytest.mark.asyncio
async def test_create_on_paid_account_is_already_done(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock)
    await service.handle("PerformTransaction", {"id": "t-1"})
    with pytest.raises(PaymeError) as err:
        await _create(service, clock, txn_id="t-2")
    assert err.value.code == -31060


@pytest.mark.asyncio
async def test_create_after_timeout_cancels(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock)
    clock.advance(TWELVE_MINUTES)

    with pytest.raises(PaymeError) as err:
        await _create(service, clock)
    assert err.value.code == -31008

    status = await service.handle("CheckTransaction", {"id": "t-1"})
    assert status["result"]["state"] == -1
    assert status["result"]["reason"] == 4


@pytest.mark.asyncio
async def test_perform_marks_paid_and_dispatches(service, seed_checkout, clock, dispatcher):
    txn = await seed_checkout()
    await _create(service, clock)
    clock.advance(5000)

    resp = await service.handle("PerformTransaction", {"id": "t-1"}, rpc_id=3)
    assert resp == {
        "result": {"perform_time": clock(), "transaction": "t-1", "state": 2},
        "id": 3,
    }
    assert dispatcher.calls == [txn.id]


@pytest.mark.asyncio
async def test_repeated_perform_returns_original_time(service, seed_checkout, clock, dispatcher):
    await seed_checkout()
    await _create(service, clock)
    first = await service.handle("PerformTransaction", {"id": "t-1"})

    clock.advance(60_000)
    second = await service.handle("PerformTransaction", {"id": "t-1"})
    assert second["result"] == first["result"]
    # remediation path: the already-paid row is offered to the dispatcher again
    assert len(dispatcher.calls) == 2


@pytest.mark.asyncio
async def test_perform_after_timeout_cancels(service, seed_checkout, clock, dispatcher):
    await seed_checkout()
    await _create(service, clock)
    clock.advance(TWELVE_MINUTES + 1)

    with pytest.raises(PaymeError) as err:
        await service.handle("PerformTransaction", {"id": "t-1"})
    assert err.value.code == -31008
    assert dispatcher.calls == []

    status = await service.handle("CheckTransaction", {"id": "t-1"})
    assert status["result"]["state"] == -1
    assert status["result"]["cancel_time"] == clock()


@pytest.mark.asyncio
async def test_perform_on_canceled_pending_transaction(service, seed_checkout, clock, dispatcher):
    await seed_checkout()
    await _create(service, clock)
    await service.handle("CancelTransaction", {"id": "t-1", "reason": 3})

    with pytest.raises(PaymeError) as err:
        await service.handle("PerformTransaction", {"id": "t-1"})
    assert err.value.code == -31008
    assert dispatcher.calls == []

    status = await service.handle("CheckTransaction", {"id": "t-1"})
    assert status["result"]["state"] == -1
    assert status["result"]["perform_time"] == 0


@pytest.mark.asyncio
async def test_state_changes_are_logged_from_domain_events(service, seed_checkout, clock, monkeypatch):
    log = RecordingLogger()
    monkeypatch.setattr(payme_service_module, "logger", log)
    txn = await seed_checkout(order_id="ORD-1")
    await seed_checkout(order_id="ORD-2")
    await _create(service, clock)
    await service.handle("PerformTransaction", {"id": "t-1"})
    await _create(service, clock, txn_id="t-2", order_id="ORD-2")
    clock.advance(TWELVE_MINUTES)
    with pytest.raises(PaymeError):
        await service.handle("PerformTransaction", {"id": "t-2"})

    events = dict(log.records)
    assert events["payme_transaction_performed"]["order_id"] == "ORD-1"
    assert events["payme_transaction_performed"]["amount"] == 150000
    assert events["payme_transaction_performed"]["txn_pk"] == str(txn.id)
    assert events["payme_transaction_expired"] == {"transaction_id": "t-2", "state": -1, "reason": 4}


@pytest.mark.asyncio
async def test_perform_succeeds_when_dispatch_fails(uow_factory, seed_checkout, clock):
    service = PaymeApplicationService(uow_factory, RecordingDispatcher(fail=True), clock=clock)
    await seed_checkout()
    await _create(service, clock)
    resp = await service.handle("PerformTransaction", {"id": "t-1"})
    assert resp["result"]["state"] == 2


@pytest.mark.asyncio
async def test_perform_unknown_transaction(service):
    with pytest.raises(PaymeError) as err:
        await service.handle("PerformTransaction", {"id": "missing"}, rpc_id="abc")
    assert err.value.code == -31050
    assert err.value.rpc_id == "abc"


@pytest.mark.asyncio
async def test_cancel_pending_then_repeat(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock)
    clock.advance(2000)

    first = await service.handle("CancelTransaction", {"id": "t-1", "reason": 3})
    assert first["result"] == {"cancel_time": clock(), "transaction": "t-1", "state": -1}

    clock.advance(2000)
    second = await service.handle("CancelTransaction", {"id": "t-1", "reason": 5})
    assert second["result"] == first["result"]

    status = await service.handle("CheckTransaction", {"id": "t-1"})
    assert status["result"]["reason"] == 3


@pytest.mark.asyncio
async def test_cancel_paid_transaction(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock)
    await service.handle("PerformTransaction", {"id": "t-1"})

    resp = await service.handle("CancelTransaction", {"id": "t-1", "reason": 5})
    assert resp["result"]["state"] == -2

    with pytest.raises(PaymeError) as err:
        await service.handle("PerformTransaction", {"id": "t-1"})
    assert err.value.code == -31008


@pytest.mark.asyncio
async def test_check_transaction_accepts_numeric_id(service, seed_checkout, clock):
    await seed_checkout()
    await _create(service, clock, txn_id="12345")
    resp = await service.handle("CheckTransaction", {"id": 12345.0})
    result = resp["result"]
    assert result["transaction"] == "12345"
    assert result["state"] == 1
    assert result["perform_time"] == 0
    assert result["reason"] is None


@pytest.mark.asyncio
async def test_statement_lists_bound_transactions(service, seed_checkout, clock):
    bound = await seed_checkout(order_id="ORD-1")
    await seed_checkout(order_id="ORD-2")
    start = clock()
    await _create(service, clock)

    resp = await service.handle("GetStatement", {"from": start - 1, "to": start + 1})
    transactions = resp["result"]["transactions"]
    assert len(transactions) == 1
    assert transactions[0] == {
        "id": "t-1",
        "transaction_id": "t-1",
        "time": start,
        "amount": 15_000_000,
        "account": {"order_id": str(bound.id)},
        "create_time": start,
        "perform_time": 0,
        "cancel_time": 0,
        "transaction": "t-1",
        "state": 1,
        "reason": None,
    }


@pytest.mark.asyncio
async def test_unknown_method_is_invalid_request(service):
    with pytest.raises(InvalidRequestException):
        await service.handle("ChangePassword", {})


@pytest.mark.asyncio
async def test_malformed_params_are_invalid_request(service):
    with pytest.raises(InvalidRequestException):
        await service.handle("CreateTransaction", {"id": "t-1"})
