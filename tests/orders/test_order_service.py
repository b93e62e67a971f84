from decimal import Decimal

import pytest

from application.dtos.billz import BillzOrderResult
from application.dtos.orders import CreateOrderRequest, OrderProductIn
from application.services.order_service import OrderApplicationService, generate_order_number
from domain.common.exceptions import OrderNotFoundException


class RecordingTasks:
    def __init__(self):
        self.cash_orders = []

    def dispatch_cash_order(self, order_id: str) -> None:
        self.cash_orders.append(order_id)


class StubDispatcher:
    def __init__(self, fail: bool = False):
        self.payloads = []
        self.fail = fail

    async def dispatch_direct(self, payload):
        self.payloads.append(payload)
        if self.fail:
            raise RuntimeError("billz rejected order " + "!" * 2000)
        return BillzOrderResult(order_id="bz-7", order_number="B-7", order_type="SALE")


class RecordingNotifier:
    def __init__(self):
        self.orders = []

    def notify_payment_success(self, *args, **kwargs):
        pass

    def notify_new_order(self, notice):
        self.orders.append(notice)


def _request(**overrides) -> CreateOrderRequest:
    values = {
        "payment_method": "cash",
        "products": [
            OrderProductIn(product_id="p-1", product_name="Oud", quantity=2, unit_price=Decimal("100000")),
            OrderProductIn(product_id="p-2", product_name="Musk", quantity=0, unit_price=Decimal("50000"), line_total=Decimal("50000")),
        ],
        "bonus_amount": Decimal("10000"),
        "notes": "call before delivery",
    }
    values.update(overrides)
    return CreateOrderRequest(**values)


async def _load(uow_factory, order_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.order_repository.get_by_id(order_id)


def test_order_number_format():
    number = generate_order_number()
    assert number.startswith("#")
    assert 0 <= int(number[1:]) < 1_000_000_000


@pytest.mark.asyncio
async def test_cash_order_is_persisted_and_enqueued(uow_factory):
    tasks = RecordingTasks()
    service = OrderApplicationService(uow_factory, tasks=tasks)

    created = await service.create_order(_request())

    assert created.status == "pending"
    assert created.total == Decimal("240000")
    assert tasks.cash_orders == [str(created.id)]

    order = await _load(uow_factory, created.id)
    assert order.subtotal == Decimal("250000")
    assert [i.line_total for i in order.items] == [Decimal("200000"), Decimal("50000")]


@pytest.mark.asyncio
async def test_payme_order_is_not_enqueued(uow_factory):
    tasks = RecordingTasks()
    service = OrderApplicationService(uow_factory, tasks=tasks)
    await service.create_order(_request(payment_method="payme", total_amount=Decimal("999")))
    assert tasks.cash_orders == []


@pytest.mark.asyncio
async def test_dispatch_cash_order_records_result(uow_factory):
    dispatcher = StubDispatcher()
    notifier = RecordingNotifier()
    service = OrderApplicationService(uow_factory, dispatcher=dispatcher, notifier=notifier)
    created = await service.create_order(_request())

    result = await service.dispatch_cash_order(created.id)

    assert result.order_id == "bz-7"
    payload = dispatcher.payloads[0]
    assert [(i.product_id, i.quantity) for i in payload.items] == [("p-1", 2), ("p-2", 0)]
    assert payload.total_amount == Decimal("240000")
    assert payload.comment == "call before delivery"

    order = await _load(uow_factory, created.id)
    assert order.billz_order_id == "bz-7"
    assert order.billz_order_number == "B-7"
    assert order.billz_sync_error == ""

    notice = notifier.orders[0]
    assert notice.order_number == "B-7"
    assert notice.payment_method == "cash"
    assert len(notice.items) == 2


@pytest.mark.asyncio
async def test_dispatch_cash_order_records_error(uow_factory):
    notifier = RecordingNotifier()
    service = OrderApplicationService(uow_factory, dispatcher=StubDispatcher(fail=True), notifier=notifier)
    created = await service.create_order(_request())

    assert await service.dispatch_cash_order(created.id) is None

    order = await _load(uow_factory, created.id)
    assert order.billz_order_id == ""
    assert order.billz_sync_error.startswith("billz rejected order")
    assert len(order.billz_sync_error) == 1024
    assert notifier.orders == []


@pytest.mark.asyncio
async def test_dispatch_cash_order_skips_dispatched(uow_factory):
    dispatcher = StubDispatcher()
    service = OrderApplicationService(uow_factory, dispatcher=dispatcher)
    created = await service.create_order(_request())

    await service.dispatch_cash_order(created.id)
    assert await service.dispatch_cash_order(created.id) is None
    assert len(dispatcher.payloads) == 1


@pytest.mark.asyncio
async def test_dispatch_unknown_order(uow_factory):
    import uuid

    service = OrderApplicationService(uow_factory, dispatcher=StubDispatcher())
    with pytest.raises(OrderNotFoundException):
        await service.dispatch_cash_order(uuid.uuid4())
