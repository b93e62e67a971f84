import base64
import json

import pytest

from application.dtos.payme import CheckoutRequest
from application.services.checkout_service import CheckoutApplicationService, build_checkout_url
from domain.common.exceptions import InvalidRequestException


USER_ID = "3f0d7c1e-2b4a-4c55-9a3e-1b2c3d4e5f60"


def _decode(url: str) -> str:
    encoded = url.split("checkout.payme.uz/", 1)[1]
    return base64.b64decode(encoded).decode("utf-8")


@pytest.fixture
def service(uow_factory):
    return CheckoutApplicationService(uow_factory, merchant_id="m-1", checkout_url="https://checkout.payme.uz/")


def test_build_checkout_url():
    url = build_checkout_url("https://checkout.payme.uz", "m-1", "row-1", 1500.5, "https://shop.uz/done")
    assert url.startswith("https://checkout.payme.uz/")
    assert _decode(url) == "m=m-1;ac.order_id=row-1;a=150050;c=https://shop.uz/done"


@pytest.mark.asyncio
async def test_checkout_creates_unbound_row(service, uow_factory):
    req = CheckoutRequest(
        orderDetails={"internalOrderId": "ORD-9", "items": []},
        amount=150000.75,
        userId=USER_ID,
        url="https://shop.uz/done/",
    )
    result = await service.create_checkout(req)

    assert _decode(result.url) == f"m=m-1;ac.order_id={result.order_id};a=15000075;c=https://shop.uz/done"

    async with uow_factory(readonly=True) as uow:
        txn = await uow.payme_repository.get_by_account_ref(result.order_id)
    assert txn.state == 0
    assert txn.amount == 150000
    assert txn.order_id == "ORD-9"
    assert json.loads(txn.order_details)["internalOrderId"] == "ORD-9"


@pytest.mark.asyncio
async def test_service_mode_appends_row_id(service):
    details = json.dumps({"order_id": "ORD-1", "service_mode": 2})
    result = await service.create_checkout(
        CheckoutRequest(orderDetails=details, amount=1000, url="https://shop.uz/return")
    )
    assert _decode(result.url).endswith(f"c=https://shop.uz/return/{result.order_id}")


@pytest.mark.asyncio
async def test_service_mode_one_keeps_url(service):
    result = await service.create_checkout(
        CheckoutRequest(orderDetails={"service_mode": 1}, amount=1000, url="https://shop.uz/return")
    )
    assert _decode(result.url).endswith("c=https://shop.uz/return")


@pytest.mark.asyncio
async def test_checkout_replaces_pending_rows(service, seed_checkout, uow_factory):
    from uuid import UUID

    stale = await seed_checkout(order_id="OLD", status=1, transaction_id="t-old", user_id=UUID(USER_ID))
    kept = await seed_checkout(order_id="UNBOUND", user_id=UUID(USER_ID))

    await service.create_checkout(CheckoutRequest(orderDetails={}, amount=1000, userId=USER_ID, url="https://x"))

    async with uow_factory(readonly=True) as uow:
        assert await uow.payme_repository.get_by_id(stale.id) is None
        assert await uow.payme_repository.get_by_id(kept.id) is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("amount,url", [(0, "https://x"), (-5, "https://x"), (100, "  ")])
async def test_checkout_validation(service, amount, url):
    with pytest.raises(InvalidRequestException):
        await service.create_checkout(CheckoutRequest(orderDetails={}, amount=amount, url=url))
