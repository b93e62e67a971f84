import asyncio
import json

import httpx
import pytest

from core.settings import BillzSettings
from infrastructure.external.billz import (
    BillzAPIError,
    BillzAuthError,
    BillzClient,
    BillzOrderGateway,
    TokenCache,
    build_billz_url,
)


AUTH_URL = "https://billz.test/v1/auth/login"


def _settings(**overrides) -> BillzSettings:
    values = {
        "base_url": "https://billz.test/v2",
        "auth_url": AUTH_URL,
        "secret_key": "s3cret",
        "shop_id": "shop-1",
        "cashbox_id": "cash-1",
        "payment_type_id": "pt-1",
    }
    values.update(overrides)
    return BillzSettings(**values)


class BillzStub:
    """MockTransport handler: hands out tok-1, tok-2 ... and accepts only the newest"""

    def __init__(self, *, reject_all: bool = False, api_status: int = 200):
        self.logins = 0
        self.requests = []
        self.reject_all = reject_all
        self.api_status = api_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == AUTH_URL:
            self.logins += 1
            assert json.loads(request.content) == {"secret_token": "s3cret"}
            return httpx.Response(200, json={"data": {"access_token": f"tok-{self.logins}", "expires_in": 3600}})

        self.requests.append(request)
        current = f"Bearer tok-{self.logins}"
        if self.reject_all or request.headers.get("Authorization") != current:
            return httpx.Response(401, json={"error": "unauthorized"})
        if self.api_status != 200:
            return httpx.Response(self.api_status, text="boom")
        return httpx.Response(200, json={"id": "bz-1", "data": {"order_number": "1001", "order_type": "SALE"}})


def _client(stub, settings=None, cache=None) -> BillzClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return BillzClient(settings or _settings(), cache or TokenCache(), http_client=http)


@pytest.mark.parametrize(
    "base,path,expected",
    [
        ("https://api-admin.billz.ai/v2", "v1/order", "https://api-admin.billz.ai/v1/order"),
        ("https://api-admin.billz.ai/v2", "order", "https://api-admin.billz.ai/v2/order"),
        ("https://api-admin.billz.ai/v2/", "/v2/order", "https://api-admin.billz.ai/v2/order"),
        ("https://api-admin.billz.ai", "v3/order-product/42", "https://api-admin.billz.ai/v3/order-product/42"),
    ],
)
def test_build_billz_url_keeps_one_version(base, path, expected):
    assert build_billz_url(base, path) == expected


def test_build_billz_url_merges_query():
    url = build_billz_url("https://billz.test/v2", "order", {"Billz-Response-Channel": "HTTP"})
    assert httpx.URL(url).params["Billz-Response-Channel"] == "HTTP"


def test_token_cache_respects_leeway():
    now = [1000.0]
    cache = TokenCache(leeway_seconds=30, clock=lambda: now[0])
    cache.store("tok", 20)
    assert cache.peek() is None

    cache.store("tok", 120)
    assert cache.peek() == "tok"
    now[0] += 95
    assert cache.peek() is None


@pytest.mark.asyncio
async def test_token_is_cached_between_requests():
    stub = BillzStub()
    async with _client(stub) as client:
        await client.request("GET", "v2/orders")
        await client.request("GET", "v2/orders")
    assert stub.logins == 1
    assert stub.requests[0].headers["Authorization"] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_unauthorized_refreshes_once_and_retries():
    stub = BillzStub()
    cache = TokenCache()
    cache.store("expired-elsewhere", 3600)
    async with _client(stub, cache=cache) as client:
        response = await client.request("GET", "v2/orders")
    assert response.status_code == 200
    assert stub.logins == 1
    assert len(stub.requests) == 2


@pytest.mark.asyncio
async def test_unauthorized_twice_is_an_error():
    stub = BillzStub(reject_all=True)
    async with _client(stub) as client:
        with pytest.raises(BillzAPIError) as err:
            await client.request("GET", "v2/orders")
    assert err.value.status_code == 401
    assert len(stub.requests) == 2
    assert stub.logins == 2


@pytest.mark.asyncio
async def test_caller_token_is_not_refreshed():
    stub = BillzStub()
    async with _client(stub) as client:
        with pytest.raises(BillzAPIError) as err:
            await client.request("GET", "v2/orders", token="caller-token")
    assert err.value.status_code == 401
    assert stub.logins == 0
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_login():
    stub = BillzStub()
    async with _client(stub) as client:
        await asyncio.gather(*(client.request("GET", "v2/orders") for _ in range(5)))
    assert stub.logins == 1


@pytest.mark.asyncio
async def test_error_status_carries_body():
    stub = BillzStub(api_status=500)
    async with _client(stub) as client:
        with pytest.raises(BillzAPIError) as err:
            await client.request("POST", "v2/order", body={})
    assert err.value.status_code == 500
    assert err.value.body == "boom"


@pytest.mark.asyncio
async def test_transport_error_becomes_api_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = BillzClient(_settings(), TokenCache(), http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    client.token_cache.store("tok", 3600)
    with pytest.raises(BillzAPIError):
        await client.request("GET", "v2/orders")


@pytest.mark.asyncio
async def test_request_requires_method_and_path():
    async with _client(BillzStub()) as client:
        with pytest.raises(ValueError):
            await client.request("", "v2/orders")
        with pytest.raises(ValueError):
            await client.request("GET", "/")


@pytest.mark.asyncio
async def test_login_without_secret():
    async with _client(BillzStub(), settings=_settings(secret_key="")) as client:
        with pytest.raises(BillzAuthError):
            await client.login()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(403, text="forbidden"),
        httpx.Response(200, json={"data": {}}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_login_failures(response):
    client = BillzClient(
        _settings(),
        TokenCache(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)),
    )
    with pytest.raises(BillzAuthError):
        await client.login()


@pytest.mark.asyncio
async def test_login_falls_back_to_default_ttl():
    def handler(request):
        return httpx.Response(200, json={"data": {"access_token": "tok"}})

    client = BillzClient(
        _settings(default_token_ttl_seconds=300),
        TokenCache(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    assert await client.login() == ("tok", 300.0)


@pytest.mark.asyncio
async def test_gateway_creates_draft_with_channel():
    stub = BillzStub()
    async with _client(stub) as client:
        result = await BillzOrderGateway(client, _settings()).create_draft_order()

    assert result.order_id == "bz-1"
    assert result.order_number == "1001"
    assert result.order_type == "SALE"
    sent = stub.requests[0]
    assert sent.url.path == "/v2/order"
    assert sent.url.params["Billz-Response-Channel"] == "HTTP"
    assert sent.headers["Billz-Response-Channel"] == "HTTP"
    assert json.loads(sent.content) == {"shop_id": "shop-1", "cashbox_id": "cash-1"}


@pytest.mark.asyncio
async def test_gateway_registers_rounded_payment():
    stub = BillzStub()
    async with _client(stub) as client:
        gateway = BillzOrderGateway(client, _settings())
        await gateway.register_payment("bz-1", "1500.5", "Cash", " thanks ")
        with pytest.raises(ValueError):
            await gateway.register_payment("bz-1", "0.4", "cash", "")

    body = json.loads(stub.requests[0].content)
    payment = body["payments"][0]
    assert stub.requests[0].url.path == "/v2/order-payment/bz-1"
    assert payment["paid_amount"] == 1501
    assert payment["company_payment_type"] == {"name": "Наличные"}
    assert payment["company_payment_type_id"] == "pt-1"
    assert body["comment"] == "thanks"


@pytest.mark.asyncio
async def test_gateway_adds_product_and_customer():
    stub = BillzStub()
    async with _client(stub) as client:
        gateway = BillzOrderGateway(client, _settings())
        await gateway.add_order_product("bz-1", "p-1", 2.0)
        await gateway.attach_customer("bz-1", "cust-1")

    product, customer = stub.requests
    assert product.url.path == "/v2/order-product/bz-1"
    assert json.loads(product.content)["sold_measurement_value"] == 2
    assert customer.method == "PUT"
    assert json.loads(customer.content) == {"customer_id": "cust-1", "check_auth_code": False}
