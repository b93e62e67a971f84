"""
Billz order endpoints used by dispatch.

Every call carries ``Billz-Response-Channel`` both as a header and as a query
parameter; Billz reads either depending on the endpoint.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from application.dtos.billz import BillzOrderResult
from core.logging_config import get_logger
from core.settings import BillzSettings

from .client import BillzAPIError, BillzClient


logger = get_logger(__name__)

CASH_SYNONYMS = frozenset({"cash", "nalichniy", "наличные"})
CASH_LABEL = "Наличные"
CASHLESS_LABEL = "Безналичный расчет"


def payment_type_label(method: str) -> str:
    if (method or "").strip().lower() in CASH_SYNONYMS:
        return CASH_LABEL
    return CASHLESS_LABEL


def round_paid_amount(amount: Any) -> int:
    """Nearest whole unit, halves away from zero"""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _measurement(quantity: float):
    return int(quantity) if float(quantity).is_integer() else quantity


class BillzOrderGateway:
    """HTTP adapter for application.ports.billz.BillzOrderGatewayPort"""

    def __init__(self, client: BillzClient, settings: BillzSettings):
        self.client = client
        self.settings = settings

    @property
    def _channel(self) -> Dict[str, str]:
        return {"Billz-Response-Channel": self.settings.response_channel}

    async def _call(self, method: str, path: str, body: Dict[str, Any]):
        return await self.client.request(
            method,
            path,
            body=body,
            query=self._channel,
            headers=self._channel,
        )

    async def create_draft_order(self) -> BillzOrderResult:
        response = await self._call(
            "POST",
            "v2/order",
            {"shop_id": self.settings.shop_id, "cashbox_id": self.settings.cashbox_id},
        )
        try:
            payload = response.json() or {}
        except ValueError as exc:
            raise BillzAPIError("create billz order: response is not JSON", body=response.text()) from exc

        order_id = payload.get("id") if isinstance(payload, dict) else None
        if not order_id:
            raise BillzAPIError("billz order response missing id", body=response.text())
        data = payload.get("data") or {}
        result = BillzOrderResult(
            order_id=str(order_id),
            order_number=str(data.get("order_number") or ""),
            order_type=str(data.get("order_type") or ""),
        )
        logger.info("billz_draft_order_created", billz_order_id=result.order_id, order_number=result.order_number)
        return result

    async def add_order_product(self, order_id: str, product_id: str, quantity: float) -> None:
        await self._call(
            "POST",
            f"v2/order-product/{order_id}",
            {
                "sold_measurement_value": _measurement(quantity),
                "product_id": product_id,
                "used_wholesale_price": False,
                "is_manual": False,
                "response_type": "HTTP",
            },
        )

    async def attach_customer(self, order_id: str, customer_id: str) -> None:
        await self._call(
            "PUT",
            f"v2/order-customer-new/{order_id}",
            {"customer_id": customer_id, "check_auth_code": False},
        )

    async def register_payment(self, order_id: str, amount: Decimal, payment_method: str, comment: str) -> None:
        paid_amount = round_paid_amount(amount)
        if paid_amount <= 0:
            raise ValueError("invalid payment amount")
        await self._call(
            "POST",
            f"v2/order-payment/{order_id}",
            {
                "payments": [
                    {
                        "company_payment_type_id": self.settings.payment_type_id,
                        "paid_amount": paid_amount,
                        "company_payment_type": {"name": payment_type_label(payment_method)},
                        "returned_amount": 0,
                    }
                ],
                "comment": (comment or "").strip(),
                "with_cashback": 0,
                "without_cashback": False,
                "skip_ofd": False,
            },
        )
