"""
Billz order gateway port.

The dispatch service depends on this Protocol; infrastructure.external.billz
provides the HTTP adapter and tests provide in-memory fakes.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from application.dtos.billz import BillzOrderResult


@runtime_checkable
class BillzOrderGatewayPort(Protocol):

    async def create_draft_order(self) -> BillzOrderResult: ...

    async def add_order_product(self, order_id: str, product_id: str, quantity: float) -> None: ...

    async def attach_customer(self, order_id: str, customer_id: str) -> None: ...

    async def register_payment(
        self,
        order_id: str,
        amount: Decimal,
        payment_method: str,
        comment: str,
    ) -> None: ...
