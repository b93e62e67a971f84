"""
Notification port.

Implementations must be fire-and-forget: they log their own failures and never
raise into the caller, because by the time they run the payment is already
confirmed to the provider.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, Sequence, Union, runtime_checkable

from pydantic import BaseModel, Field


Amount = Union[int, float, Decimal]


class OrderLineNotice(BaseModel):
    name: str = ""
    quantity: int = 1
    price: Decimal = Decimal("0")
    currency: str = ""


class NewOrderNotice(BaseModel):
    order_id: str
    order_number: str
    items: list[OrderLineNotice] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    currency: str = ""
    user_name: str = ""
    user_phone: str = ""
    payment_method: str = ""
    status: str = "pending"


@runtime_checkable
class PaymentNotifier(Protocol):

    def notify_payment_success(
        self,
        order_ref: str,
        order_number: str,
        external_order_id: str,
        amount: Amount,
        currency: str,
    ) -> None: ...

    def notify_new_order(self, notice: NewOrderNotice) -> None: ...


class NullNotifier:
    """Notifier used when no delivery channel is wired (tests, scripts)."""

    def notify_payment_success(self, order_ref, order_number, external_order_id, amount, currency) -> None:
        return None

    def notify_new_order(self, notice: NewOrderNotice) -> None:
        return None


__all__ = ["PaymentNotifier", "NewOrderNotice", "OrderLineNotice", "NullNotifier", "Amount"]
