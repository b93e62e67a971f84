"""
Order aggregate - a placed storefront order that may be pushed to Billz.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from domain.common.exceptions import DomainValidationException


CASH_PAYMENT_METHOD = "cash"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class OrderItem:
    product_id: str
    product_name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")

    def __post_init__(self):
        self.unit_price = Decimal(str(self.unit_price))
        self.line_total = Decimal(str(self.line_total))
        if not self.line_total:
            self.line_total = self.unit_price * self.quantity


@dataclass
class Order:
    """
    Placed order.

    ``total_amount`` falls back to ``subtotal - bonus_amount`` when the caller
    did not send an explicit total.
    """

    id: Optional[UUID]
    order_number: str
    user_id: Optional[UUID]
    payment_method: str
    currency: str = "UZS"
    items: List[OrderItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    bonus_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    notes: str = ""
    status: str = "pending"
    placed_at: Optional[datetime] = None

    billz_order_id: str = ""
    billz_order_number: str = ""
    billz_order_type: str = ""
    billz_synced_at: Optional[datetime] = None
    billz_sync_error: str = ""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.placed_at = _ensure_utc(self.placed_at)
        self.billz_synced_at = _ensure_utc(self.billz_synced_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.subtotal = Decimal(str(self.subtotal))
        self.bonus_amount = Decimal(str(self.bonus_amount))
        self.total_amount = Decimal(str(self.total_amount))

    @classmethod
    def place(
        cls,
        *,
        order_number: str,
        user_id: Optional[UUID],
        payment_method: str,
        items: List[OrderItem],
        currency: str = "UZS",
        total_amount: Decimal = Decimal("0"),
        bonus_amount: Decimal = Decimal("0"),
        notes: str = "",
    ) -> "Order":
        if not items:
            raise DomainValidationException("order has no items", field="products")
        subtotal = sum((item.line_total for item in items), Decimal("0"))
        bonus = Decimal(str(bonus_amount))
        total = Decimal(str(total_amount)) or subtotal - bonus
        return cls(
            id=None,
            order_number=order_number,
            user_id=user_id,
            payment_method=payment_method,
            currency=currency or "UZS",
            items=list(items),
            subtotal=subtotal,
            bonus_amount=bonus,
            total_amount=total,
            notes=notes,
            placed_at=datetime.now(timezone.utc),
        )

    def is_cash(self) -> bool:
        return self.payment_method == CASH_PAYMENT_METHOD

    def record_dispatch(self, order_id: str, order_number: str, order_type: str, synced_at: datetime) -> None:
        self.billz_order_id = order_id
        self.billz_order_number = order_number
        self.billz_order_type = order_type
        self.billz_synced_at = _ensure_utc(synced_at)
        self.billz_sync_error = ""

    def record_dispatch_error(self, message: str, synced_at: datetime) -> None:
        self.billz_sync_error = message
        self.billz_synced_at = _ensure_utc(synced_at)
