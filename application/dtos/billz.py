"""
Billz dispatch DTOs (Pydantic v2).

The stored Payme order payload comes from the storefront with alternate field
spellings (``productId``/``product_id``, ``quantity``/``qty`` ...). Each field
is normalized once, in a ``mode="before"`` validator, so nothing downstream
has to look at the raw spelling again.
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _first_text(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _first_positive(data: dict, *keys: str) -> Any:
    """First key whose value is a positive number, else the last key's value."""
    value: Any = None
    for key in keys:
        value = data.get(key)
        try:
            if value is not None and Decimal(str(value)) > 0:
                return value
        except ArithmeticError:
            continue
    return value if value is not None else 0


class BillzOrderResult(BaseModel):
    order_id: str
    order_number: str = ""
    order_type: str = ""
    # True when served from the row instead of a new Billz call
    already_dispatched: bool = False


class BillzOrderItem(BaseModel):
    product_id: str = ""
    quantity: float = 0


class BillzOrderPayload(BaseModel):
    """Locally built order for the direct (cash) dispatch path."""
    items: List[BillzOrderItem] = Field(default_factory=list)
    customer_id: str = ""
    payment_method: str = ""
    total_amount: Decimal = Decimal("0")
    comment: str = ""


class PaymeOrderItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: str = ""
    quantity: float = 0

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "product_id": _first_text(data, "productId", "product_id"),
            "quantity": _first_positive(data, "quantity", "qty") or 0,
        }


class PaymeCheckoutInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment_method: str = ""
    comment: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "payment_method": _first_text(data, "paymentMethod", "payment_method"),
            "comment": _first_text(data, "comment", "notes"),
        }


class PaymeTotals(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Decimal = Decimal("0")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {"amount": _first_positive(data, "amount", "total", "total_amount") or 0}


class PaymeOrderUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {"id": _first_text(data, "id", "user_id")}


class PaymeOrderDetails(BaseModel):
    """Order payload saved with a Payme checkout"""
    model_config = ConfigDict(extra="ignore")

    items: List[PaymeOrderItem] = Field(default_factory=list)
    checkout: PaymeCheckoutInfo = Field(default_factory=PaymeCheckoutInfo)
    totals: PaymeTotals = Field(default_factory=PaymeTotals)
    user: PaymeOrderUser = Field(default_factory=PaymeOrderUser)

    @classmethod
    def parse_stored(cls, raw: Union[str, bytes, None]) -> "PaymeOrderDetails":
        """
        Parse the stored payload, unwrapping one level of string encoding.

        The web app posts ``JSON.stringify(payload)`` so the column may hold a
        JSON string whose content is the real JSON document.

        Raises:
            ValueError: empty payload, malformed JSON or wrong shape
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        text = (raw or "").strip()
        if not text:
            raise ValueError("order details are empty")

        if text.startswith('"'):
            unwrapped = json.loads(text)
            if not isinstance(unwrapped, str):
                raise ValueError("order details string does not contain JSON text")
            text = unwrapped

        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("order details must be a JSON object")
        return cls.model_validate(data)

    def valid_items(self) -> List[BillzOrderItem]:
        """Items with a product id and a positive quantity"""
        return [
            BillzOrderItem(product_id=item.product_id, quantity=item.quantity)
            for item in self.items
            if item.product_id and item.quantity > 0
        ]


def extract_internal_order_id(details: Optional[dict]) -> str:
    """Internal order reference carried by a checkout payload, if any."""
    if not isinstance(details, dict):
        return ""
    return _first_text(details, "internalOrderId", "internal_order_id", "order_id", "orderId")
