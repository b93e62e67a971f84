"""
Order DTOs (Pydantic v2)
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OrderProductIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: str = ""
    product_name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[UUID] = None
    payment_method: str
    currency: str = "UZS"
    products: List[OrderProductIn] = Field(min_length=1)
    total_amount: Decimal = Decimal("0")
    bonus_amount: Decimal = Decimal("0")
    notes: str = ""


class OrderCreatedDTO(BaseModel):
    id: UUID
    order_number: str
    status: str
    placed_at: Optional[datetime] = None
    total: Decimal
    currency: str
