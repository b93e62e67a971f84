"""
Payme JSON-RPC DTOs (Pydantic v2).

Params models validate one RPC method each; result models mirror the wire
shapes the provider expects.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_transaction_id(value: Any) -> Optional[str]:
    """Provider ids arrive as strings or numbers; numbers become their integer string.

    Anything else (bool, null, objects) yields None, which callers treat as
    "transaction not found".
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)):
        return str(int(value))
    return None


class PaymeRPCRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    id: Any = None


class PaymeAccount(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: str

    @field_validator("order_id", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v))
        return v


class _TransactionRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, v: Any) -> Optional[str]:
        return normalize_transaction_id(v)


class CheckPerformParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Union[int, float]
    account: PaymeAccount


class CheckTransactionParams(_TransactionRef):
    pass


class CreateTransactionParams(_TransactionRef):
    amount: Union[int, float]
    account: PaymeAccount
    time: int


class PerformTransactionParams(_TransactionRef):
    pass


class CancelTransactionParams(_TransactionRef):
    reason: Optional[int] = None


class StatementParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: int = Field(alias="from")
    to: int


class CheckPerformResult(BaseModel):
    allow: bool = True


class CheckTransactionResult(BaseModel):
    create_time: int
    perform_time: int
    cancel_time: int
    transaction: str
    state: int
    reason: Optional[int] = None


class CreateTransactionResult(BaseModel):
    create_time: int
    transaction: str
    state: int


class PerformTransactionResult(BaseModel):
    perform_time: int
    transaction: str
    state: int


class CancelTransactionResult(BaseModel):
    cancel_time: int
    transaction: str
    state: int


class StatementAccount(BaseModel):
    order_id: str


class StatementTransaction(BaseModel):
    id: str
    transaction_id: str
    time: int
    amount: int
    account: StatementAccount
    create_time: int
    perform_time: int
    cancel_time: int
    transaction: str
    state: int
    reason: Optional[int] = None


class StatementResult(BaseModel):
    transactions: List[StatementTransaction] = Field(default_factory=list)


class CheckoutRequest(BaseModel):
    """Storefront request that opens a Payme checkout"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    order_details: Any = Field(default=None, alias="orderDetails")
    amount: float
    user_id: Optional[str] = Field(default=None, alias="userId")
    url: str = ""


class CheckoutResult(BaseModel):
    url: str
    order_id: str
