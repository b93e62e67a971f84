"""
Payme checkout application service.

Creates the state-0 transaction row a later CreateTransaction binds to and
builds the hosted checkout URL.
"""
from __future__ import annotations

import base64
import json
import math
from typing import Any, Callable, Optional
from uuid import UUID

from application.dtos.billz import extract_internal_order_id
from application.dtos.payme import CheckoutRequest, CheckoutResult
from core.logging_config import get_logger
from domain.common.exceptions import InvalidRequestException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payme.entity import PAYME_PROVIDER, PaymeTransaction
from shared.codes.payme_codes import TransactionState


logger = get_logger(__name__)


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _details_dict(order_details: Any) -> Optional[dict]:
    """Order details as a dict, unwrapping a JSON string payload once."""
    if isinstance(order_details, dict):
        return order_details
    if isinstance(order_details, str):
        try:
            decoded = json.loads(order_details)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def _service_mode(details: Optional[dict]) -> Optional[int]:
    if not details:
        return None
    value = details.get("service_mode")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def build_checkout_url(base_url: str, merchant_id: str, account_id: str, amount: float, return_url: str) -> str:
    """``<base>/<base64(m=..;ac.order_id=..;a=..;c=..)>``; ``a`` is in minor units."""
    payload = f"m={merchant_id};ac.order_id={account_id};a={int(amount * 100)};c={return_url}"
    encoded = base64.b64encode(payload.encode("utf-8")).decode("ascii")
    return f"{base_url.rstrip('/')}/{encoded}"


class CheckoutApplicationService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        merchant_id: str,
        checkout_url: str = "https://checkout.payme.uz",
    ):
        self._uow_factory = uow_factory
        self._merchant_id = merchant_id
        self._checkout_url = checkout_url

    async def create_checkout(self, req: CheckoutRequest) -> CheckoutResult:
        if req.amount <= 0:
            raise InvalidRequestException("invalid amount", field="amount")
        if not (req.url or "").strip():
            raise InvalidRequestException("url is required", field="url")

        user_id = _parse_uuid(req.user_id)
        details = _details_dict(req.order_details)
        raw_details = None
        if req.order_details is not None:
            raw_details = json.dumps(req.order_details, ensure_ascii=False)

        async with self._uow_factory() as uow:
            if user_id is not None:
                await uow.payme_repository.delete_pending_for_user(user_id)
            txn = await uow.payme_repository.create(
                PaymeTransaction(
                    id=None,
                    amount=int(math.floor(req.amount)),
                    status=TransactionState.UNINITIALIZED,
                    user_id=user_id,
                    order_id=extract_internal_order_id(details),
                    order_details=raw_details,
                    provider=PAYME_PROVIDER,
                )
            )

        redirect_url = req.url.strip().rstrip("/")
        mode = _service_mode(details)
        if mode is not None and mode != 1:
            redirect_url = f"{redirect_url}/{txn.id}"

        url = build_checkout_url(self._checkout_url, self._merchant_id, str(txn.id), req.amount, redirect_url)
        logger.info("payme_checkout_created", txn_pk=str(txn.id), order_id=txn.order_id, amount=txn.amount)
        return CheckoutResult(url=url, order_id=str(txn.id))
