"""
Billz dispatch application service - exactly-once conversion of a paid Payme
transaction into a Billz sales order.

The whole external call sequence runs while the transaction row is locked
(``SELECT ... FOR UPDATE``); a concurrent dispatch for the same row waits for
the lock and then finds ``billz_order_id`` already set.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import UUID

from application.dtos.billz import BillzOrderItem, BillzOrderPayload, BillzOrderResult, PaymeOrderDetails
from application.ports.billz import BillzOrderGatewayPort
from application.ports.notifier import NullNotifier, PaymentNotifier
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payme.entity import PaymeTransaction
from shared.codes import BusinessCode


logger = get_logger(__name__)

PAYME_COMMENT_MARKER = "Payment completed via Payme"
DEFAULT_SYNC_ERROR_MAX_LENGTH = 1024


class BillzDispatchError(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.BILLZ_DISPATCH_ERROR,
            message=message,
            error_type="BillzDispatchError",
            details=details,
        )


def payme_payment_comment(existing: str) -> str:
    """Append the Payme marker to the checkout comment unless already present."""
    trimmed = (existing or "").strip()
    if not trimmed:
        return PAYME_COMMENT_MARKER
    if PAYME_COMMENT_MARKER in trimmed:
        return trimmed
    return f"{trimmed} | {PAYME_COMMENT_MARKER}"


def truncate_sync_error(exc: BaseException, max_length: int = DEFAULT_SYNC_ERROR_MAX_LENGTH) -> str:
    message = str(exc) or exc.__class__.__name__
    return message[:max_length]


class BillzDispatchService:
    """Billz dispatch orchestration"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: BillzOrderGatewayPort,
        *,
        notifier: Optional[PaymentNotifier] = None,
        currency: str = "UZS",
        error_max_length: int = DEFAULT_SYNC_ERROR_MAX_LENGTH,
    ):
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._notifier = notifier or NullNotifier()
        self._currency = currency
        self._error_max_length = error_max_length

    async def dispatch_transaction(self, txn_pk: UUID) -> BillzOrderResult:
        """
        Dispatch one paid transaction, at most once.

        Failures are written to ``billz_sync_error`` and committed before the
        exception propagates, so the row stays eligible for a later retry.
        """
        async with self._uow_factory() as uow:
            txn = await uow.payme_repository.get_by_id(txn_pk, for_update=True)
            if txn is None:
                raise BillzDispatchError("payme transaction not found", details={"txn_pk": str(txn_pk)})

            if txn.is_dispatched():
                logger.info("billz_dispatch_skipped", txn_pk=str(txn.id), billz_order_id=txn.billz_order_id)
                return BillzOrderResult(
                    order_id=txn.billz_order_id,
                    order_number=txn.billz_order_number,
                    order_type=txn.billz_order_type,
                    already_dispatched=True,
                )

            try:
                result = await self._dispatch_payme(txn)
            except Exception as exc:
                txn.record_dispatch_error(truncate_sync_error(exc, self._error_max_length))
                await uow.payme_repository.update(txn)
                await uow.commit()
                logger.warning(
                    "billz_dispatch_failed",
                    txn_pk=str(txn.id),
                    transaction_id=txn.transaction_id,
                    error=str(exc),
                )
                raise

            txn.record_dispatch(
                result.order_id,
                result.order_number,
                result.order_type,
                datetime.now(timezone.utc),
            )
            await uow.payme_repository.update(txn)

        logger.info(
            "billz_dispatch_succeeded",
            txn_pk=str(txn.id),
            billz_order_id=result.order_id,
            billz_order_number=result.order_number,
        )
        self._notifier.notify_payment_success(
            order_ref=txn.order_id,
            order_number=txn.order_id or str(txn.id),
            external_order_id=result.order_id,
            amount=txn.amount,
            currency=self._currency,
        )
        return result

    async def dispatch_direct(self, payload: BillzOrderPayload) -> BillzOrderResult:
        """
        Dispatch a locally built order (cash checkout).

        No row lock and no idempotency check: each order runs this once, right
        after it is created. Customer attachment is optional here.
        """
        if not payload.items:
            raise BillzDispatchError("no items provided")

        items: List[BillzOrderItem] = []
        for item in payload.items:
            product_id = (item.product_id or "").strip()
            if not product_id:
                continue
            quantity = item.quantity if item.quantity > 0 else 1
            items.append(BillzOrderItem(product_id=product_id, quantity=quantity))
        if not items:
            raise BillzDispatchError("no valid products added to order")
        if payload.total_amount <= 0:
            raise BillzDispatchError("invalid payment amount")

        return await self._run(
            items,
            customer_id=payload.customer_id,
            customer_required=False,
            amount=payload.total_amount,
            payment_method=payload.payment_method,
            comment=payload.comment,
        )

    async def redispatch_unsynced(self, limit: int = 50) -> Dict[str, int]:
        """Retry dispatch for paid transactions that never got a Billz order."""
        async with self._uow_factory(readonly=True) as uow:
            pending = await uow.payme_repository.list_undispatched_paid(limit)

        dispatched = failed = 0
        for txn in pending:
            try:
                await self.dispatch_transaction(txn.id)
                dispatched += 1
            except Exception as exc:
                failed += 1
                logger.warning("billz_redispatch_failed", txn_pk=str(txn.id), error=str(exc))
        logger.info("billz_redispatch_finished", dispatched=dispatched, failed=failed, scanned=len(pending))
        return {"scanned": len(pending), "dispatched": dispatched, "failed": failed}

    async def _dispatch_payme(self, txn: PaymeTransaction) -> BillzOrderResult:
        try:
            details = PaymeOrderDetails.parse_stored(txn.order_details)
        except ValueError as exc:
            raise BillzDispatchError(f"parse order details: {exc}") from exc

        if not details.items:
            raise BillzDispatchError("order details missing items")
        items = details.valid_items()
        if not items:
            raise BillzDispatchError("no valid products in order details")

        customer_id = details.user.id or (str(txn.user_id) if txn.user_id else "")
        if not customer_id:
            raise BillzDispatchError("customer id missing")

        amount = details.totals.amount
        if amount <= 0:
            amount = Decimal(txn.amount)
        if amount <= 0:
            raise BillzDispatchError("payment amount missing")

        return await self._run(
            items,
            customer_id=customer_id,
            customer_required=True,
            amount=amount,
            payment_method=details.checkout.payment_method,
            comment=payme_payment_comment(details.checkout.comment),
        )

    async def _run(
        self,
        items: List[BillzOrderItem],
        *,
        customer_id: str,
        customer_required: bool,
        amount: Decimal,
        payment_method: str,
        comment: str,
    ) -> BillzOrderResult:
        draft = await self._gateway.create_draft_order()

        for item in items:
            await self._gateway.add_order_product(draft.order_id, item.product_id, item.quantity)

        if customer_id:
            try:
                await self._gateway.attach_customer(draft.order_id, customer_id)
            except Exception as exc:
                if customer_required:
                    raise
                logger.warning(
                    "billz_attach_customer_failed",
                    billz_order_id=draft.order_id,
                    customer_id=customer_id,
                    error=str(exc),
                )

        await self._gateway.register_payment(draft.order_id, amount, payment_method, comment)
        return draft
