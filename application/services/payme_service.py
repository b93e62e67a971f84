"""
Payme application service - JSON-RPC method dispatch over the transaction
state machine.

Each call runs in its own Unit of Work. Protocol errors raised after a state
change (timeout cancellation) are committed before they propagate so the
cancellation survives the error response.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from application.dtos.payme import (
    CancelTransactionParams,
    CancelTransactionResult,
    CheckPerformParams,
    CheckPerformResult,
    CheckTransactionParams,
    CheckTransactionResult,
    CreateTransactionParams,
    CreateTransactionResult,
    PerformTransactionParams,
    PerformTransactionResult,
    StatementAccount,
    StatementParams,
    StatementResult,
    StatementTransaction,
)
from application.services.billz_dispatch_service import BillzDispatchService
from core.logging_config import get_logger
from domain.common.exceptions import InvalidRequestException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payme.entity import PaymeTransaction
from domain.payme.events import TransactionAlreadyPerformed, TransactionCanceled, TransactionPerformed
from domain.payme.exceptions import PaymeError
from domain.payme.service import DEFAULT_PENDING_TIMEOUT_MS, PaymeTransactionService, current_millis
from shared.codes.payme_codes import CANCEL_REASON_TIMEOUT


logger = get_logger(__name__)


def _log_events(events) -> None:
    for event in events:
        if isinstance(event, TransactionPerformed):
            logger.info(
                "payme_transaction_performed",
                transaction_id=event.transaction_id,
                txn_pk=str(event.transaction_pk),
                order_id=event.order_id,
                amount=event.amount,
            )
        elif isinstance(event, TransactionAlreadyPerformed):
            logger.info("payme_transaction_already_performed", transaction_id=event.transaction_id)
        elif isinstance(event, TransactionCanceled):
            name = "payme_transaction_expired" if event.reason == CANCEL_REASON_TIMEOUT else "payme_transaction_canceled"
            logger.info(name, transaction_id=event.transaction_id, state=event.state, reason=event.reason)


def _to_statement(txn: PaymeTransaction) -> StatementTransaction:
    return StatementTransaction(
        id=txn.transaction_id,
        transaction_id=txn.transaction_id,
        time=txn.create_time,
        amount=txn.amount * 100,
        account=StatementAccount(order_id=str(txn.id)),
        create_time=txn.create_time,
        perform_time=txn.perform_time,
        cancel_time=txn.cancel_time,
        transaction=txn.transaction_id,
        state=txn.state,
        reason=txn.reason,
    )


class PaymeApplicationService:
    """Payme merchant API (CheckPerformTransaction ... GetStatement)"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: Optional[BillzDispatchService] = None,
        *,
        timeout_ms: int = DEFAULT_PENDING_TIMEOUT_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._timeout_ms = timeout_ms
        self._clock = clock or current_millis
        self._methods: Dict[str, tuple[Type[BaseModel], Callable[[Any], Awaitable[BaseModel]]]] = {
            "CheckPerformTransaction": (CheckPerformParams, self.check_perform_transaction),
            "CheckTransaction": (CheckTransactionParams, self.check_transaction),
            "CreateTransaction": (CreateTransactionParams, self.create_transaction),
            "PerformTransaction": (PerformTransactionParams, self.perform_transaction),
            "CancelTransaction": (CancelTransactionParams, self.cancel_transaction),
            "GetStatement": (StatementParams, self.get_statement),
        }

    async def handle(self, method: str, params: Dict[str, Any], rpc_id: Any = None) -> Dict[str, Any]:
        """
        Run one RPC call and return ``{"result": ..., "id": rpc_id}``.

        Raises:
            PaymeError: protocol error, ``rpc_id`` already attached
            InvalidRequestException: unknown method or malformed params
        """
        entry = self._methods.get(method)
        if entry is None:
            raise InvalidRequestException("unsupported method", field="method", details={"method": method})
        params_model, handler = entry
        try:
            parsed = params_model.model_validate(params or {})
        except ValidationError as exc:
            raise InvalidRequestException(
                "invalid params",
                field="params",
                details={"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
            ) from exc

        try:
            result = await handler(parsed)
        except PaymeError as exc:
            exc.rpc_id = rpc_id
            raise
        logger.info("payme_rpc_handled", method=method, rpc_id=rpc_id)
        return {"result": result.model_dump(mode="json"), "id": rpc_id}

    def _domain_service(self, uow: AbstractUnitOfWork) -> PaymeTransactionService:
        return PaymeTransactionService(
            uow.payme_repository,
            timeout_ms=self._timeout_ms,
            clock=self._clock,
        )

    async def check_perform_transaction(self, params: CheckPerformParams) -> CheckPerformResult:
        async with self._uow_factory(readonly=True) as uow:
            await self._domain_service(uow).check_perform(params.amount, params.account.order_id)
        return CheckPerformResult(allow=True)

    async def check_transaction(self, params: CheckTransactionParams) -> CheckTransactionResult:
        async with self._uow_factory(readonly=True) as uow:
            txn = await self._domain_service(uow).check_transaction(params.id)
        return CheckTransactionResult(
            create_time=txn.create_time,
            perform_time=txn.perform_time,
            cancel_time=txn.cancel_time,
            transaction=txn.transaction_id,
            state=txn.state,
            reason=txn.reason or None,
        )

    async def create_transaction(self, params: CreateTransactionParams) -> CreateTransactionResult:
        async with self._uow_factory() as uow:
            service = self._domain_service(uow)
            try:
                txn = await service.create_transaction(
                    params.account.order_id,
                    params.time,
                    params.amount,
                    params.id,
                )
            except PaymeError:
                await uow.commit()
                _log_events(service.events)
                raise
        logger.info("payme_transaction_bound", transaction_id=txn.transaction_id, txn_pk=str(txn.id))
        return CreateTransactionResult(
            create_time=txn.create_time,
            transaction=txn.transaction_id,
            state=txn.state,
        )

    async def perform_transaction(self, params: PerformTransactionParams) -> PerformTransactionResult:
        async with self._uow_factory() as uow:
            service = self._domain_service(uow)
            try:
                txn = await service.perform_transaction(params.id)
            except PaymeError:
                await uow.commit()
                _log_events(service.events)
                raise
            events = list(service.events)

        _log_events(events)
        # the row is paid either way; dispatch is idempotent
        await self._dispatch(txn)

        return PerformTransactionResult(
            perform_time=txn.perform_time,
            transaction=txn.transaction_id,
            state=txn.state,
        )

    async def cancel_transaction(self, params: CancelTransactionParams) -> CancelTransactionResult:
        async with self._uow_factory() as uow:
            service = self._domain_service(uow)
            txn = await service.cancel_transaction(params.id, params.reason)
        _log_events(service.events)
        return CancelTransactionResult(
            cancel_time=txn.cancel_time or self._clock(),
            transaction=txn.transaction_id,
            state=-abs(txn.state),
        )

    async def get_statement(self, params: StatementParams) -> StatementResult:
        async with self._uow_factory(readonly=True) as uow:
            txns = await self._domain_service(uow).get_statement(params.from_, params.to)
        return StatementResult(transactions=[_to_statement(t) for t in txns])

    async def _dispatch(self, txn: PaymeTransaction) -> None:
        """Dispatch failures are recorded on the row and logged, never returned."""
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch_transaction(txn.id)
        except Exception as exc:
            logger.error(
                "payme_dispatch_failed",
                txn_pk=str(txn.id),
                transaction_id=txn.transaction_id,
                error=str(exc),
                exc_info=True,
            )
