"""
Payme domain service - the provider transaction state machine.

Every method works on rows read through the repository; state-changing
lookups take a row write lock so concurrent provider retries for the same
transaction id are serialized by the database.
"""
from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Callable, List, Optional

from domain.common.exceptions import DomainValidationException
from shared.codes.payme_codes import CANCEL_REASON_TIMEOUT

from .entity import PaymeTransaction
from .events import TransactionAlreadyPerformed, TransactionCanceled, TransactionPerformed
from .exceptions import AlreadyDone, CantDoOperation, InvalidAmount, Pending, TransactionNotFound
from .repository import PaymeTransactionRepository


DEFAULT_PENDING_TIMEOUT_MS = 12 * 60 * 1000


def current_millis() -> int:
    return int(time.time() * 1000)


def to_major_units(amount: Any) -> int:
    """Provider amounts are in minor units: divide by 100 and truncate."""
    return int(Decimal(str(amount)) / 100)


class PaymeTransactionService:
    """
    Payme transaction state machine.

    States: 0 (checkout only) -> 1 (pending) -> 2 (paid); 1 -> -1 and 2 -> -2 on
    cancel. A pending row older than the timeout window is canceled with reason
    4 the next time any operation touches it.
    """

    def __init__(
        self,
        repository: PaymeTransactionRepository,
        *,
        timeout_ms: int = DEFAULT_PENDING_TIMEOUT_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.repository = repository
        self.timeout_ms = timeout_ms
        self.clock = clock or current_millis
        self.events: List = []  # collected domain events

    async def check_perform(self, amount: Any, account_ref: str) -> PaymeTransaction:
        txn = await self.repository.get_by_account_ref(account_ref)
        if txn is None:
            raise TransactionNotFound()
        if to_major_units(amount) != txn.amount:
            raise InvalidAmount()
        return txn

    async def check_transaction(self, transaction_id: Optional[str]) -> PaymeTransaction:
        return await self._require(transaction_id, for_update=False)

    async def create_transaction(
        self,
        account_ref: str,
        create_time: int,
        amount: Any,
        transaction_id: Optional[str],
    ) -> PaymeTransaction:
        await self.check_perform(amount, account_ref)
        if not transaction_id:
            raise TransactionNotFound()

        existing = await self.repository.get_by_transaction_id(transaction_id, for_update=True)
        if existing is not None:
            return await self._resume_pending(existing)

        target = await self.repository.get_by_account_ref(account_ref, for_update=True)
        if target is None:
            raise TransactionNotFound()
        # a concurrent call with the same id may have bound the row while this one waited on the lock
        if target.transaction_id == transaction_id:
            return await self._resume_pending(target)
        if target.is_paid():
            raise AlreadyDone()
        if target.is_pending():
            raise Pending()
        try:
            target.bind(transaction_id, create_time)
        except DomainValidationException as exc:
            raise CantDoOperation(data=exc.field) from exc
        return await self.repository.update(target)

    async def perform_transaction(self, transaction_id: Optional[str]) -> PaymeTransaction:
        txn = await self._require(transaction_id, for_update=True)
        if txn.is_paid():
            self.events.append(
                TransactionAlreadyPerformed(transaction_pk=txn.id, transaction_id=txn.transaction_id)
            )
            return txn
        if not txn.is_pending():
            raise CantDoOperation()

        now = self.clock()
        if txn.is_expired(now, self.timeout_ms):
            await self._expire(txn, now)
            raise CantDoOperation()

        txn.mark_paid(now)
        txn = await self.repository.update(txn)
        self.events.append(
            TransactionPerformed(
                transaction_pk=txn.id,
                transaction_id=txn.transaction_id,
                order_id=txn.order_id,
                amount=txn.amount,
            )
        )
        return txn

    async def cancel_transaction(self, transaction_id: Optional[str], reason: Optional[int]) -> PaymeTransaction:
        txn = await self._require(transaction_id, for_update=True)
        if txn.cancel(reason, self.clock()):
            txn = await self.repository.update(txn)
            self.events.append(
                TransactionCanceled(
                    transaction_pk=txn.id,
                    transaction_id=txn.transaction_id,
                    state=txn.state,
                    reason=reason,
                )
            )
        return txn

    async def get_statement(self, start: int, end: int) -> List[PaymeTransaction]:
        return await self.repository.list_by_create_time(start, end)

    async def _require(self, transaction_id: Optional[str], *, for_update: bool) -> PaymeTransaction:
        if not transaction_id:
            raise TransactionNotFound()
        txn = await self.repository.get_by_transaction_id(transaction_id, for_update=for_update)
        if txn is None:
            raise TransactionNotFound()
        return txn

    async def _resume_pending(self, txn: PaymeTransaction) -> PaymeTransaction:
        """Repeated CreateTransaction for an already bound id."""
        if not txn.is_pending():
            raise CantDoOperation()
        now = self.clock()
        if txn.is_expired(now, self.timeout_ms):
            await self._expire(txn, now)
            raise CantDoOperation()
        return txn

    async def _expire(self, txn: PaymeTransaction, now: int) -> None:
        txn.cancel(CANCEL_REASON_TIMEOUT, now)
        await self.repository.update(txn)
        self.events.append(
            TransactionCanceled(
                transaction_pk=txn.id,
                transaction_id=txn.transaction_id,
                state=txn.state,
                reason=CANCEL_REASON_TIMEOUT,
            )
        )
