"""
Payme transaction aggregate - the provider's view of one checkout.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from domain.common.exceptions import DomainValidationException
from shared.codes.payme_codes import TransactionState


PAYME_PROVIDER = "payme"


def canceled_state(state: int) -> int:
    """Cancelling state ``s`` always yields ``-|s|``."""
    return -abs(int(state))


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class PaymeTransaction:
    """
    Payme transaction bound to one internal order reference.

    Business rules:
    1. ``transaction_id`` is set at most once and never changes afterwards
    2. ``status`` moves only along 0 -> 1 -> 2, 1 -> -1, 2 -> -2
    3. a row with a ``billz_order_id`` has been dispatched and is never dispatched again

    Times (``create_time``/``perform_time``/``cancel_time``) are epoch
    milliseconds, 0 meaning "not set"; ``amount`` is in major currency units.
    """

    id: Optional[UUID]
    amount: int
    status: int = TransactionState.UNINITIALIZED
    transaction_id: str = ""
    user_id: Optional[UUID] = None
    order_id: str = ""
    order_details: Optional[str] = None
    create_time: int = 0
    perform_time: int = 0
    cancel_time: int = 0
    reason: Optional[int] = None
    provider: str = PAYME_PROVIDER
    prepare_id: str = ""

    # Billz dispatch result
    billz_order_id: str = ""
    billz_order_number: str = ""
    billz_order_type: str = ""
    billz_synced_at: Optional[datetime] = None
    billz_sync_error: str = ""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.billz_synced_at = _ensure_utc(self.billz_synced_at)

    @property
    def state(self) -> int:
        return int(self.status)

    def is_pending(self) -> bool:
        return self.state == TransactionState.PENDING

    def is_paid(self) -> bool:
        return self.state == TransactionState.PAID

    def is_expired(self, now_ms: int, timeout_ms: int) -> bool:
        """Whether a pending transaction has outlived its window."""
        return now_ms - self.create_time >= timeout_ms

    def is_dispatched(self) -> bool:
        return bool(self.billz_order_id)

    def bind(self, transaction_id: str, create_time: int) -> None:
        """Bind the provider transaction id and move to pending."""
        if not transaction_id:
            raise DomainValidationException("transaction id is required", field="transaction_id")
        if self.transaction_id and self.transaction_id != transaction_id:
            raise DomainValidationException(
                f"transaction already bound to {self.transaction_id}",
                field="transaction_id",
            )
        if self.state not in (TransactionState.UNINITIALIZED, TransactionState.PENDING):
            raise DomainValidationException(
                f"cannot bind transaction in state {self.state}",
                field="status",
            )
        self.transaction_id = transaction_id
        self.status = TransactionState.PENDING
        self.create_time = create_time

    def mark_paid(self, now_ms: int) -> None:
        if not self.is_pending():
            raise DomainValidationException(
                f"cannot perform transaction in state {self.state}",
                field="status",
            )
        self.status = TransactionState.PAID
        self.perform_time = now_ms

    def cancel(self, reason: Optional[int], now_ms: int) -> bool:
        """Flip a positive state to its canceled variant.

        Returns False (and changes nothing) when already non-positive.
        """
        if self.state <= 0:
            return False
        self.status = canceled_state(self.state)
        self.reason = reason
        self.cancel_time = now_ms
        return True

    def record_dispatch(self, order_id: str, order_number: str, order_type: str, synced_at: datetime) -> None:
        self.billz_order_id = order_id
        self.billz_order_number = order_number
        self.billz_order_type = order_type
        self.billz_synced_at = _ensure_utc(synced_at)
        self.billz_sync_error = ""

    def record_dispatch_error(self, message: str) -> None:
        self.billz_sync_error = message
