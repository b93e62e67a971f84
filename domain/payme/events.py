"""
Payme domain events.

Collected by the domain service and drained by the application layer after
the storage transaction commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID
import uuid


@dataclass
class PaymeTransactionEvent:
    transaction_pk: UUID
    transaction_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransactionPerformed(PaymeTransactionEvent):
    """Raised on the 1 -> 2 transition; dispatch and notify follow."""
    order_id: str = ""
    amount: int = 0


@dataclass
class TransactionAlreadyPerformed(PaymeTransactionEvent):
    """A repeated PerformTransaction on an already paid row."""


@dataclass
class TransactionCanceled(PaymeTransactionEvent):
    state: int = 0
    reason: int | None = None
