"""
Payme transaction repository port.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .entity import PaymeTransaction


class PaymeTransactionRepository(ABC):
    """Storage contract for Payme transactions; the sole source of truth for the state machine."""

    @abstractmethod
    async def create(self, txn: PaymeTransaction) -> PaymeTransaction:
        """Insert a new transaction row"""
        pass

    @abstractmethod
    async def get_by_id(self, txn_id: UUID, *, for_update: bool = False) -> Optional[PaymeTransaction]:
        """Fetch by primary key, optionally taking a row write lock"""
        pass

    @abstractmethod
    async def get_by_transaction_id(
        self,
        transaction_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[PaymeTransaction]:
        """Fetch by the provider-assigned transaction id"""
        pass

    @abstractmethod
    async def get_by_account_ref(
        self,
        account_ref: str,
        *,
        for_update: bool = False,
    ) -> Optional[PaymeTransaction]:
        """Fetch by account reference: row id when it parses as a UUID, else internal order id"""
        pass

    @abstractmethod
    async def update(self, txn: PaymeTransaction) -> PaymeTransaction:
        """Persist all mutable fields of the transaction"""
        pass

    @abstractmethod
    async def list_by_create_time(self, start: int, end: int) -> List[PaymeTransaction]:
        """Bound transactions with ``start <= create_time <= end``"""
        pass

    @abstractmethod
    async def delete_pending_for_user(self, user_id: UUID) -> int:
        """Remove this user's still-pending transactions, returning the count"""
        pass

    @abstractmethod
    async def list_undispatched_paid(self, limit: int = 50) -> List[PaymeTransaction]:
        """Paid transactions that have no external order yet"""
        pass
