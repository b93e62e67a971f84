"""
Payme transaction repository - SQLAlchemy implementation
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payme.entity import PAYME_PROVIDER, PaymeTransaction
from domain.payme.exceptions import CantDoOperation
from domain.payme.repository import PaymeTransactionRepository
from infrastructure.models.payme_transaction import PaymeTransactionModel
from shared.codes.payme_codes import TransactionState


logger = get_logger(__name__)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class SQLAlchemyPaymeTransactionRepository(PaymeTransactionRepository):
    """Payme transaction storage; every query is scoped to the payme provider"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymeTransactionModel) -> PaymeTransaction:
        return PaymeTransaction(
            id=model.id,
            amount=int(model.amount),
            status=int(model.status),
            transaction_id=model.transaction_id or "",
            user_id=model.user_id,
            order_id=model.order_id or "",
            order_details=model.order_details,
            create_time=int(model.create_time or 0),
            perform_time=int(model.perform_time or 0),
            cancel_time=int(model.cancel_time or 0),
            reason=model.reason,
            provider=model.provider,
            prepare_id=model.prepare_id or "",
            billz_order_id=model.billz_order_id or "",
            billz_order_number=model.billz_order_number or "",
            billz_order_type=model.billz_order_type or "",
            billz_synced_at=model.billz_synced_at,
            billz_sync_error=model.billz_sync_error or "",
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PaymeTransaction) -> PaymeTransactionModel:
        return PaymeTransactionModel(
            id=entity.id,
            transaction_id=entity.transaction_id,
            user_id=entity.user_id,
            order_id=entity.order_id,
            order_details=entity.order_details,
            status=int(entity.status),
            amount=entity.amount,
            create_time=entity.create_time,
            perform_time=entity.perform_time,
            cancel_time=entity.cancel_time,
            reason=entity.reason,
            provider=entity.provider or PAYME_PROVIDER,
            prepare_id=entity.prepare_id,
            billz_order_id=entity.billz_order_id,
            billz_order_number=entity.billz_order_number,
            billz_order_type=entity.billz_order_type,
            billz_synced_at=entity.billz_synced_at,
            billz_sync_error=entity.billz_sync_error,
        )

    def _scoped(self, for_update: bool = False):
        stmt = select(PaymeTransactionModel).where(PaymeTransactionModel.provider == PAYME_PROVIDER)
        if for_update:
            # reload attributes another transaction changed while we waited on the lock
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return stmt

    async def _get_model(self, txn_id: UUID, *, for_update: bool = False) -> Optional[PaymeTransactionModel]:
        result = await self.session.execute(
            self._scoped(for_update).where(PaymeTransactionModel.id == txn_id)
        )
        return result.scalar_one_or_none()

    async def create(self, txn: PaymeTransaction) -> PaymeTransaction:
        db_txn = self._to_model(txn)
        self.session.add(db_txn)
        await self.session.flush()
        await self.session.refresh(db_txn)
        logger.info(
            "payme_transaction_created",
            txn_pk=str(db_txn.id),
            order_id=db_txn.order_id,
            amount=db_txn.amount,
        )
        return self._to_entity(db_txn)

    async def get_by_id(self, txn_id: UUID, *, for_update: bool = False) -> Optional[PaymeTransaction]:
        db_txn = await self._get_model(txn_id, for_update=for_update)
        return self._to_entity(db_txn) if db_txn else None

    async def get_by_transaction_id(
        self,
        transaction_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[PaymeTransaction]:
        if not transaction_id:
            return None
        result = await self.session.execute(
            self._scoped(for_update)
            .where(PaymeTransactionModel.transaction_id == transaction_id)
            .limit(1)
        )
        db_txn = result.scalar_one_or_none()
        return self._to_entity(db_txn) if db_txn else None

    async def get_by_account_ref(
        self,
        account_ref: str,
        *,
        for_update: bool = False,
    ) -> Optional[PaymeTransaction]:
        if not account_ref:
            return None
        parsed = _parse_uuid(account_ref)
        if parsed is not None:
            db_txn = await self._get_model(parsed, for_update=for_update)
            if db_txn is not None:
                return self._to_entity(db_txn)

        # several checkouts may share an order reference; the newest one wins
        result = await self.session.execute(
            self._scoped(for_update)
            .where(PaymeTransactionModel.order_id == str(account_ref))
            .order_by(PaymeTransactionModel.created_at.desc())
            .limit(1)
        )
        db_txn = result.scalars().first()
        return self._to_entity(db_txn) if db_txn else None

    async def update(self, txn: PaymeTransaction) -> PaymeTransaction:
        db_txn = await self._get_model(txn.id)
        if not db_txn:
            raise ValueError(f"Payme transaction {txn.id} not found")

        db_txn.transaction_id = txn.transaction_id
        db_txn.status = int(txn.status)
        db_txn.create_time = txn.create_time
        db_txn.perform_time = txn.perform_time
        db_txn.cancel_time = txn.cancel_time
        db_txn.reason = txn.reason
        db_txn.billz_order_id = txn.billz_order_id
        db_txn.billz_order_number = txn.billz_order_number
        db_txn.billz_order_type = txn.billz_order_type
        db_txn.billz_synced_at = txn.billz_synced_at
        db_txn.billz_sync_error = txn.billz_sync_error

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            if "transaction_id" in str(e).lower():
                logger.warning(
                    "payme_transaction_id_conflict",
                    txn_pk=str(txn.id),
                    transaction_id=txn.transaction_id,
                )
                raise CantDoOperation(data="transaction_id") from e
            raise
        await self.session.refresh(db_txn)

        logger.info(
            "payme_transaction_updated",
            txn_pk=str(db_txn.id),
            transaction_id=db_txn.transaction_id,
            state=db_txn.status,
        )
        return self._to_entity(db_txn)

    async def list_by_create_time(self, start: int, end: int) -> List[PaymeTransaction]:
        result = await self.session.execute(
            self._scoped()
            .where(
                PaymeTransactionModel.transaction_id != "",
                PaymeTransactionModel.create_time >= start,
                PaymeTransactionModel.create_time <= end,
            )
            .order_by(PaymeTransactionModel.create_time.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def delete_pending_for_user(self, user_id: UUID) -> int:
        result = await self.session.execute(
            delete(PaymeTransactionModel).where(
                PaymeTransactionModel.provider == PAYME_PROVIDER,
                PaymeTransactionModel.user_id == user_id,
                PaymeTransactionModel.status == int(TransactionState.PENDING),
            )
        )
        await self.session.flush()
        deleted = result.rowcount or 0
        if deleted:
            logger.info("payme_pending_checkouts_deleted", user_id=str(user_id), count=deleted)
        return deleted

    async def list_undispatched_paid(self, limit: int = 50) -> List[PaymeTransaction]:
        result = await self.session.execute(
            self._scoped()
            .where(
                PaymeTransactionModel.status == int(TransactionState.PAID),
                PaymeTransactionModel.billz_order_id == "",
            )
            .order_by(PaymeTransactionModel.perform_time.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
