"""
Payme transaction ORM model.
Persistence detail only; state rules live in domain.payme.entity.PaymeTransaction.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, SmallInteger, String, Text, Uuid, text

from .base import Base


class PaymeTransactionModel(Base):
    __tablename__ = "payme_transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    transaction_id = Column(String(64), nullable=False, default="", comment="Payme transaction id")
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    order_id = Column(String(100), nullable=False, default="", index=True, comment="internal order reference")
    order_details = Column(Text, nullable=True, comment="raw order JSON, possibly double-encoded")

    status = Column(SmallInteger, nullable=False, default=0, index=True, comment="0/1/2/-1/-2")
    amount = Column(BigInteger, nullable=False, comment="major currency units")

    create_time = Column(BigInteger, nullable=False, default=0, comment="epoch ms")
    perform_time = Column(BigInteger, nullable=False, default=0, comment="epoch ms")
    cancel_time = Column(BigInteger, nullable=False, default=0, comment="epoch ms")
    reason = Column(Integer, nullable=True)

    provider = Column(String(32), nullable=False, default="payme", index=True)
    prepare_id = Column(String(64), nullable=False, default="")

    billz_order_id = Column(String(64), nullable=False, default="")
    billz_order_number = Column(String(64), nullable=False, default="")
    billz_order_type = Column(String(64), nullable=False, default="")
    billz_synced_at = Column(DateTime(timezone=True), nullable=True)
    billz_sync_error = Column(Text, nullable=False, default="")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_payme_provider_create_time", "provider", "create_time"),
        # unique once bound; unbound checkout rows all carry ""
        Index(
            "uq_payme_transactions_transaction_id",
            "transaction_id",
            unique=True,
            postgresql_where=text("transaction_id <> ''"),
            sqlite_where=text("transaction_id <> ''"),
        ),
    )

    def __repr__(self):
        return (
            f"<PaymeTransactionModel(id={self.id}, transaction_id={self.transaction_id}, "
            f"status={self.status})>"
        )
