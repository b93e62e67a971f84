"""
Order ORM model
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Numeric, String, Text, Uuid

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    status = Column(String(32), nullable=False, default="pending", index=True)
    payment_method = Column(String(32), nullable=False, default="")
    currency = Column(String(8), nullable=False, default="UZS")

    subtotal = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    bonus_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    notes = Column(Text, nullable=False, default="")
    # [{product_id, product_name, quantity, unit_price, line_total}]
    items = Column(JSON, nullable=False, default=list)
    placed_at = Column(DateTime(timezone=True), nullable=True)

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

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number={self.order_number}, status={self.status})>"
