"""
Order repository - SQLAlchemy implementation
"""
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.order.entity import Order, OrderItem
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from shared.codes import BusinessCode


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            user_id=model.user_id,
            payment_method=model.payment_method,
            currency=model.currency,
            items=[OrderItem(**item) for item in (model.items or [])],
            subtotal=Decimal(str(model.subtotal)),
            bonus_amount=Decimal(str(model.bonus_amount)),
            total_amount=Decimal(str(model.total_amount)),
            notes=model.notes or "",
            status=model.status,
            placed_at=model.placed_at,
            billz_order_id=model.billz_order_id or "",
            billz_order_number=model.billz_order_number or "",
            billz_order_type=model.billz_order_type or "",
            billz_synced_at=model.billz_synced_at,
            billz_sync_error=model.billz_sync_error or "",
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _dump_items(items):
        return [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "line_total": str(item.line_total),
            }
            for item in items
        ]

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            payment_method=order.payment_method,
            currency=order.currency,
            subtotal=order.subtotal,
            bonus_amount=order.bonus_amount,
            total_amount=order.total_amount,
            notes=order.notes,
            items=self._dump_items(order.items),
            placed_at=order.placed_at,
        )
        try:
            self.session.add(db_order)
            await self.session.flush()
        except IntegrityError:
            logger.warning("order_create_conflict", order_number=order.order_number)
            raise BusinessException(
                code=BusinessCode.BUSINESS_ERROR,
                message=f"Order number {order.order_number} already exists",
                error_type="OrderConflict",
            )
        await self.session.refresh(db_order)
        logger.info(
            "order_created",
            order_id=str(db_order.id),
            order_number=db_order.order_number,
            payment_method=db_order.payment_method,
        )
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: UUID) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order.id))
        db_order = result.scalar_one_or_none()
        if not db_order:
            raise ValueError(f"Order with id {order.id} not found")

        db_order.status = order.status
        db_order.billz_order_id = order.billz_order_id
        db_order.billz_order_number = order.billz_order_number
        db_order.billz_order_type = order.billz_order_type
        db_order.billz_synced_at = order.billz_synced_at
        db_order.billz_sync_error = order.billz_sync_error

        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)
