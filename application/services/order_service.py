"""
Order application service - order placement and the direct (cash) Billz
dispatch path.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from application.dtos.billz import BillzOrderItem, BillzOrderPayload, BillzOrderResult
from application.dtos.orders import CreateOrderRequest, OrderCreatedDTO
from application.ports.notifier import NewOrderNotice, NullNotifier, OrderLineNotice, PaymentNotifier
from application.ports.tasks import BackgroundTasks
from application.services.billz_dispatch_service import BillzDispatchService, truncate_sync_error
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderItem


logger = get_logger(__name__)


def generate_order_number() -> str:
    return f"#{time.time_ns() % 1_000_000_000}"


class OrderApplicationService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        dispatcher: Optional[BillzDispatchService] = None,
        tasks: Optional[BackgroundTasks] = None,
        notifier: Optional[PaymentNotifier] = None,
    ):
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._tasks = tasks
        self._notifier = notifier or NullNotifier()

    async def create_order(self, req: CreateOrderRequest) -> OrderCreatedDTO:
        order = Order.place(
            order_number=generate_order_number(),
            user_id=req.user_id,
            payment_method=req.payment_method,
            currency=req.currency,
            items=[
                OrderItem(
                    product_id=p.product_id,
                    product_name=p.product_name,
                    quantity=p.quantity,
                    unit_price=p.unit_price,
                    line_total=p.line_total,
                )
                for p in req.products
            ],
            total_amount=req.total_amount,
            bonus_amount=req.bonus_amount,
            notes=req.notes,
        )
        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(order)

        # payme orders are dispatched from PerformTransaction instead
        if order.is_cash() and self._tasks is not None:
            try:
                self._tasks.dispatch_cash_order(str(order.id))
            except Exception as exc:
                logger.error("cash_order_enqueue_failed", order_id=str(order.id), error=str(exc))

        return OrderCreatedDTO(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            placed_at=order.placed_at,
            total=order.total_amount,
            currency=order.currency,
        )

    async def dispatch_cash_order(self, order_id: UUID) -> Optional[BillzOrderResult]:
        """
        Push a cash order to Billz and record the outcome on the order row.

        Not retried on failure: a retry would open a second Billz draft.
        """
        if self._dispatcher is None:
            raise RuntimeError("Billz dispatcher is not configured")

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(str(order_id))
        if order.billz_order_id:
            logger.info("cash_order_already_dispatched", order_id=str(order.id))
            return None

        payload = BillzOrderPayload(
            items=[BillzOrderItem(product_id=i.product_id, quantity=i.quantity) for i in order.items],
            customer_id="",
            payment_method=order.payment_method,
            total_amount=order.total_amount,
            comment=order.notes,
        )

        result: Optional[BillzOrderResult] = None
        now = datetime.now(timezone.utc)
        try:
            result = await self._dispatcher.dispatch_direct(payload)
        except Exception as exc:
            logger.warning("cash_order_dispatch_failed", order_id=str(order.id), error=str(exc))
            order.record_dispatch_error(truncate_sync_error(exc), now)
        else:
            order.record_dispatch(result.order_id, result.order_number, result.order_type, now)

        async with self._uow_factory() as uow:
            await uow.order_repository.update(order)

        if result is not None:
            logger.info("cash_order_dispatched", order_id=str(order.id), billz_order_id=result.order_id)
            self._notifier.notify_new_order(
                NewOrderNotice(
                    order_id=str(order.id),
                    order_number=result.order_number or order.order_number,
                    items=[
                        OrderLineNotice(
                            name=i.product_name,
                            quantity=i.quantity,
                            price=i.unit_price,
                            currency=order.currency,
                        )
                        for i in order.items
                    ],
                    total_amount=order.total_amount,
                    currency=order.currency,
                    payment_method=order.payment_method,
                    status="pending",
                )
            )
        return result
