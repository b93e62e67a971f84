"""
Celery-backed PaymentNotifier: every notification becomes a task on the
``low`` queue. Enqueue failures are logged and dropped.
"""
from __future__ import annotations

from typing import Optional

from application.ports.notifier import Amount, NewOrderNotice
from core.logging_config import get_logger

from .utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryPaymentNotifier:

    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self._dispatcher = dispatcher or TaskDispatcher()

    def notify_payment_success(
        self,
        order_ref: str,
        order_number: str,
        external_order_id: str,
        amount: Amount,
        currency: str,
    ) -> None:
        try:
            self._dispatcher.send_payment_success(
                order_ref=order_ref,
                order_number=order_number,
                external_order_id=external_order_id,
                amount=str(amount),
                currency=currency,
            )
        except Exception as exc:
            logger.error(
                "payment_notification_enqueue_failed",
                order_ref=order_ref,
                external_order_id=external_order_id,
                error=str(exc),
            )

    def notify_new_order(self, notice: NewOrderNotice) -> None:
        try:
            self._dispatcher.send_new_order(notice.model_dump(mode="json"))
        except Exception as exc:
            logger.error("new_order_notification_enqueue_failed", order_id=notice.order_id, error=str(exc))
