"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks."""

    def dispatch_cash_order(self, order_id: str) -> None:
        celery_app.send_task("billz.dispatch_cash_order", kwargs={"order_id": order_id})

    def send_payment_success(
        self,
        *,
        order_ref: str,
        order_number: str,
        external_order_id: str,
        amount: str,
        currency: str,
    ) -> None:
        celery_app.send_task(
            "notifications.payment_success",
            kwargs={
                "order_ref": order_ref,
                "order_number": order_number,
                "external_order_id": external_order_id,
                "amount": amount,
                "currency": currency,
            },
        )

    def send_new_order(self, notice: Dict[str, Any]) -> None:
        celery_app.send_task("notifications.new_order", kwargs={"notice": notice})

