"""Billz dispatch Celery tasks"""
from __future__ import annotations

import asyncio
from typing import Optional
from uuid import UUID

from celery import shared_task

from application.services.order_service import OrderApplicationService
from core.logging_config import get_logger
from core.settings import payment_settings

from ..notifier import CeleryPaymentNotifier
from ..utils.base_task import BaseTask
from ..utils.runtime import billz_dispatch_stack

logger = get_logger(__name__)


@shared_task(name="billz.dispatch_cash_order", bind=True, base=BaseTask)
def dispatch_cash_order(self, order_id: str) -> dict:
    """
    Push a cash order to Billz.

    Never auto-retried: each attempt opens a new Billz draft order. The
    outcome is stored on the order row either way.
    """

    async def _run():
        async with billz_dispatch_stack() as (uow_factory, dispatcher):
            service = OrderApplicationService(
                uow_factory,
                dispatcher=dispatcher,
                notifier=CeleryPaymentNotifier(),
            )
            return await service.dispatch_cash_order(UUID(order_id))

    result = asyncio.run(_run())
    if result is None:
        return {"order_id": order_id, "dispatched": False}
    return {"order_id": order_id, "dispatched": True, "billz_order_id": result.order_id}


@shared_task(
    name="billz.redispatch_unsynced",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def redispatch_unsynced(self, limit: Optional[int] = None) -> dict:
    """Retry Billz dispatch for paid Payme transactions with no Billz order."""
    batch = limit or payment_settings.billz.redispatch_batch_size

    async def _run():
        async with billz_dispatch_stack() as (_, dispatcher):
            return await dispatcher.redispatch_unsynced(batch)

    summary = asyncio.run(_run())
    logger.info("billz_redispatch_task_done", **summary)
    return summary
