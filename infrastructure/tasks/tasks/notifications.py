"""Admin chat notifications"""
from __future__ import annotations

import asyncio
from typing import Any, Dict

import httpx
from celery import shared_task

from application.ports.notifier import NewOrderNotice
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.telegram import TelegramNotifier, TelegramServerError

from ..utils.base_task import BaseTask

logger = get_logger(__name__)

# 4xx answers are final; only transport errors and 5xx are retried
RETRYABLE_ERRORS = (httpx.TransportError, TelegramServerError)


@shared_task(
    name="notifications.payment_success",
    bind=True,
    base=BaseTask,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def send_payment_success(
    self,
    order_ref: str,
    order_number: str,
    external_order_id: str,
    amount: str,
    currency: str,
) -> bool:

    async def _run() -> bool:
        async with TelegramNotifier(payment_settings.telegram) as notifier:
            return await notifier.notify_payment_success(order_number, external_order_id, amount, currency)

    sent = asyncio.run(_run())
    logger.info("payment_success_notified", order_ref=order_ref, sent=sent)
    return sent


@shared_task(
    name="notifications.new_order",
    bind=True,
    base=BaseTask,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def send_new_order(self, notice: Dict[str, Any]) -> bool:
    parsed = NewOrderNotice.model_validate(notice)

    async def _run() -> bool:
        async with TelegramNotifier(payment_settings.telegram) as notifier:
            return await notifier.notify_new_order(parsed)

    sent = asyncio.run(_run())
    logger.info("new_order_notified", order_id=parsed.order_id, sent=sent)
    return sent
