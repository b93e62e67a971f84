"""
Telegram Bot API client for admin chat notifications.

Messages are HTML formatted. Transport errors and 5xx answers are retried
with exponential backoff; anything else is raised to the calling task.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_DOWN
from html import escape
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from application.ports.notifier import NewOrderNotice
from core.logging_config import get_logger
from core.settings import TelegramSettings


logger = get_logger(__name__)
_std_logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "UZS"


class TelegramDeliveryError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TelegramServerError(TelegramDeliveryError):
    """5xx from the Bot API; safe to send again"""


def format_price(amount: Any, currency: str = "") -> str:
    """
    Integer part with comma thousand separators plus currency.

    >>> format_price(1500000, "UZS")
    '1,500,000 UZS'
    """
    value = Decimal(str(amount or 0)).to_integral_value(rounding=ROUND_DOWN)
    return f"{int(value):,} {currency or DEFAULT_CURRENCY}"


def render_new_order(notice: NewOrderNotice) -> str:
    lines = []
    for index, item in enumerate(notice.items, start=1):
        currency = item.currency or notice.currency
        lines.append(
            f"{index}. <b>{escape(item.name)}</b>\n"
            f"   {item.quantity} x {format_price(item.price, currency)} = "
            f"{format_price(item.price * item.quantity, currency)}"
        )

    payment_text = "Payme" if notice.payment_method == "payme" else "Наличными"
    status_text = "✅ To'langan" if notice.status == "paid" else "⏳ Kutilmoqda"

    message = (
        "<b>🛒 YANGI BUYURTMA!</b>\n"
        f"<b>📋 Buyurtma:</b> {escape(notice.order_number)}\n"
        f"<b>👤 Mijoz:</b> {escape(notice.user_name or 'Не указано')}\n"
        f"<b>📞 Telefon:</b> {escape(notice.user_phone or 'Не указано')}\n"
        "<b>📦 Mahsulotlar:</b>\n"
        + "\n".join(lines) + "\n"
        f"<b>💰 Jami:</b> {format_price(notice.total_amount, notice.currency)}\n"
        f"<b>💳 To'lov:</b> {payment_text}\n"
        f"<b>📍 Status:</b> {status_text}\n"
        "━━━━━━━━━━━━━━━━━━"
    )
    return message.strip()


def render_payment_success(
    order_number: str,
    external_order_id: str,
    amount: Any,
    currency: str,
    signature: str = "",
) -> str:
    message = (
        "<b>✅ TO'LOV QABUL QILINDI!</b>\n"
        f"<b>📋 Buyurtma:</b> {escape(order_number)}\n"
        f"<b>🏪 Billz Order:</b> {escape(external_order_id)}\n"
        f"<b>💰 Summa:</b> {format_price(amount, currency)}\n"
        "<b>💳 Usul:</b> Payme\n"
        "━━━━━━━━━━━━━━━━━━"
    )
    if signature:
        message += f"\n<i>{escape(signature)}</i>"
    return message.strip()


class TelegramNotifier:
    """Sends HTML messages to the configured admin chat"""

    def __init__(self, settings: TelegramSettings, *, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._external_client = http_client is not None
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._external_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.bot_token and self.settings.admin_chat_id)

    async def send_to_admin(self, text: str) -> bool:
        """Returns False when the bot or the admin chat is not configured."""
        if not self.enabled:
            logger.warning("telegram_not_configured")
            return False
        await self.send_message(str(self.settings.admin_chat_id), text)
        return True

    async def send_message(self, chat_id: str, text: str) -> None:
        url = f"{self.settings.api_base.rstrip('/')}/bot{self.settings.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.settings.retry.max)),
            wait=wait_exponential(
                multiplier=self.settings.retry.base_backoff,
                min=self.settings.retry.base_backoff,
                max=self.settings.retry.base_backoff * 8,
            ),
            retry=retry_if_exception_type((httpx.TransportError, TelegramServerError)),
            before_sleep=before_sleep_log(_std_logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                response = await self.client.post(url, json=payload)
                if response.status_code >= 500:
                    raise TelegramServerError(
                        f"telegram returned status {response.status_code}",
                        status_code=response.status_code,
                    )
                if response.status_code != 200:
                    raise TelegramDeliveryError(
                        f"telegram returned status {response.status_code}",
                        status_code=response.status_code,
                    )
        logger.info("telegram_message_sent", chat_id=chat_id)

    async def notify_new_order(self, notice: NewOrderNotice) -> bool:
        return await self.send_to_admin(render_new_order(notice))

    async def notify_payment_success(
        self,
        order_number: str,
        external_order_id: str,
        amount: Any,
        currency: str,
    ) -> bool:
        return await self.send_to_admin(
            render_payment_success(
                order_number,
                external_order_id,
                amount,
                currency,
                signature=self.settings.shop_signature,
            )
        )
