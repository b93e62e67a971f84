"""Telegram Bot API notifier."""
from .client import (
    TelegramDeliveryError,
    TelegramNotifier,
    TelegramServerError,
    format_price,
    render_new_order,
    render_payment_success,
)

__all__ = [
    "TelegramDeliveryError",
    "TelegramNotifier",
    "TelegramServerError",
    "format_price",
    "render_new_order",
    "render_payment_success",
]
