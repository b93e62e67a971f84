"""
Integration settings (Payme, Billz, Telegram) using pydantic-settings v2 with
nested env keys, e.g. ``PAYME__MERCHANT_KEY`` or ``BILLZ__SECRET_KEY``.

Kept apart from core.config.Settings so integration credentials can be
reloaded in tests without touching application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymeSettings(BaseModel):
    merchant_id: str = ""
    merchant_key: str = ""
    pending_timeout_minutes: int = 12
    checkout_url: str = "https://checkout.payme.uz"
    currency: str = "UZS"

    @property
    def pending_timeout_ms(self) -> int:
        return self.pending_timeout_minutes * 60 * 1000


class BillzSettings(BaseModel):
    base_url: str = "https://api-admin.billz.ai/v2"
    auth_url: str = "https://api-admin.billz.ai/v1/auth/login"
    secret_key: Optional[str] = None
    timeout: float = 15.0
    token_leeway_seconds: int = 30
    default_token_ttl_seconds: int = 300
    shop_id: str = "29ce1934-120f-459a-8046-8bfa89529a3c"
    cashbox_id: str = "83cdf361-cb50-48ce-a56f-01c8068bf63b"
    payment_type_id: str = "6042429f-0d4c-40b7-9ee8-55c115865146"
    response_channel: str = "HTTP"
    sync_error_max_length: int = 1024
    redispatch_batch_size: int = 50


class TelegramRetry(BaseModel):
    max: int = 3
    base_backoff: float = 0.5


class TelegramSettings(BaseModel):
    bot_token: Optional[str] = None
    admin_chat_id: Optional[str] = None
    api_base: str = "https://api.telegram.org"
    timeout: float = 10.0
    retry: TelegramRetry = Field(default_factory=TelegramRetry)
    shop_signature: str = "Shafran Parfumery"


class PaymentSettings(BaseSettings):
    payme: PaymeSettings = Field(default_factory=PaymeSettings)
    billz: BillzSettings = Field(default_factory=BillzSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
