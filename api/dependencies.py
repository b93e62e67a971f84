"""
API dependencies - Payme authorization and service providers
"""
import base64
import binascii
import json
from typing import Any, Optional

from fastapi import Depends, Header, Request

from application.services.checkout_service import CheckoutApplicationService
from application.services.order_service import OrderApplicationService
from application.services.payme_service import PaymeApplicationService
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payme.exceptions import InvalidAuthorization


logger = get_logger(__name__)


def get_merchant_key() -> str:
    return payment_settings.payme.merchant_key


async def _peek_rpc_id(request: Request) -> Any:
    """RPC id from the raw body, so auth errors can echo it back"""
    try:
        body = json.loads(await request.body() or b"{}")
    except ValueError:
        return None
    return body.get("id") if isinstance(body, dict) else None


def credential_matches(authorization: Optional[str], merchant_key: str) -> bool:
    """
    ``Authorization: <scheme> <base64 credential>``; the decoded credential
    must contain the merchant key. An unconfigured key never matches.
    """
    if not merchant_key or not authorization:
        return False
    _, _, encoded = authorization.strip().partition(" ")
    if not encoded:
        return False
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    return merchant_key in decoded


async def verify_payme_authorization(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    merchant_key: str = Depends(get_merchant_key),
) -> None:
    if credential_matches(authorization, merchant_key):
        return
    rpc_id = await _peek_rpc_id(request)
    logger.warning("payme_authorization_failed", rpc_id=rpc_id, header_present=bool(authorization))
    raise InvalidAuthorization(rpc_id)


def get_payme_service(request: Request) -> PaymeApplicationService:
    return request.app.state.payme_service


def get_checkout_service(request: Request) -> CheckoutApplicationService:
    return request.app.state.checkout_service


def get_order_service(request: Request) -> OrderApplicationService:
    return request.app.state.order_service
