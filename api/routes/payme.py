"""
Payme merchant API routes.

``/pay`` speaks the provider's JSON-RPC dialect: successes and protocol errors
are both HTTP 200 with ``{"result"|"error", "id"}``.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.dependencies import get_checkout_service, get_payme_service, verify_payme_authorization
from application.dtos.payme import CheckoutRequest, CheckoutResult, PaymeRPCRequest
from application.services.checkout_service import CheckoutApplicationService
from application.services.payme_service import PaymeApplicationService


router = APIRouter(prefix="/payme", tags=["Payme"])


@router.post("/pay", dependencies=[Depends(verify_payme_authorization)])
async def payme_rpc(
    body: PaymeRPCRequest,
    service: PaymeApplicationService = Depends(get_payme_service),
) -> Dict[str, Any]:
    return await service.handle(body.method, body.params, body.id)


@router.post("/checkout", response_model=CheckoutResult)
async def create_checkout(
    body: CheckoutRequest,
    service: CheckoutApplicationService = Depends(get_checkout_service),
) -> CheckoutResult:
    """Open a Payme checkout for the storefront and return the redirect URL"""
    return await service.create_checkout(body)
