"""
Order routes
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from api.dependencies import get_order_service
from application.dtos.orders import CreateOrderRequest, OrderCreatedDTO
from application.services.order_service import OrderApplicationService
from core.response import Response, success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=Response[OrderCreatedDTO], status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CreateOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.create_order(body)
    return success_response(data=order, message="Order created")
