"""Domain-level business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for expected business failures."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class InvalidRequestException(BusinessException):
    def __init__(self, message: str, *, details: dict | None = None, field: str | None = None):
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message=message,
            error_type="InvalidRequest",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )
