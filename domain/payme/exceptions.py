"""
Payme protocol errors.

These are the only errors that cross the RPC boundary. Each carries the
provider code, the trilingual message and the caller's RPC id so the response
can echo it back.
"""
from __future__ import annotations

from typing import Any

from domain.common.exceptions import BusinessException
from shared.codes.payme_codes import PAYME_ERRORS


class PaymeError(BusinessException):
    name: str = ""

    def __init__(self, rpc_id: Any = None, *, data: Any = None) -> None:
        code, messages = PAYME_ERRORS[self.name]
        self.rpc_id = rpc_id
        self.data = data
        self.messages = dict(messages)
        super().__init__(
            code=code,
            message=messages["en"],
            error_type=self.name,
            details={"data": data} if data is not None else None,
        )

    def to_rpc(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": {
                    "uz": self.messages["uz"],
                    "ru": self.messages["ru"],
                    "en": self.messages["en"],
                },
                "data": self.data,
            },
            "id": self.rpc_id,
        }


class InvalidAmount(PaymeError):
    name = "InvalidAmount"


class CantDoOperation(PaymeError):
    name = "CantDoOperation"


class TransactionNotFound(PaymeError):
    name = "TransactionNotFound"


class AlreadyDone(PaymeError):
    name = "AlreadyDone"


class Pending(PaymeError):
    name = "Pending"


class InvalidAuthorization(PaymeError):
    name = "InvalidAuthorization"
