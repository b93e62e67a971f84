"""
Payme merchant API contract: transaction states, error codes and messages.

The numeric values are fixed by the provider and must never be renumbered.
"""
from __future__ import annotations

from enum import IntEnum


class TransactionState(IntEnum):
    UNINITIALIZED = 0
    PENDING = 1
    PAID = 2
    PENDING_CANCELED = -1
    PAID_CANCELED = -2


# Cancel reason used when a pending transaction outlives its window
CANCEL_REASON_TIMEOUT = 4


# name -> (code, {lang: message}); Pending intentionally shares -31050
PAYME_ERRORS: dict[str, tuple[int, dict[str, str]]] = {
    "InvalidAmount": (
        -31001,
        {
            "uz": "Noto'g'ri summa",
            "ru": "Недопустимая сумма",
            "en": "Invalid amount",
        },
    ),
    "CantDoOperation": (
        -31008,
        {
            "uz": "Biz operatsiyani bajara olmaymiz",
            "ru": "Мы не можем сделать операцию",
            "en": "We can't do operation",
        },
    ),
    "TransactionNotFound": (
        -31050,
        {
            "uz": "Tranzaktsiya topilmadi",
            "ru": "Транзакция не найдена",
            "en": "Transaction not found",
        },
    ),
    "AlreadyDone": (
        -31060,
        {
            "uz": "Mahsulot uchun to'lov qilingan",
            "ru": "Оплачено за товар",
            "en": "Paid for the product",
        },
    ),
    "Pending": (
        -31050,
        {
            "uz": "Mahsulot uchun to'lov kutilayapti",
            "ru": "Ожидается оплата товар",
            "en": "Payment for the product is pending",
        },
    ),
    "InvalidAuthorization": (
        -32504,
        {
            "uz": "Avtorizatsiya yaroqsiz",
            "ru": "Авторизация недействительна",
            "en": "Authorization invalid",
        },
    ),
}
