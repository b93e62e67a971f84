"""
Background work port: lets application services schedule follow-up work
without importing Celery.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BackgroundTasks(Protocol):

    def dispatch_cash_order(self, order_id: str) -> None: ...
