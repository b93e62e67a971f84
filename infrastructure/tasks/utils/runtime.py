"""Per-task wiring of the Billz dispatch stack."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Tuple

from application.services.billz_dispatch_service import BillzDispatchService
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import isolated_session_factory
from infrastructure.external.billz import BillzClient, BillzOrderGateway, TokenCache
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from ..notifier import CeleryPaymentNotifier


UowFactory = Callable[..., AbstractUnitOfWork]


@asynccontextmanager
async def billz_dispatch_stack() -> AsyncIterator[Tuple[UowFactory, BillzDispatchService]]:
    """
    Yield ``(uow_factory, dispatch_service)`` bound to the current event loop.

    The token cache lives only for one task run; its lock must not outlive
    the loop created by ``asyncio.run``.
    """
    billz = payment_settings.billz
    async with isolated_session_factory() as session_factory:

        def uow_factory(readonly: bool = False) -> SQLAlchemyUnitOfWork:
            return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

        client = BillzClient(billz, TokenCache(leeway_seconds=billz.token_leeway_seconds))
        try:
            service = BillzDispatchService(
                uow_factory,
                BillzOrderGateway(client, billz),
                notifier=CeleryPaymentNotifier(),
                currency=payment_settings.payme.currency,
                error_max_length=billz.sync_error_max_length,
            )
            yield uow_factory, service
        finally:
            await client.close()
