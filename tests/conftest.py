"""Pytest bootstrap configuration.

Environment is set before any application module is imported, since the
settings objects are built at import time.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")

import json
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from domain.payme.entity import PaymeTransaction
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class FakeClock:
    """Settable epoch-millisecond clock"""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def factory(readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return factory


@pytest.fixture
def clock():
    return FakeClock()


def _order_details(
    items: Optional[list] = None,
    *,
    user_id: str = "cust-1",
    amount: Any = 150000,
    comment: str = "",
    payment_method: str = "payme",
) -> str:
    payload = {
        "items": items if items is not None else [{"productId": "p-1", "quantity": 2}],
        "checkout": {"paymentMethod": payment_method, "comment": comment},
        "totals": {"amount": amount},
        "user": {"id": user_id},
    }
    return json.dumps(payload)


@pytest.fixture
def make_details():
    return _order_details


@pytest.fixture
def seed_checkout(uow_factory):
    """Insert a state-0 checkout row and return it"""

    async def _seed(
        *,
        amount: int = 150000,
        order_id: str = "ORD-1",
        details: Optional[str] = None,
        **fields,
    ) -> PaymeTransaction:
        txn = PaymeTransaction(
            id=None,
            amount=amount,
            order_id=order_id,
            order_details=details if details is not None else _order_details(),
            **fields,
        )
        async with uow_factory() as uow:
            return await uow.payme_repository.create(txn)

    return _seed
