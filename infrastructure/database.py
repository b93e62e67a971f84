"""
Database engine and session factory
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from contextlib import asynccontextmanager
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool
from typing import AsyncIterator

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL names an async driver"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in DATABASE__URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


engine = create_async_engine(
    _build_async_url(settings.database.url),
    echo=settings.database.echo,
    future=True
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """Create all tables from the ORM metadata (development and tests)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def isolated_session_factory() -> AsyncIterator[async_sessionmaker]:
    """
    Session factory on a throwaway engine.

    Celery tasks run each job under a fresh event loop (``asyncio.run``); pooled
    asyncpg connections cannot cross loops, so tasks get their own engine.
    """
    task_engine = create_async_engine(
        _build_async_url(settings.database.url),
        echo=settings.database.echo,
        poolclass=NullPool,
    )
    try:
        yield async_sessionmaker(bind=task_engine, expire_on_commit=False)
    finally:
        await task_engine.dispose()
