from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)

from ..config.settings import Settings, get_settings


def build_engine(settings: Settings | None = None, **overrides) -> AsyncEngine:
    """
    Create the AsyncEngine for `settings.DATABASE_URL`.

    Nothing is created at import time; the caller owns the engine and must
    `await engine.dispose()` on shutdown.
    """
    settings = settings or get_settings()
    options = {
        "echo": settings.SQLALCHEMY_ECHO,
        "pool_pre_ping": True,  # connection health checks
    }
    options.update(overrides)
    return create_async_engine(settings.DATABASE_URL, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps loaded attributes usable after commit
    # without triggering lazy IO outside the greenlet context.
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit the session when the block succeeds, roll it back otherwise.

    BaseException is caught on purpose so that a cancelled task
    (asyncio.CancelledError) leaves no half-written state behind.

    Usage:
        async with unit_of_work(self.db):
            await repo.create(...)
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
