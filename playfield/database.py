"""
playfield/database.py
Async database configuration and transaction helpers
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from playfield.config import settings
from playfield.orm.base import Base
import playfield.orm  # noqa: F401  registers every model on Base.metadata

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def build_engine(database_url: str):
    """Create an async engine with pool settings suited to the backend."""
    if "sqlite" in database_url.lower():
        # busy timeout lets concurrent writers queue instead of failing fast
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            pool_pre_ping=True,
            connect_args={"timeout": 30.0},
        )
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_sessionmaker(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one transaction.

    Commits when the block finishes, rolls back and re-raises on any error,
    so a multi-step operation is either fully written or not at all.

    A rollback expires every instance loaded in the session; callers that
    keep using objects after a failed block must refresh or re-fetch them.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def init_db():
    """Create all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_db():
    """Dispose of the engine connection pool."""
    await engine.dispose()
    logger.info("Database connections closed")
