"""
Database configuration and setup
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_database_url, get_settings

settings = get_settings()


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=settings.database_echo,
            future=True,
        )

    return create_async_engine(
        database_url,
        echo=settings.database_echo,
        future=True,
        pool_pre_ping=True,  # Validate connections before use
        pool_recycle=3600,   # Recycle connections every hour
        connect_args={
            "server_settings": {
                "application_name": "marketplace_api",
            }
        }
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True
    )


engine = create_engine_for_url(get_database_url(async_driver=True))
AsyncSessionLocal = create_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all database models."""
    metadata = MetaData()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            # Only commit if there are pending changes
            if session.dirty or session.new or session.deleted:
                await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of writes as one atomic unit of work.

    Reads issued earlier on the session (for example by authentication
    dependencies) autobegin a transaction; that one is closed first so the
    block always owns a fresh transaction. Any exception raised inside the
    block rolls back every statement issued within it.

    Args:
        session: Database session shared by the request

    Yields:
        AsyncSession: The same session, inside an open transaction
    """
    if session.in_transaction():
        await session.commit()

    async with session.begin():
        yield session


async def init_database(bind: AsyncEngine = None) -> None:
    """Initialize database tables and seed reference data."""
    from app.models.role import seed_roles

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = create_session_factory(bind)
    async with session_factory() as session:
        await seed_roles(session)


async def close_database() -> None:
    """Close database connections."""
    await engine.dispose()
