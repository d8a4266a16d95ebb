"""Async database engine, session factory, and dialect-aware insert helper."""

from collections.abc import AsyncGenerator

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    # SQLite (used for local runs and tests) does not take pool sizing options
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


engine = create_async_engine(
    settings.database_url,
    **_engine_kwargs(settings.database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session."""
    async with async_session_factory() as session:
        yield session


def insert_for(session: AsyncSession, model):
    """Return an INSERT construct that supports ON CONFLICT for the session's dialect.

    PostgreSQL is the production backend; SQLite backs local runs and the
    test suite. Both dialects expose on_conflict_do_nothing/do_update with
    the same signature.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
