"""Database engine and per-request sessions."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def async_db_url(db_url: str) -> str:
    """Point a configured PostgreSQL URL at the asyncpg driver."""
    for prefix in ("postgresql+psycopg://", "postgresql://", "postgres://"):
        if db_url.startswith(prefix):
            return "postgresql+asyncpg://" + db_url[len(prefix) :]
    return db_url


@lru_cache
def get_async_engine() -> AsyncEngine:
    """Process-wide async engine; the pool is shared by every request."""
    settings = get_settings()
    if not settings.db_url:
        raise ValueError("DB_URL not configured")

    return create_async_engine(
        async_db_url(settings.db_url),
        echo=settings.env == "dev",
        pool_pre_ping=True,
    )


@lru_cache
def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# Dependency for FastAPI
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request.

    The session is the transaction boundary of a redaction: the coordinator
    commits it, the route rolls it back when a storage phase failed.
    """
    async with get_async_session_factory()() as session:
        yield session
