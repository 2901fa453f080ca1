"""Async database session and engine (SQLAlchemy 2.0 + asyncpg)."""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all models."""

    pass


def make_engine(database_url: str | None = None) -> AsyncEngine:
    """Async engine; same URL as Alembic (postgresql+asyncpg://...)."""
    settings = get_settings()
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.app_env == "local",
        future=True,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
