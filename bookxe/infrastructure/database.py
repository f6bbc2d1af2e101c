"""Database configuration and session management.

Provides async SQLAlchemy engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from bookxe.infrastructure.config import settings

# Base class for models
Base = declarative_base()


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create the async engine.

    Args:
        url: Database URL, defaults to settings.database_url.

    Returns:
        Configured AsyncEngine.
    """
    return create_async_engine(
        url or settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
