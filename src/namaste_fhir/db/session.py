"""
Database session management for NAMASTE FHIR Gateway.

Provides async SQLAlchemy engine and session creation for database operations.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import Optional

from namaste_fhir.config import settings


def async_database_url(url: str) -> str:
    """Switch a plain SQLite URL to the aiosqlite driver."""
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given database URL."""
    return create_async_engine(async_database_url(url), echo=echo, future=True)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Create async engine
engine = create_engine(settings.database_url, echo=settings.debug)

# Create async session factory
AsyncSessionLocal = create_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


async def init_db(bind: Optional[AsyncEngine] = None):
    """
    Initialize database tables.

    Creates all tables defined in the models module.
    """
    async with (bind or engine).begin() as conn:
        # Import models to ensure they're registered
        from namaste_fhir.db import models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
