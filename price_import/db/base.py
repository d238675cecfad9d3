"""Base SQLAlchemy configuration and mixins."""
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from price_import.config import settings
from price_import.errors.exceptions import PersistenceError


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models with async support."""
    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Create the async engine on first use.

    Raises:
        PersistenceError: If PRICE_IMPORT_DATABASE_URL is not set
    """
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise PersistenceError("PRICE_IMPORT_DATABASE_URL is not configured")
        _engine = create_async_engine(
            settings.database_url,
            echo=False,
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,  # Verify connection health before use
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to the lazily created engine."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker
