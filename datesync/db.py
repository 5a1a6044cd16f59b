"""SQLAlchemy 2.x async database setup.

This module builds the async engine and session factory from settings but
does not hard-code any connection credentials.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def create_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine; defaults come from ``settings.db``."""
    return create_async_engine(
        url or settings.db.url,
        echo=settings.db.echo if echo is None else echo,
        future=True,
    )


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``.

    Usage:
        async with session_factory(engine)() as session:
            ...
    """

    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
