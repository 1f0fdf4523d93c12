"""
Database Session Management

Async SQLAlchemy engine and session factory owned by the application
runtime (``app.state.database``) rather than by this module.
"""

import logging
from typing import Any, AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from keystone.api.config import settings
from keystone.api.db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Engine plus session factory for one database."""

    def __init__(
        self,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
        **engine_kwargs: Any,
    ):
        self.url = url or settings.DATABASE_URL
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=settings.DATABASE_ECHO if echo is None else echo,
            **engine_kwargs,
        )
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_all(self) -> None:
        """Create tables if they don't exist (dev and tests only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
        logger.info("Database connection closed")

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session, rolling back on error."""
        async with self.session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.database
    async for session in database.session():
        yield session
