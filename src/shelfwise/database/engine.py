"""Async engine and the session factory shared by the API and the MCP server."""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)

engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# Store functions commit and then serialize the same objects
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create any tables that do not exist yet.

    Alembic owns schema changes; this only bootstraps an empty database.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ready on {engine.url.render_as_string(hide_password=True)}")


async def close_db() -> None:
    """Dispose of the pool on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
