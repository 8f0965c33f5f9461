"""Schema bootstrap for the annotation database."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from annotator.app.core.logging import get_logger
from annotator.app.db import models  # noqa: F401 - import to register models
from annotator.app.db.async_session import get_async_engine
from annotator.app.db.base import Base

logger = get_logger(__name__)


async def verify_connection(engine: AsyncEngine | None = None) -> bool:
    """Return True if the database answers a trivial query."""
    engine = engine or get_async_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def init_database(engine: AsyncEngine | None = None, drop_first: bool = False) -> None:
    """Create all tables, optionally dropping existing ones first."""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        if drop_first:
            logger.warning("Dropping all tables before init")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
