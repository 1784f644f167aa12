"""
Database module for storyreel.

Provides async SQLAlchemy engine with SQLite WAL mode,
session management, and schema initialization.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from storyreel.db.engine import make_engine, make_sessionmaker
from storyreel.db.models import Base, VideoRun

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine) -> None:
    """Create the schema if it does not exist yet (idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ready")


__all__ = [
    "Base",
    "VideoRun",
    "make_engine",
    "make_sessionmaker",
    "init_database",
]
