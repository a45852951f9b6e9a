"""
Database initialization and connection management.

This module provides functions for:
1. Initializing the engine and creating the schema
2. Handing out the shared session factory
3. Disposing of the connection pool
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from unishare.common.config import DatabaseConfig, get_config
from unishare.common.db.session import create_engine, create_session_factory
from unishare.common.logger import app_logger
from unishare.database.base import metadata
# Register the tables on the shared metadata
from unishare.database import models  # noqa: F401

# Setup module logger
logger = app_logger.getChild("database.init_db")

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get the global session factory."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    """Drop all gamification tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


async def initialize_database(
    db_config: Optional[DatabaseConfig] = None,
    create_tables: bool = True
) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        db_config: Database settings (defaults to the application config)
        create_tables: Whether to create missing tables

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    db_config = db_config or get_config().database

    try:
        logger.info(f"Initializing database with URL: {db_config.url[:10]}...")

        _engine = create_engine(db_config)
        _session_factory = create_session_factory(_engine)

        # Test connection
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if create_tables:
            await create_schema(_engine)

        logger.info("Database engine initialized successfully")
        return _engine

    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine:
        try:
            await _engine.dispose()
            logger.info("Database engine closed successfully")
        finally:
            _engine = None
            _session_factory = None

