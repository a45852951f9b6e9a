"""
Database Session Management

Engine and session factory construction for async SQLAlchemy.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

from unishare.common.config import DatabaseConfig
from unishare.common.logger import app_logger

# Set up logging
logger = app_logger.getChild("db.session")


def get_engine_kwargs(db_config: DatabaseConfig) -> Dict[str, Any]:
    """
    Get engine keyword arguments based on database type.
    Different databases support different connection options.
    """
    kwargs: Dict[str, Any] = {"echo": db_config.echo}

    if not db_config.is_sqlite:
        kwargs.update({
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_pre_ping": True,
            "pool_recycle": 300,  # Recycle connections every 5 minutes
        })
    # SQLite uses the default pool

    return kwargs


def create_engine(db_config: DatabaseConfig) -> AsyncEngine:
    """Create an async engine for the configured database."""
    kwargs = get_engine_kwargs(db_config)
    logger.debug(f"Creating async engine ({'sqlite' if db_config.is_sqlite else 'pooled'})")
    return create_async_engine(db_config.url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory whose objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

