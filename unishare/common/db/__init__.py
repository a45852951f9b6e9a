"""
Database Module

This package provides async SQLAlchemy engine and session management.
"""

from unishare.common.db.session import (
    create_engine,
    create_session_factory,
    get_engine_kwargs
)

__all__ = [
    'create_engine',
    'create_session_factory',
    'get_engine_kwargs',
]
