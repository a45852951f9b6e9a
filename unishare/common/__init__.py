"""
Common Components for UniShare

This package contains infrastructure shared by the gamification engine.

Key components:
1. Configuration - pydantic settings with environment and file overlays
2. Logging - Centralized logging configuration
3. Exceptions - Typed error hierarchy
4. Serialization - Deterministic dictionary/JSON conversion of models
5. Cache Infrastructure - Time-bounded memory and Redis backends
6. Database sessions - Async SQLAlchemy engine and session factory
"""

# Initialize logging
from unishare.common.logger import app_logger

__all__ = ['app_logger']
