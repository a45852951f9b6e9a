"""
Gamification Package

This package provides the gamification engine for the resource-sharing
platform:
- Points for uploads, votes, downloads and curation
- Levels, badge tiers and one-way achievements
- Leaderboards by department, course and timeframe
- Platform engagement analytics

Points, levels and achievements are derived from the append-only action
ledger; nothing here is a second source of truth.
"""

from typing import Optional

from unishare.common.config import AppConfig
from unishare.common.logger import app_logger
from unishare.gamification.service import (
    GamificationService,
    configure_gamification_service,
    get_gamification_service,
    reset_gamification_service
)

# Set up module logger
logger = app_logger.getChild("gamification")


async def initialize_gamification_system(config: Optional[AppConfig] = None) -> GamificationService:
    """
    Initialize the gamification system.

    The database must already be initialized. Builds the singleton service
    and drops any cached views left over from a previous run.

    Args:
        config: Application configuration (defaults to the loaded config)

    Returns:
        The configured service
    """
    logger.info("Initializing gamification system...")

    service = configure_gamification_service(config)
    await service.invalidate_caches()

    logger.info(f"Gamification system ready with {len(service.catalog)} achievements")
    return service


__all__ = [
    'GamificationService',
    'configure_gamification_service',
    'get_gamification_service',
    'reset_gamification_service',
    'initialize_gamification_system',
]
