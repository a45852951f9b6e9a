"""
Database Module

This module provides database configuration and models for the UniShare
gamification backend.
"""

from unishare.database.base import Base, ModelBase, metadata
from unishare.database.models import (
    UserRow, ContributionRow, UserAchievementRow, NotificationRow
)

__all__ = [
    'Base', 'ModelBase', 'metadata',
    'UserRow', 'ContributionRow', 'UserAchievementRow', 'NotificationRow'
]
