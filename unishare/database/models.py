"""
Database Models

ORM tables backing the gamification engine:
1. users - profile fields used for scoping plus a denormalized points counter
2. contributions - the append-only action ledger
3. user_achievements - one row per unlocked achievement
4. notifications - messages produced by achievement unlocks
"""

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON,
    String, Text, UniqueConstraint
)

from unishare.common.utils import utc_now
from unishare.database.base import ModelBase


class UserRow(ModelBase):
    """A platform user as seen by the gamification engine."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(255), nullable=True)
    department = Column(String(120), nullable=True, index=True)
    course = Column(String(120), nullable=True, index=True)
    # Maintained by atomic increments; the ledger is authoritative
    points = Column(Integer, nullable=False, default=0)
    badge_level = Column(String(32), nullable=False, default="Freshman")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<UserRow(id={self.id}, points={self.points}, badge_level={self.badge_level})>"


class ContributionRow(ModelBase):
    """One action ledger entry. Rows are inserted, never updated or deleted."""

    __tablename__ = "contributions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(64), nullable=False)
    resource_id = Column(String(64), nullable=True)
    collection_id = Column(String(64), nullable=True)
    resource_type = Column(String(32), nullable=True)
    points_earned = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_contributions_user_created", "user_id", "created_at"),
        Index("ix_contributions_created", "created_at"),
    )


class UserAchievementRow(ModelBase):
    """An achievement unlocked by a user. At most one row per pair."""

    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id = Column(String(64), nullable=False)
    points_earned = Column(Integer, nullable=False, default=0)
    earned_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )


class NotificationRow(ModelBase):
    """In-app notification for a user."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
