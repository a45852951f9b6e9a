"""
Gamification Repository

This module provides data persistence for gamification features:
1. The append-only action ledger (contributions)
2. Users and their denormalized points counter
3. Unlocked achievements and the notifications they produce

Point totals are only ever changed with an atomic SQL increment issued in the
same transaction as the ledger insert. Driver errors surface as
StoreUnavailableError so callers can tell "no data" from "couldn't check".
"""

import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unishare.common.exceptions import DuplicateError, NotFoundError, StoreUnavailableError
from unishare.common.logger import app_logger
from unishare.common.utils import ensure_utc, utc_now
from unishare.database.models import (
    ContributionRow, NotificationRow, UserAchievementRow, UserRow
)
from unishare.gamification.models import (
    AchievementDefinition, ActionMetadata, ActionRecord, ActionType, BadgeLevel
)
from unishare.gamification.progress import badge_min_points

# Set up module logger
logger = app_logger.getChild("gamification.repository")

ACHIEVEMENT_NOTIFICATION = "achievement"


def _badge_case(points_expression):
    """SQL expression mapping a points expression to its badge tier."""
    tiers = [badge for badge in BadgeLevel if badge != BadgeLevel.FRESHMAN]
    return case(
        *[
            (points_expression >= badge_min_points(badge), badge.value)
            for badge in reversed(tiers)
        ],
        else_=BadgeLevel.FRESHMAN.value
    )


def _to_record(row: ContributionRow) -> ActionRecord:
    return ActionRecord(
        id=row.id,
        user_id=row.user_id,
        action_type=row.action_type,
        resource_id=row.resource_id,
        collection_id=row.collection_id,
        resource_type=row.resource_type,
        metadata=ActionMetadata.from_dict(row.details),
        occurred_at=ensure_utc(row.created_at)
    )


class GamificationRepository:
    """
    Repository for gamification data backed by an async SQLAlchemy session
    factory.
    """

    def __init__(self, session_factory: async_sessionmaker):
        """
        Initialize the gamification repository.

        Args:
            session_factory: Factory producing AsyncSession objects
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """
        Run a unit of work in one transaction.

        IntegrityError is re-raised untouched for callers that rely on
        constraints; every other driver error becomes StoreUnavailableError.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Store error during {operation}: {e}")
            raise StoreUnavailableError(f"{operation} failed", e) from e

    # Users

    async def create_user(
        self,
        user_id: str,
        full_name: Optional[str] = None,
        department: Optional[str] = None,
        course: Optional[str] = None
    ) -> UserRow:
        """
        Register a user.

        Raises:
            DuplicateError: If the user already exists
        """
        now = utc_now()
        row = UserRow(
            id=user_id,
            full_name=full_name,
            department=department,
            course=course,
            points=0,
            badge_level=BadgeLevel.FRESHMAN.value,
            created_at=now,
            updated_at=now
        )
        try:
            async with self._transaction("create_user") as session:
                session.add(row)
        except IntegrityError as e:
            raise DuplicateError("User", user_id) from e

        logger.info(f"Created user {user_id}")
        return row

    async def get_user(self, user_id: str) -> Optional[UserRow]:
        async with self._transaction("get_user") as session:
            return await session.get(UserRow, user_id)

    async def list_users(
        self,
        department: Optional[str] = None,
        course: Optional[str] = None
    ) -> List[UserRow]:
        """
        List users, optionally filtered by department and/or course.

        Returns:
            Users ordered by id
        """
        query = select(UserRow).order_by(UserRow.id)
        if department is not None:
            query = query.where(UserRow.department == department)
        if course is not None:
            query = query.where(UserRow.course == course)

        async with self._transaction("list_users") as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # Ledger

    async def get_ledger(
        self,
        user_id: Optional[str] = None,
        since: Optional[datetime.datetime] = None
    ) -> List[ActionRecord]:
        """
        Read ledger records, oldest first.

        Args:
            user_id: Restrict to one user; None reads every user's records
            since: Only records at or after this time

        Returns:
            Action records
        """
        query = select(ContributionRow).order_by(ContributionRow.created_at, ContributionRow.id)
        if user_id is not None:
            query = query.where(ContributionRow.user_id == user_id)
        if since is not None:
            query = query.where(ContributionRow.created_at >= since)

        async with self._transaction("get_ledger") as session:
            result = await session.execute(query)
            return [_to_record(row) for row in result.scalars().all()]

    async def get_ledgers(
        self,
        user_ids: Optional[Iterable[str]] = None,
        since: Optional[datetime.datetime] = None
    ) -> Dict[str, List[ActionRecord]]:
        """
        Read ledger records grouped by user.

        Args:
            user_ids: Users to include; None includes everyone
            since: Only records at or after this time

        Returns:
            Mapping of user id to that user's records, oldest first
        """
        query = select(ContributionRow).order_by(ContributionRow.created_at, ContributionRow.id)
        if user_ids is not None:
            query = query.where(ContributionRow.user_id.in_(list(user_ids)))
        if since is not None:
            query = query.where(ContributionRow.created_at >= since)

        ledgers: Dict[str, List[ActionRecord]] = {}
        async with self._transaction("get_ledgers") as session:
            result = await session.execute(query)
            for row in result.scalars().all():
                ledgers.setdefault(row.user_id, []).append(_to_record(row))
        return ledgers

    async def _insert_contribution(
        self,
        session: AsyncSession,
        record: ActionRecord,
        points: int
    ) -> int:
        row = ContributionRow(
            user_id=record.user_id,
            action_type=record.action_type,
            resource_id=record.resource_id,
            collection_id=record.collection_id,
            resource_type=record.resource_type,
            points_earned=points,
            details=record.metadata.to_storage(),
            created_at=record.occurred_at or utc_now()
        )
        session.add(row)
        await session.flush()
        return row.id

    async def _increment_points(self, session: AsyncSession, user_id: str, delta: int) -> int:
        """
        Atomically add ``delta`` to a user's points and refresh the badge.

        Returns:
            The new total

        Raises:
            NotFoundError: If the user does not exist
        """
        new_total = UserRow.points + delta
        result = await session.execute(
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(
                points=new_total,
                badge_level=_badge_case(new_total),
                updated_at=utc_now()
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("User", user_id)

        total = await session.execute(select(UserRow.points).where(UserRow.id == user_id))
        return int(total.scalar_one())

    async def append_action(self, record: ActionRecord, points: int) -> Tuple[ActionRecord, int]:
        """
        Append a ledger record and apply its point delta in one transaction.

        Args:
            record: The action to record
            points: Classified point value of the action

        Returns:
            Tuple of (stored record with its id, user's new points total)

        Raises:
            NotFoundError: If the user does not exist
            StoreUnavailableError: If the store fails
        """
        try:
            async with self._transaction("append_action") as session:
                contribution_id = await self._insert_contribution(session, record, points)
                total = await self._increment_points(session, record.user_id, points)
        except IntegrityError as e:
            # Foreign key violation on an unknown user
            raise NotFoundError("User", record.user_id) from e

        logger.debug(f"Recorded {record.action_type} for {record.user_id}: {points:+d} (total {total})")
        return ActionRecord(
            id=contribution_id,
            user_id=record.user_id,
            action_type=record.action_type,
            resource_id=record.resource_id,
            collection_id=record.collection_id,
            resource_type=record.resource_type,
            metadata=record.metadata,
            occurred_at=record.occurred_at
        ), total

    # Achievements

    async def get_unlocked_achievements(self, user_id: str) -> List[UserAchievementRow]:
        """Unlocked achievement rows of a user, oldest first."""
        query = (
            select(UserAchievementRow)
            .where(UserAchievementRow.user_id == user_id)
            .order_by(UserAchievementRow.earned_at, UserAchievementRow.id)
        )
        async with self._transaction("get_unlocked_achievements") as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_all_unlocked(self) -> Dict[str, Set[str]]:
        """Unlocked achievement ids for every user that has any."""
        unlocked: Dict[str, Set[str]] = {}
        async with self._transaction("get_all_unlocked") as session:
            result = await session.execute(
                select(UserAchievementRow.user_id, UserAchievementRow.achievement_id)
            )
            for user_id, achievement_id in result.all():
                unlocked.setdefault(user_id, set()).add(achievement_id)
        return unlocked

    async def unlock_achievement(
        self,
        user_id: str,
        achievement: AchievementDefinition,
        unlocked_at: Optional[datetime.datetime] = None
    ) -> bool:
        """
        Persist an unlock, its bonus ledger record and a notification.

        The unique (user_id, achievement_id) constraint decides concurrent
        races: the losing insert rolls back the whole unit of work.

        Args:
            user_id: User identifier
            achievement: The achievement being unlocked
            unlocked_at: Unlock time (defaults to now)

        Returns:
            True if this call unlocked it, False if it was already unlocked
        """
        unlocked_at = unlocked_at or utc_now()
        record = ActionRecord(
            user_id=user_id,
            action_type=ActionType.ACHIEVEMENT_UNLOCKED.value,
            metadata=ActionMetadata(
                achievement_id=achievement.id,
                points_awarded=achievement.points_awarded
            ),
            occurred_at=unlocked_at
        )

        try:
            async with self._transaction("unlock_achievement") as session:
                session.add(UserAchievementRow(
                    user_id=user_id,
                    achievement_id=achievement.id,
                    points_earned=achievement.points_awarded,
                    earned_at=unlocked_at
                ))
                # Surfaces the unique violation before anything else is written
                await session.flush()

                await self._insert_contribution(session, record, achievement.points_awarded)
                await self._increment_points(session, user_id, achievement.points_awarded)

                session.add(NotificationRow(
                    user_id=user_id,
                    type=ACHIEVEMENT_NOTIFICATION,
                    title=f"Achievement Unlocked: {achievement.title}",
                    message=achievement.description,
                    data={
                        "achievement_id": achievement.id,
                        "points_awarded": achievement.points_awarded,
                        "icon": achievement.icon,
                        "rarity": achievement.rarity.value,
                    },
                    is_read=False,
                    created_at=unlocked_at
                ))
        except IntegrityError:
            logger.info(f"Achievement {achievement.id} already unlocked for {user_id}")
            return False

        logger.info(f"User {user_id} unlocked {achievement.id} (+{achievement.points_awarded})")
        return True

    # Notifications

    async def get_notifications(self, user_id: str, unread_only: bool = False) -> List[NotificationRow]:
        """Notifications of a user, newest first."""
        query = (
            select(NotificationRow)
            .where(NotificationRow.user_id == user_id)
            .order_by(NotificationRow.created_at.desc(), NotificationRow.id.desc())
        )
        if unread_only:
            query = query.where(NotificationRow.is_read.is_(False))

        async with self._transaction("get_notifications") as session:
            result = await session.execute(query)
            return list(result.scalars().all())
