"""
Gamification Service Module

This module provides the orchestration layer for gamification features:
1. Awarding points for actions (classify, record, unlock achievements)
2. Deriving user progress and achievement summaries from the ledger
3. Leaderboards and platform analytics, with a time-bounded cache

Every read recomputes from the ledger; cached views are dropped whenever
points change and are never treated as the source of truth.
"""

import datetime
from typing import Any, Dict, Iterable, List, Optional

from unishare.common.cache import CacheBackend, create_cache_backend
from unishare.common.config import AppConfig, GamificationConfig, get_config
from unishare.common.exceptions import CacheError, NotFoundError, ValidationError
from unishare.common.logger import app_logger, log_execution_time, with_context
from unishare.common.utils import ensure_utc, utc_now
from unishare.database.init_db import get_session_factory
from unishare.gamification.achievements import catalog_by_id, evaluate, get_default_achievements
from unishare.gamification.analytics import activity_trends, aggregate, user_engagement
from unishare.gamification.leaderboard import find_rank, rank
from unishare.gamification.models import (
    AchievementDefinition, ActionRecord, ActionType, AnalyticsReport, AwardResult,
    LeaderboardEntry, LeaderboardScope, Timeframe, UserAction,
    UserEngagement, UserProgress
)
from unishare.gamification.points import ActionLike, calculate_points, classify
from unishare.gamification.progress import (
    compute_progress, level_progress, timeframe_start, windowed_points
)
from unishare.gamification.repository import GamificationRepository

# Set up module logger
logger = app_logger.getChild("gamification.service")

LEADERBOARD_CACHE_PREFIX = "leaderboard:"
ANALYTICS_CACHE_PREFIX = "analytics:"
RECENT_ACHIEVEMENTS_LIMIT = 5
MAX_TREND_DAYS = 365


class GamificationService:
    """
    Service for gamification features.

    This class awards points, evaluates achievements and serves progress,
    leaderboard and analytics views on top of the repository.
    """

    def __init__(
        self,
        repository: GamificationRepository,
        cache: Optional[CacheBackend] = None,
        catalog: Optional[Iterable[AchievementDefinition]] = None,
        settings: Optional[GamificationConfig] = None
    ):
        """
        Initialize the gamification service.

        Args:
            repository: Repository for gamification data
            cache: Cache for leaderboard and analytics views (None disables caching)
            catalog: Achievement catalog (defaults to the built-in catalog)
            settings: Gamification settings (defaults to the application config)
        """
        self.repository = repository
        self.cache = cache
        self.catalog: List[AchievementDefinition] = (
            list(catalog) if catalog is not None else get_default_achievements()
        )
        self.settings = settings or get_config().gamification

    # Cache helpers

    async def _cache_get(self, key: str) -> Any:
        if self.cache is None:
            return None
        try:
            result = await self.cache.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}, recomputing: {e}")
            return None
        return result.value if result.hit else None

    async def _cache_set(self, key: str, value: Any, ttl: float) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(key, value, ttl=ttl)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def invalidate_caches(self) -> None:
        """Drop every cached leaderboard and analytics view."""
        if self.cache is None:
            return
        for prefix in (LEADERBOARD_CACHE_PREFIX, ANALYTICS_CACHE_PREFIX):
            try:
                removed = await self.cache.clear_prefix(prefix)
                logger.debug(f"Invalidated {removed} cached view(s) under {prefix}")
            except CacheError as e:
                # Entries still expire by TTL
                logger.error(f"Cache invalidation failed for {prefix}: {e}")

    # Points

    def calculate_points(self, action: ActionLike) -> int:
        """
        Preview the points an action is worth without recording it.

        Raises:
            UnknownActionKind: If the action type is unknown
        """
        return calculate_points(action)

    async def award_action(self, action: UserAction) -> AwardResult:
        """
        Record an action and apply its consequences.

        The action is classified, appended to the ledger together with an
        atomic points increment, achievements are re-evaluated and cached
        views are invalidated.

        Args:
            action: The action performed

        Returns:
            Points awarded, newly unlocked achievements and the user's new totals

        Raises:
            UnknownActionKind: If the action type is unknown
            ValidationError: If the action is an achievement bonus, which only
                the achievement evaluator records
            NotFoundError: If the user does not exist
            StoreUnavailableError: If the store fails
        """
        if action.type == ActionType.ACHIEVEMENT_UNLOCKED:
            raise ValidationError(
                "Achievement bonuses cannot be awarded directly",
                {"action_type": action.type.value}
            )

        record = action.to_record()
        classified = classify(record)

        action_logger = with_context(
            "gamification.service", user_id=action.user_id, action_type=action.type.value
        )

        await self.repository.append_action(record, classified.points)
        action_logger.info(f"Awarded {classified.points:+d} points")

        new_achievements = await self.check_achievements(action.user_id)
        await self.invalidate_caches()

        progress = await self.get_user_progress(action.user_id)
        return AwardResult(
            user_id=action.user_id,
            action_type=action.type,
            points_awarded=classified.points,
            new_achievements=new_achievements,
            total_points=progress.total_points,
            level=progress.level,
            badge_level=progress.badge_level
        )

    # Progress

    async def get_user_progress(self, user_id: str) -> UserProgress:
        """
        Derive a user's progress from the ledger.

        Raises:
            NotFoundError: If the user does not exist
            StoreUnavailableError: If the store fails
        """
        user = await self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        ledger = await self.repository.get_ledger(user_id)
        unlocked = await self.repository.get_unlocked_achievements(user_id)

        return compute_progress(
            ledger,
            user_id=user_id,
            unlocked=[row.achievement_id for row in unlocked],
            department=user.department,
            course=user.course
        )

    @log_execution_time(logger)
    async def get_progress_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Get a user's full progress summary.

        Args:
            user_id: User identifier

        Returns:
            Dict with progress, level progress, weekly points, earned,
            recent and in-progress achievements and engagement metrics
        """
        user = await self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        ledger = await self.repository.get_ledger(user_id)
        unlocked_rows = await self.repository.get_unlocked_achievements(user_id)
        progress = compute_progress(
            ledger,
            user_id=user_id,
            unlocked=[row.achievement_id for row in unlocked_rows],
            department=user.department,
            course=user.course
        )

        now = utc_now()
        definitions = catalog_by_id(self.catalog)
        earned = []
        for row in unlocked_rows:
            definition = definitions.get(row.achievement_id)
            if definition is None:
                logger.warning(f"Unlocked achievement {row.achievement_id} is not in the catalog")
                continue
            entry = definition.to_dict()
            entry["earned_at"] = ensure_utc(row.earned_at).isoformat()
            earned.append(entry)

        available = []
        for definition in self.catalog:
            if definition.id in progress.achievements_unlocked:
                continue
            entry = definition.to_dict()
            entry["current_value"] = max(0, definition.criteria.measure(progress))
            entry["progress_percent"] = round(definition.progress_percent(progress), 2)
            available.append(entry)

        return {
            "progress": progress.to_dict(),
            "level_progress": level_progress(progress.total_points),
            "weekly_points": windowed_points(ledger, timeframe_start(Timeframe.WEEKLY, now), now),
            "monthly_points": windowed_points(ledger, timeframe_start(Timeframe.MONTHLY, now), now),
            "achievements": {
                "earned": earned,
                "recent": sorted(earned, key=lambda a: a["earned_at"], reverse=True)[:RECENT_ACHIEVEMENTS_LIMIT],
                "available": available,
                "total": len(self.catalog),
                "unlocked_count": len(progress.achievements_unlocked),
            },
            "engagement": user_engagement(progress).to_dict(),
        }

    # Achievements

    async def check_achievements(self, user_id: str) -> List[AchievementDefinition]:
        """
        Evaluate and persist any achievements the user now qualifies for.

        Each unlock appends a bonus ledger record, so evaluation repeats
        until a pass unlocks nothing new (bonus points can cross a points
        milestone).

        Args:
            user_id: User identifier

        Returns:
            Achievements unlocked by this call, in unlock order
        """
        newly_unlocked: List[AchievementDefinition] = []

        # Every pass either unlocks something or stops
        for _ in range(len(self.catalog) + 1):
            progress = await self.get_user_progress(user_id)
            candidates = evaluate(progress, self.catalog, progress.achievements_unlocked)
            if not candidates:
                break

            for achievement in candidates:
                if await self.repository.unlock_achievement(user_id, achievement):
                    newly_unlocked.append(achievement)

        if newly_unlocked:
            logger.info(
                f"User {user_id} unlocked {len(newly_unlocked)} achievement(s): "
                f"{', '.join(a.id for a in newly_unlocked)}"
            )
            await self.invalidate_caches()

        return newly_unlocked

    # Leaderboards

    def _validate_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.default_leaderboard_limit
        if limit < 1 or limit > self.settings.max_leaderboard_limit:
            raise ValidationError(
                f"Limit must be between 1 and {self.settings.max_leaderboard_limit}",
                {"limit": limit}
            )
        return limit

    async def _load_population(
        self,
        department: Optional[str] = None,
        course: Optional[str] = None
    ):
        """Progress of every user (optionally filtered) plus their ledgers."""
        users = await self.repository.list_users(department=department, course=course)
        ledgers = await self.repository.get_ledgers(user_ids=[user.id for user in users])
        unlocked = await self.repository.get_all_unlocked()

        population = [
            compute_progress(
                ledgers.get(user.id, []),
                user_id=user.id,
                unlocked=unlocked.get(user.id, ()),
                department=user.department,
                course=user.course
            )
            for user in users
        ]
        return population, ledgers

    @log_execution_time(logger)
    async def get_leaderboard(
        self,
        scope: Optional[LeaderboardScope] = None,
        timeframe: Timeframe = Timeframe.ALL_TIME,
        limit: Optional[int] = None
    ) -> List[LeaderboardEntry]:
        """
        Get a ranked leaderboard.

        Args:
            scope: Population filter (defaults to global)
            timeframe: Ranking window
            limit: Maximum number of entries

        Returns:
            Ranked entries

        Raises:
            ValidationError: Invalid scope, timeframe or limit
            StoreUnavailableError: If the store fails
        """
        scope = scope or LeaderboardScope()
        timeframe = Timeframe.parse(timeframe)
        limit = self._validate_limit(limit)

        cache_key = f"{LEADERBOARD_CACHE_PREFIX}{scope.key}:{timeframe.value}:{limit}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        population, ledgers = await self._load_population(scope.department, scope.course)
        entries = rank(population, scope, timeframe, ledgers=ledgers, limit=limit)

        await self._cache_set(cache_key, entries, self.settings.leaderboard_cache_ttl)
        return entries

    async def get_user_rank(
        self,
        user_id: str,
        scope: Optional[LeaderboardScope] = None,
        timeframe: Timeframe = Timeframe.ALL_TIME
    ) -> Optional[int]:
        """Rank of a user on the full (unlimited) leaderboard."""
        entries = await self.get_leaderboard(scope, timeframe, self.settings.max_leaderboard_limit)
        return find_rank(entries, user_id)

    # Analytics

    @log_execution_time(logger)
    async def get_analytics(self, timeframe: Timeframe = Timeframe.ALL_TIME) -> AnalyticsReport:
        """
        Get platform analytics for a timeframe.

        Raises:
            ValidationError: Invalid timeframe
            StoreUnavailableError: If the store fails
        """
        timeframe = Timeframe.parse(timeframe)
        cache_key = f"{ANALYTICS_CACHE_PREFIX}overview:{timeframe.value}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        population, ledgers = await self._load_population()
        ledger: List[ActionRecord] = [record for records in ledgers.values() for record in records]

        report = aggregate(
            population,
            ledger,
            timeframe,
            catalog=self.catalog,
            trend_days=self.settings.trend_days
        )

        await self._cache_set(cache_key, report, self.settings.analytics_cache_ttl)
        return report

    async def get_user_engagement(self, user_id: str) -> UserEngagement:
        """Engagement metrics of one user."""
        return user_engagement(await self.get_user_progress(user_id))

    async def get_engagement_trends(self, days: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Daily activity trends over the last ``days`` days.

        Raises:
            ValidationError: If days is outside 1..365
        """
        if days is None:
            days = self.settings.trend_days
        if days < 1 or days > MAX_TREND_DAYS:
            raise ValidationError(f"Days must be between 1 and {MAX_TREND_DAYS}", {"days": days})

        now = utc_now()
        ledger = await self.repository.get_ledger(since=now - datetime.timedelta(days=days))
        return activity_trends(ledger, days=days, now=now)


# Singleton instance
_gamification_service: Optional[GamificationService] = None


def configure_gamification_service(config: Optional[AppConfig] = None) -> GamificationService:
    """
    Build the singleton service from configuration.

    The database must have been initialized first.

    Args:
        config: Application configuration (defaults to the loaded config)

    Returns:
        The new service instance
    """
    global _gamification_service

    config = config or get_config()
    cache = create_cache_backend(config) if config.cache.enabled else None
    _gamification_service = GamificationService(
        repository=GamificationRepository(get_session_factory()),
        cache=cache,
        settings=config.gamification
    )
    return _gamification_service


def get_gamification_service() -> GamificationService:
    """
    Get the singleton gamification service instance.

    Returns:
        Gamification service instance
    """
    if _gamification_service is None:
        return configure_gamification_service()
    return _gamification_service


def reset_gamification_service() -> None:
    """Drop the singleton so the next call rebuilds it."""
    global _gamification_service
    _gamification_service = None
