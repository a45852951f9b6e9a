"""
Analytics Aggregator

Population-level statistics over the action ledger: engagement, point
distribution, achievement completion, leaderboard composition and daily
activity trends. Pure functions; the service layer supplies the data.
"""

import datetime
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional

from unishare.common.logger import app_logger
from unishare.common.utils import ensure_utc, safe_divide, utc_now
from unishare.gamification.achievements import achievement_title, get_default_achievements
from unishare.gamification.models import (
    ActionType, AchievementDefinition, AnalyticsReport, BadgeLevel,
    Timeframe, UserEngagement, UserProgress
)
from unishare.gamification.progress import (
    TIMEFRAME_WINDOWS, ValidRecord, timeframe_start, validate_ledger
)

# Set up module logger
logger = app_logger.getChild("gamification.analytics")

DEFAULT_TREND_DAYS = 30
TOP_EARNERS = 10
POPULAR_ACHIEVEMENTS = 5
RECENT_ACHIEVEMENTS = 10

# Engagement score weights
ACHIEVEMENT_WEIGHT = 10
UPLOAD_WEIGHT = 5
COLLECTION_WEIGHT = 8
VOTE_WEIGHT = 1


def engagement_score(progress: UserProgress) -> int:
    """
    Single-number engagement measure for a user.

    Points plus weighted achievement, upload, collection and vote counts.
    """
    return (
        progress.total_points
        + len(progress.achievements_unlocked) * ACHIEVEMENT_WEIGHT
        + progress.count(ActionType.UPLOAD_RESOURCE) * UPLOAD_WEIGHT
        + progress.count(ActionType.CREATE_COLLECTION) * COLLECTION_WEIGHT
        + progress.count(ActionType.CAST_VOTE) * VOTE_WEIGHT
    )


def user_engagement(progress: UserProgress) -> UserEngagement:
    """
    Build the engagement snapshot of one user.

    Args:
        progress: The user's progress

    Returns:
        Engagement metrics including the engagement score
    """
    return UserEngagement(
        user_id=progress.user_id,
        total_points=progress.total_points,
        achievements_count=len(progress.achievements_unlocked),
        uploads_count=progress.count(ActionType.UPLOAD_RESOURCE),
        collections_count=progress.count(ActionType.CREATE_COLLECTION),
        votes_given=progress.count(ActionType.CAST_VOTE),
        votes_received=(
            progress.count(ActionType.RECEIVE_UPVOTE)
            + progress.count(ActionType.RECEIVE_DOWNVOTE)
        ),
        last_activity_at=progress.last_activity_at,
        streak_days=progress.current_streak,
        engagement_score=engagement_score(progress)
    )


def _in_range(
    moment: datetime.datetime,
    since: Optional[datetime.datetime],
    now: datetime.datetime
) -> bool:
    return (since is None or moment >= since) and moment <= now


def _active_users(valid: List[ValidRecord], since: Optional[datetime.datetime], now: datetime.datetime) -> int:
    return len({record.user_id for record, _ in valid if _in_range(record.occurred_at, since, now)})


def _trend_buckets(
    valid: List[ValidRecord],
    days: int,
    now: datetime.datetime
) -> List[Dict[str, Any]]:
    """Per-day buckets for the ``days`` calendar days ending today."""
    today = now.date()
    first_day = today - datetime.timedelta(days=days - 1)

    buckets: Dict[datetime.date, Dict[str, Any]] = {}
    for offset in range(days):
        day = first_day + datetime.timedelta(days=offset)
        buckets[day] = {
            "date": day.isoformat(),
            "total_points": 0,
            "active_users": set(),
            "achievements_earned": 0,
            "uploads": 0,
            "collections": 0,
        }

    for record, classified in valid:
        if record.occurred_at > now:
            continue
        bucket = buckets.get(record.occurred_at.date())
        if bucket is None:
            continue

        kind = record.kind
        bucket["total_points"] += classified.points
        bucket["active_users"].add(record.user_id)
        if kind == ActionType.ACHIEVEMENT_UNLOCKED:
            bucket["achievements_earned"] += 1
        elif kind == ActionType.UPLOAD_RESOURCE:
            bucket["uploads"] += 1
        elif kind == ActionType.CREATE_COLLECTION:
            bucket["collections"] += 1

    trends = []
    for day in sorted(buckets):
        bucket = buckets[day]
        bucket["active_users"] = len(bucket["active_users"])
        trends.append(bucket)
    return trends


def activity_trends(
    ledger: Iterable[Any],
    days: int = DEFAULT_TREND_DAYS,
    now: Optional[datetime.datetime] = None
) -> List[Dict[str, Any]]:
    """
    Daily activity over the last ``days`` days.

    Args:
        ledger: Action records of all users
        days: Number of calendar days, ending today
        now: Reference time

    Returns:
        One bucket per day (oldest first) with points, active users,
        achievements earned, uploads and collections
    """
    valid, _ = validate_ledger(ledger)
    return _trend_buckets(valid, max(1, days), ensure_utc(now or utc_now()))


def _engagement_section(
    users: List[UserProgress],
    valid: List[ValidRecord],
    since: Optional[datetime.datetime],
    now: datetime.datetime
) -> Dict[str, Any]:
    return {
        "total_users": len(users),
        "active_users": _active_users(valid, since, now),
        "daily_active_users": _active_users(valid, now - TIMEFRAME_WINDOWS[Timeframe.DAILY], now),
        "weekly_active_users": _active_users(valid, now - TIMEFRAME_WINDOWS[Timeframe.WEEKLY], now),
        "monthly_active_users": _active_users(valid, now - TIMEFRAME_WINDOWS[Timeframe.MONTHLY], now),
        "total_actions": sum(1 for record, _ in valid if _in_range(record.occurred_at, since, now)),
    }


def _points_section(
    users: List[UserProgress],
    valid: List[ValidRecord],
    since: Optional[datetime.datetime],
    now: datetime.datetime
) -> Dict[str, Any]:
    total_points = 0
    by_action: Counter = Counter()
    weekly_points: Dict[str, int] = defaultdict(int)
    week_start = now - TIMEFRAME_WINDOWS[Timeframe.WEEKLY]

    for record, classified in valid:
        if _in_range(record.occurred_at, since, now):
            total_points += classified.points
            by_action[record.kind.value] += classified.points
        if _in_range(record.occurred_at, week_start, now):
            weekly_points[record.user_id] += classified.points

    top_users = sorted(users, key=lambda p: (-p.total_points, str(p.user_id)))[:TOP_EARNERS]

    return {
        "total_points_awarded": total_points,
        "average_points_per_user": round(safe_divide(total_points, len(users)), 2),
        "points_by_action_type": dict(sorted(by_action.items())),
        "top_point_earners": [
            {
                "user_id": progress.user_id,
                "total_points": progress.total_points,
                "weekly_points": weekly_points.get(progress.user_id, 0),
            }
            for progress in top_users
        ],
    }


def _achievement_section(
    users: List[UserProgress],
    valid: List[ValidRecord],
    catalog: List[AchievementDefinition],
    since: Optional[datetime.datetime],
    now: datetime.datetime
) -> Dict[str, Any]:
    unlock_records = [
        record for record, _ in valid
        if record.kind == ActionType.ACHIEVEMENT_UNLOCKED and _in_range(record.occurred_at, since, now)
    ]

    completion_counts = {
        achievement.id: sum(1 for progress in users if achievement.id in progress.achievements_unlocked)
        for achievement in catalog
    }
    completion_rates = {
        achievement_id: round(safe_divide(count, len(users)) * 100, 2)
        for achievement_id, count in completion_counts.items()
    }

    popular = [
        achievement for achievement in catalog if completion_counts[achievement.id] > 0
    ]
    # sorted() is stable, so equal counts keep catalog order
    popular = sorted(popular, key=lambda a: -completion_counts[a.id])[:POPULAR_ACHIEVEMENTS]

    recent = sorted(unlock_records, key=lambda r: r.occurred_at, reverse=True)[:RECENT_ACHIEVEMENTS]

    return {
        "total_achievements_awarded": len(unlock_records),
        "completion_counts": completion_counts,
        "completion_rates": completion_rates,
        "popular_achievements": [
            {
                "achievement_id": achievement.id,
                "title": achievement.title,
                "completion_count": completion_counts[achievement.id],
                "completion_rate": completion_rates[achievement.id],
            }
            for achievement in popular
        ],
        "recent_achievements": [
            {
                "achievement_id": record.metadata.achievement_id,
                "title": achievement_title(record.metadata.achievement_id or ""),
                "user_id": record.user_id,
                "earned_at": record.occurred_at.isoformat(),
            }
            for record in recent
        ],
    }


def _leaderboard_section(users: List[UserProgress]) -> Dict[str, Any]:
    badge_distribution = {badge.value: 0 for badge in BadgeLevel}
    level_distribution: Counter = Counter()
    departments: Dict[str, List[UserProgress]] = defaultdict(list)

    for progress in users:
        badge_distribution[progress.badge_level.value] += 1
        level_distribution[str(progress.level)] += 1
        if progress.department:
            departments[progress.department].append(progress)

    rankings = []
    for department, members in departments.items():
        top = min(members, key=lambda p: (-p.total_points, str(p.user_id)))
        rankings.append({
            "department": department,
            "average_points": round(safe_divide(sum(p.total_points for p in members), len(members)), 2),
            "total_users": len(members),
            "top_user": top.user_id,
        })
    rankings.sort(key=lambda r: (-r["average_points"], r["department"]))

    return {
        "badge_distribution": badge_distribution,
        "level_distribution": dict(sorted(level_distribution.items(), key=lambda item: int(item[0]))),
        "department_rankings": rankings,
    }


def aggregate(
    users: Iterable[UserProgress],
    ledger: Iterable[Any],
    timeframe: Timeframe = Timeframe.ALL_TIME,
    catalog: Optional[Iterable[AchievementDefinition]] = None,
    now: Optional[datetime.datetime] = None,
    trend_days: int = DEFAULT_TREND_DAYS
) -> AnalyticsReport:
    """
    Compute population analytics for a timeframe.

    Args:
        users: Progress of every user in the population
        ledger: Action records of all users
        timeframe: Window for the windowed figures
        catalog: Achievement catalog (defaults to the default catalog)
        now: Reference time
        trend_days: Trend length used for all_time

    Returns:
        The analytics report; zero-filled for an empty population
    """
    timeframe = Timeframe.parse(timeframe)
    now = ensure_utc(now or utc_now())
    since = timeframe_start(timeframe, now)
    users = list(users)
    catalog = list(catalog) if catalog is not None else get_default_achievements()

    valid, skipped = validate_ledger(ledger)
    if skipped:
        logger.warning(f"Analytics ignored {skipped} malformed ledger record(s)")

    if timeframe == Timeframe.ALL_TIME:
        days = trend_days
    else:
        days = TIMEFRAME_WINDOWS[timeframe].days

    return AnalyticsReport(
        timeframe=timeframe,
        generated_at=now,
        engagement=_engagement_section(users, valid, since, now),
        points_distribution=_points_section(users, valid, since, now),
        achievement_stats=_achievement_section(users, valid, catalog, since, now),
        leaderboard_stats=_leaderboard_section(users),
        activity_trends=_trend_buckets(valid, max(1, days), now)
    )
