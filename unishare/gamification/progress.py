"""
Progress Accumulator

Folds a user's action ledger into derived progress: total points, level,
badge tier, per-kind counters and activity streaks. Nothing here is stored;
progress is recomputed from the ledger on demand.
"""

import datetime
import dataclasses
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple, Set, Mapping

from unishare.common.exceptions import ValidationError
from unishare.common.logger import app_logger
from unishare.common.utils import ensure_utc, utc_now
from unishare.gamification.models import (
    ActionRecord, ActionType, ClassifiedAction, UserProgress, BadgeLevel, Timeframe
)
from unishare.gamification.points import classify

# Set up module logger
logger = app_logger.getChild("gamification.progress")

# Minimum total points for levels 1..11
LEVEL_THRESHOLDS: List[int] = [0, 25, 50, 100, 150, 200, 300, 400, 500, 750, 1000]

# Points per level once the table is exhausted
POINTS_PER_LEVEL_AFTER_MAX = 500

# Lowest level of each badge tier, in ascending order
BADGE_TIERS: List[Tuple[int, BadgeLevel]] = [
    (1, BadgeLevel.FRESHMAN),
    (3, BadgeLevel.INTERMEDIATE),
    (6, BadgeLevel.ADVANCED),
    (9, BadgeLevel.EXPERT),
    (11, BadgeLevel.MASTER),
]

TIMEFRAME_WINDOWS: Dict[Timeframe, datetime.timedelta] = {
    Timeframe.DAILY: datetime.timedelta(days=1),
    Timeframe.WEEKLY: datetime.timedelta(days=7),
    Timeframe.MONTHLY: datetime.timedelta(days=30),
}

ValidRecord = Tuple[ActionRecord, ClassifiedAction]


def level_min_points(level: int) -> int:
    """
    Minimum total points required for a level.

    Args:
        level: Level number (1-based)

    Returns:
        Point threshold of the level
    """
    if level <= 1:
        return 0
    if level <= len(LEVEL_THRESHOLDS):
        return LEVEL_THRESHOLDS[level - 1]
    return LEVEL_THRESHOLDS[-1] + (level - len(LEVEL_THRESHOLDS)) * POINTS_PER_LEVEL_AFTER_MAX


def level_for_points(total_points: int) -> int:
    """Level reached with the given total. Negative totals stay at level 1."""
    if total_points >= LEVEL_THRESHOLDS[-1]:
        extra = (total_points - LEVEL_THRESHOLDS[-1]) // POINTS_PER_LEVEL_AFTER_MAX
        return len(LEVEL_THRESHOLDS) + extra

    level = 1
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if total_points >= threshold:
            level = index + 1
    return level


def badge_for_level(level: int) -> BadgeLevel:
    badge = BadgeLevel.FRESHMAN
    for min_level, tier in BADGE_TIERS:
        if level >= min_level:
            badge = tier
    return badge


def badge_for_points(total_points: int) -> BadgeLevel:
    return badge_for_level(level_for_points(total_points))


def badge_min_points(badge: BadgeLevel) -> int:
    """Point threshold at which a badge tier starts."""
    for min_level, tier in BADGE_TIERS:
        if tier == badge:
            return level_min_points(min_level)
    raise ValueError(f"Unknown badge level: {badge}")


def level_progress(total_points: int) -> Dict[str, Any]:
    """
    Get information about progress through the current level.

    Args:
        total_points: User's total points

    Returns:
        Dict with current/next level, badge tiers and percent through level
    """
    current_level = level_for_points(total_points)
    current_level_min = level_min_points(current_level)
    next_level_min = level_min_points(current_level + 1)

    points_in_level = max(0, total_points - current_level_min)
    points_needed = next_level_min - current_level_min
    progress_percent = min(100.0, (points_in_level / points_needed) * 100) if points_needed > 0 else 100.0

    badge = badge_for_level(current_level)
    next_badge = None
    next_badge_points = None
    for min_level, tier in BADGE_TIERS:
        if min_level > current_level:
            next_badge = tier
            next_badge_points = level_min_points(min_level)
            break

    return {
        "current_level": current_level,
        "total_points": total_points,
        "current_level_min_points": current_level_min,
        "next_level_min_points": next_level_min,
        "points_in_level": points_in_level,
        "points_to_next_level": next_level_min - total_points,
        "progress_percent": round(progress_percent, 2),
        "badge_level": badge.value,
        "next_badge_level": next_badge.value if next_badge else None,
        "points_to_next_badge": next_badge_points - total_points if next_badge else None,
    }


def timeframe_start(
    timeframe: Timeframe,
    now: Optional[datetime.datetime] = None
) -> Optional[datetime.datetime]:
    """
    Start of the rolling window for a timeframe.

    Args:
        timeframe: Window to compute
        now: Reference time (defaults to the current UTC time)

    Returns:
        Window start, or None for all_time
    """
    timeframe = Timeframe.parse(timeframe)
    if timeframe == Timeframe.ALL_TIME:
        return None
    return ensure_utc(now or utc_now()) - TIMEFRAME_WINDOWS[timeframe]


def _coerce_record(raw: Any) -> ActionRecord:
    """
    Turn a ledger item into a record.

    Raises:
        ValueError: The item is not a usable record
    """
    if isinstance(raw, ActionRecord):
        return raw
    if isinstance(raw, Mapping):
        try:
            return ActionRecord.from_dict(raw)
        except (KeyError, TypeError) as e:
            raise ValueError(f"incomplete record: {e}") from e
    raise ValueError(f"unsupported ledger item of type {type(raw).__name__}")


def validate_ledger(ledger: Iterable[Any]) -> Tuple[List[ValidRecord], int]:
    """
    Classify every usable record of a ledger, oldest first.

    Malformed items (missing or unknown action type, missing timestamp,
    non-record values) are logged and skipped.

    Args:
        ledger: Action records or raw record mappings

    Returns:
        Tuple of (valid record/classification pairs, number of skipped items)
    """
    valid: List[ValidRecord] = []
    skipped = 0

    for raw in ledger:
        try:
            record = _coerce_record(raw)
            if record.occurred_at is None:
                raise ValueError("missing occurred_at")
            if record.occurred_at.utcoffset() != datetime.timedelta(0):
                record = dataclasses.replace(record, occurred_at=ensure_utc(record.occurred_at))
            classified = classify(record)
        except (ValueError, ValidationError) as e:
            skipped += 1
            logger.warning(f"Skipping malformed ledger record: {e}")
            continue
        valid.append((record, classified))

    # Stable: equal timestamps keep their ledger order
    valid.sort(key=lambda pair: pair[0].occurred_at)
    return valid, skipped


def windowed_points(
    ledger: Iterable[Any],
    since: Optional[datetime.datetime] = None,
    until: Optional[datetime.datetime] = None
) -> int:
    """
    Sum the point deltas of records inside a window.

    Args:
        ledger: Action records of one user (or of everyone)
        since: Inclusive window start; None for no lower bound
        until: Inclusive window end; None for no upper bound

    Returns:
        Net points earned in the window
    """
    valid, _ = validate_ledger(ledger)
    return sum(
        classified.points for record, classified in valid
        if _in_window(record.occurred_at, since, until)
    )


def _in_window(
    moment: datetime.datetime,
    since: Optional[datetime.datetime],
    until: Optional[datetime.datetime]
) -> bool:
    if since is not None and moment < ensure_utc(since):
        return False
    if until is not None and moment > ensure_utc(until):
        return False
    return True


def _streaks(days: Set[datetime.date], today: datetime.date) -> Tuple[int, int]:
    """
    Return (current, longest) runs of consecutive active days.

    The current run only counts while its last day is today or yesterday.
    """
    if not days:
        return 0, 0

    ordered = sorted(days)
    longest = run = 1
    for previous, day in zip(ordered, ordered[1:]):
        if day - previous == datetime.timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    # run now holds the streak ending on the latest active day
    if today - ordered[-1] > datetime.timedelta(days=1):
        run = 0
    return run, longest


def compute_progress(
    ledger: Iterable[Any],
    user_id: Optional[str] = None,
    unlocked: Optional[Iterable[str]] = None,
    department: Optional[str] = None,
    course: Optional[str] = None,
    now: Optional[datetime.datetime] = None
) -> UserProgress:
    """
    Fold a user's ledger into derived progress.

    Args:
        ledger: The user's action records (ActionRecord or raw mappings)
        user_id: Owner of the ledger; inferred from the records if omitted
        unlocked: Achievement ids already recorded as unlocked for the user
        department: User's department, carried through for ranking
        course: User's course, carried through for ranking
        now: Reference time for the current streak (defaults to the current UTC time)

    Returns:
        The user's progress
    """
    valid, skipped = validate_ledger(ledger)

    total_points = 0
    counts: Counter = Counter()
    upvotes_by_resource: Dict[str, int] = defaultdict(int)
    max_resource_upvotes = 0
    achievements = set(unlocked or ())
    active_days: Set[datetime.date] = set()

    for record, classified in valid:
        kind = record.kind
        total_points += classified.points
        counts[kind.value] += 1
        active_days.add(record.occurred_at.date())

        if kind == ActionType.RECEIVE_UPVOTE and record.resource_id:
            upvotes_by_resource[record.resource_id] += 1
            max_resource_upvotes = max(max_resource_upvotes, upvotes_by_resource[record.resource_id])

        if kind == ActionType.ACHIEVEMENT_UNLOCKED and record.metadata.achievement_id:
            achievements.add(record.metadata.achievement_id)

        if user_id is None:
            user_id = record.user_id

    if skipped:
        logger.warning(f"Skipped {skipped} malformed record(s) for user {user_id}")

    current_streak, longest_streak = _streaks(active_days, ensure_utc(now or utc_now()).date())
    level = level_for_points(total_points)

    return UserProgress(
        user_id=user_id,
        total_points=total_points,
        level=level,
        badge_level=badge_for_level(level),
        achievements_unlocked=frozenset(achievements),
        action_counts=dict(sorted(counts.items())),
        max_resource_upvotes=max_resource_upvotes,
        current_streak=current_streak,
        longest_streak=longest_streak,
        first_activity_at=valid[0][0].occurred_at if valid else None,
        last_activity_at=valid[-1][0].occurred_at if valid else None,
        department=department,
        course=course,
        skipped_records=skipped
    )
