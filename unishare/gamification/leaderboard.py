"""
Leaderboard Ranker

Orders users within a scope by points, all-time or over a rolling window.
Ties go to whoever reached the score first (earliest last activity), then to
the lower user id, so identical inputs always produce identical rankings.
"""

import datetime
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from unishare.common.exceptions import ValidationError
from unishare.common.logger import app_logger
from unishare.common.utils import utc_now
from unishare.gamification.models import (
    LeaderboardEntry, LeaderboardScope, ScopeType, Timeframe, UserProgress
)
from unishare.gamification.progress import timeframe_start, windowed_points

# Set up module logger
logger = app_logger.getChild("gamification.leaderboard")

# Sorts after every real timestamp
_NO_ACTIVITY = datetime.datetime.max.replace(tzinfo=datetime.timezone.utc)


def scope_key(scope: LeaderboardScope) -> str:
    """
    Stable identifier for a scope.

    Returns:
        ``"global"``, ``"department:<name>"`` or ``"course:<name>"``
    """
    return scope.key


def in_scope(progress: UserProgress, scope: LeaderboardScope) -> bool:
    """Whether a user belongs to the scope's population."""
    if scope.type == ScopeType.DEPARTMENT:
        return progress.department == scope.department
    if scope.type == ScopeType.COURSE:
        return progress.course == scope.course
    return True


def _sort_key(score: int, progress: UserProgress) -> Tuple[int, datetime.datetime, str]:
    return (-score, progress.last_activity_at or _NO_ACTIVITY, str(progress.user_id))


def rank(
    users: Iterable[UserProgress],
    scope: LeaderboardScope,
    timeframe: Timeframe = Timeframe.ALL_TIME,
    ledgers: Optional[Mapping[str, Iterable[Any]]] = None,
    now: Optional[datetime.datetime] = None,
    limit: Optional[int] = None
) -> List[LeaderboardEntry]:
    """
    Rank users within a scope.

    Args:
        users: Progress of every candidate user
        scope: Population filter
        timeframe: all_time ranks by total points; other timeframes rank by
            points earned inside the rolling window
        ledgers: Action records per user id, required for windowed timeframes
        now: Reference time for the window
        limit: Maximum number of entries to return

    Returns:
        Entries with contiguous 1-based ranks

    Raises:
        ValidationError: Invalid scope, or a windowed timeframe without ledgers
    """
    timeframe = Timeframe.parse(timeframe)
    if scope.type != ScopeType.GLOBAL:
        # Re-validate scopes built directly rather than through build()
        scope = LeaderboardScope.build(scope.type, scope.department, scope.course)

    since = timeframe_start(timeframe, now)
    if since is not None and ledgers is None:
        raise ValidationError(
            f"Ranking by {timeframe.value} points requires user ledgers",
            {"ledgers": "required"}
        )

    scored: List[Tuple[int, UserProgress]] = []
    for progress in users:
        if not in_scope(progress, scope):
            continue
        if since is None:
            score = progress.total_points
        else:
            score = windowed_points(ledgers.get(progress.user_id, ()), since, now or utc_now())
        scored.append((score, progress))

    scored.sort(key=lambda pair: _sort_key(*pair))
    if limit is not None:
        scored = scored[:limit]

    key = scope.key
    entries = [
        LeaderboardEntry(
            user_id=progress.user_id,
            scope_key=key,
            timeframe=timeframe,
            rank=index + 1,
            total_points=score,
            badge_level=progress.badge_level,
            department=progress.department,
            course=progress.course,
            last_activity_at=progress.last_activity_at
        )
        for index, (score, progress) in enumerate(scored)
    ]

    logger.debug(f"Ranked {len(entries)} user(s) for {key}/{timeframe.value}")
    return entries


def find_rank(entries: Iterable[LeaderboardEntry], user_id: str) -> Optional[int]:
    """
    Rank of a user in a computed leaderboard.

    Args:
        entries: Ranked entries
        user_id: User to find

    Returns:
        The user's rank, or None if the user is not on the board
    """
    for entry in entries:
        if entry.user_id == user_id:
            return entry.rank
    return None
