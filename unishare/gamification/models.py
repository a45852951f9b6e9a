"""
Gamification System Models

This module defines the core data records of the gamification engine:
1. Action kinds and the immutable Action Record ledger entry
2. Derived user progress (points, level, badge, streaks, unlocked achievements)
3. Achievement definitions and their threshold criteria
4. Leaderboard scopes and entries

Records are plain dataclasses exchanged between the pure components; none of
them hold references to the store.
"""

import enum
import datetime
from typing import Dict, List, Any, Optional, FrozenSet, Mapping
from dataclasses import dataclass, field

from unishare.common.exceptions import UnknownActionKind, ValidationError
from unishare.common.serialization import SerializableMixin
from unishare.common.utils import parse_datetime, utc_now


class ActionType(str, enum.Enum):
    """Closed set of point-worthy user actions."""
    UPLOAD_RESOURCE = "upload_resource"
    RECEIVE_UPVOTE = "receive_upvote"
    RECEIVE_DOWNVOTE = "receive_downvote"
    CAST_VOTE = "cast_vote"
    RESOURCE_DOWNLOADED = "resource_downloaded"
    CREATE_COLLECTION = "create_collection"
    ADD_TO_COLLECTION = "add_to_collection"
    SHARE_COLLECTION = "share_collection"
    COMPLETE_PROFILE = "complete_profile"
    WEEKLY_ACTIVITY = "weekly_activity"
    TAG_RESOURCE = "tag_resource"
    VERIFY_RESOURCE = "verify_resource"
    COMMENT_RESOURCE = "comment_resource"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"

    @classmethod
    def parse(cls, value: Any) -> "ActionType":
        """
        Resolve a raw value into an action kind.

        Raises:
            UnknownActionKind: If the value is not a known action type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownActionKind(value) from None


class ResourceType(str, enum.Enum):
    """Kinds of uploaded study material."""
    DOCUMENT = "document"
    VIDEO = "video"
    CODE = "code"
    ARTICLE = "article"
    LINK = "link"


class AchievementCategory(str, enum.Enum):
    """Achievement trigger categories."""
    UPLOAD = "upload"
    ENGAGEMENT = "engagement"
    CURATION = "curation"
    SOCIAL = "social"
    MILESTONE = "milestone"


class AchievementRarity(str, enum.Enum):
    """Rarity tiers for achievements."""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def color(self) -> str:
        """Get the display color for this rarity tier."""
        return {
            AchievementRarity.COMMON: "#8E8E8E",
            AchievementRarity.RARE: "#3498DB",
            AchievementRarity.EPIC: "#9B59B6",
            AchievementRarity.LEGENDARY: "#F1C40F"
        }[self]


class BadgeLevel(str, enum.Enum):
    """Coarse reputation tiers, ordered from lowest to highest."""
    FRESHMAN = "Freshman"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"
    MASTER = "Master"


class Timeframe(str, enum.Enum):
    """Ranking / analytics windows."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"

    @classmethod
    def parse(cls, value: Any) -> "Timeframe":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid timeframe: {value!r}",
                {"timeframe": [t.value for t in cls]}
            ) from None


class ScopeType(str, enum.Enum):
    """Leaderboard population filters."""
    GLOBAL = "global"
    DEPARTMENT = "department"
    COURSE = "course"


class CriteriaType(str, enum.Enum):
    """How an achievement threshold is measured."""
    COUNT = "count"
    POINTS = "points"
    STREAK = "streak"


def _int_field(data: Dict[str, Any], name: str) -> int:
    value = data.pop(name, 0)
    try:
        return int(value or 0)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Metadata field {name} must be an integer", {name: repr(value)}) from e


@dataclass(frozen=True)
class ActionMetadata(SerializableMixin):
    """
    Typed metadata attached to an action.

    The known keys drive point modifiers and achievement bookkeeping;
    anything else is kept verbatim in ``extra`` for analytics.
    """

    __serializable_fields__ = [
        "is_verified", "upvotes", "achievement_id", "points_awarded", "extra"
    ]

    is_verified: bool = False
    upvotes: int = 0
    achievement_id: Optional[str] = None
    points_awarded: int = 0
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ActionMetadata":
        """
        Split a raw metadata mapping into typed fields and ``extra``.

        Raises:
            ValidationError: If a numeric field is not an integer
        """
        if not data:
            return cls()
        data = dict(data)
        return cls(
            is_verified=bool(data.pop("is_verified", False)),
            upvotes=_int_field(data, "upvotes"),
            achievement_id=data.pop("achievement_id", None),
            points_awarded=_int_field(data, "points_awarded"),
            extra=data
        )

    def to_storage(self) -> Dict[str, Any]:
        """Flatten back into a single mapping for the JSON column."""
        stored: Dict[str, Any] = dict(self.extra)
        if self.is_verified:
            stored["is_verified"] = True
        if self.upvotes:
            stored["upvotes"] = self.upvotes
        if self.achievement_id is not None:
            stored["achievement_id"] = self.achievement_id
        if self.points_awarded:
            stored["points_awarded"] = self.points_awarded
        return stored


@dataclass(frozen=True)
class ActionRecord(SerializableMixin):
    """
    Immutable ledger entry for one point-worthy action.

    ``action_type`` is kept as the raw stored string so that corrupted rows
    can still be represented and skipped downstream; ``kind`` validates it.
    """

    __serializable_fields__ = [
        "id", "user_id", "action_type", "resource_id", "collection_id",
        "resource_type", "metadata", "occurred_at"
    ]

    user_id: str
    action_type: Optional[str]
    occurred_at: Optional[datetime.datetime]
    resource_id: Optional[str] = None
    collection_id: Optional[str] = None
    resource_type: Optional[str] = None
    metadata: ActionMetadata = field(default_factory=ActionMetadata)
    id: Optional[int] = None

    @property
    def kind(self) -> ActionType:
        """The validated action kind."""
        return ActionType.parse(self.action_type)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionRecord":
        """
        Build a record from a raw mapping (API payload or exported row).

        Raises:
            ValueError: If the timestamp cannot be parsed
            KeyError: If ``user_id`` is missing
        """
        action_type = data.get("action_type")
        if isinstance(action_type, enum.Enum):
            action_type = action_type.value
        return cls(
            id=data.get("id"),
            user_id=str(data["user_id"]),
            action_type=action_type,
            resource_id=data.get("resource_id"),
            collection_id=data.get("collection_id"),
            resource_type=data.get("resource_type"),
            metadata=ActionMetadata.from_dict(data.get("metadata")),
            occurred_at=parse_datetime(data.get("occurred_at"))
        )


@dataclass
class UserAction:
    """Inbound action reported by a request handler, before it is recorded."""

    type: ActionType
    user_id: str
    resource_id: Optional[str] = None
    collection_id: Optional[str] = None
    resource_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.type = ActionType.parse(self.type)

    def to_record(self, occurred_at: Optional[datetime.datetime] = None) -> ActionRecord:
        """Freeze this action into a ledger record."""
        return ActionRecord(
            user_id=self.user_id,
            action_type=self.type.value,
            resource_id=self.resource_id,
            collection_id=self.collection_id,
            resource_type=self.resource_type,
            metadata=ActionMetadata.from_dict(self.metadata),
            occurred_at=occurred_at or utc_now()
        )


@dataclass(frozen=True)
class ClassifiedAction:
    """Point value and achievement category of one action."""

    points: int
    category: AchievementCategory


# Named counters that achievement criteria can refer to
STAT_ACTIONS = {
    "upload": ActionType.UPLOAD_RESOURCE,
    "collection": ActionType.CREATE_COLLECTION,
    "upvotes_received": ActionType.RECEIVE_UPVOTE,
    "downloads_made": ActionType.RESOURCE_DOWNLOADED,
    "votes_cast": ActionType.CAST_VOTE,
}


@dataclass
class UserProgress(SerializableMixin):
    """
    Derived gamification state of one user.

    Always recomputed from the ledger; never the source of truth.
    """

    __serializable_fields__ = [
        "user_id", "total_points", "level", "badge_level",
        "achievements_unlocked", "action_counts", "max_resource_upvotes",
        "current_streak", "longest_streak", "first_activity_at",
        "last_activity_at", "department", "course", "skipped_records"
    ]

    user_id: Optional[str]
    total_points: int = 0
    level: int = 1
    badge_level: BadgeLevel = BadgeLevel.FRESHMAN
    achievements_unlocked: FrozenSet[str] = frozenset()
    action_counts: Dict[str, int] = field(default_factory=dict)
    max_resource_upvotes: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    first_activity_at: Optional[datetime.datetime] = None
    last_activity_at: Optional[datetime.datetime] = None
    department: Optional[str] = None
    course: Optional[str] = None
    skipped_records: int = 0

    def count(self, action_type: ActionType) -> int:
        """Number of valid records of the given kind."""
        return self.action_counts.get(action_type.value, 0)

    def stat(self, name: str) -> int:
        """
        Resolve a named counter used by achievement criteria.

        Raises:
            KeyError: If the counter name is unknown
        """
        if name == "single_resource_upvotes":
            return self.max_resource_upvotes
        return self.count(STAT_ACTIONS[name])


@dataclass(frozen=True)
class AchievementCriteria(SerializableMixin):
    """Threshold predicate over a user's progress."""

    __serializable_fields__ = ["type", "target", "stat"]

    type: CriteriaType
    target: int
    stat: Optional[str] = None

    def measure(self, progress: UserProgress) -> int:
        """Current value of the measured quantity."""
        if self.type == CriteriaType.POINTS:
            return progress.total_points
        if self.type == CriteriaType.STREAK:
            return progress.longest_streak
        return progress.stat(self.stat)

    def is_satisfied(self, progress: UserProgress) -> bool:
        return self.measure(progress) >= self.target


@dataclass(frozen=True)
class AchievementDefinition(SerializableMixin):
    """
    A one-way, threshold-triggered milestone.

    Definitions are static; unlocking is tracked separately per user.
    """

    __serializable_fields__ = [
        "id", "title", "description", "icon", "points_awarded",
        "category", "rarity", "criteria"
    ]

    id: str
    title: str
    description: str
    icon: str
    points_awarded: int
    category: AchievementCategory
    rarity: AchievementRarity
    criteria: AchievementCriteria

    def predicate(self, progress: UserProgress) -> bool:
        return self.criteria.is_satisfied(progress)

    def progress_percent(self, progress: UserProgress) -> float:
        """How far the user is towards this achievement, capped at 100."""
        if self.criteria.target <= 0:
            return 100.0
        value = max(0, self.criteria.measure(progress))
        return min(100.0, value / self.criteria.target * 100)


@dataclass(frozen=True)
class LeaderboardScope(SerializableMixin):
    """Population filter over which a ranking is computed."""

    __serializable_fields__ = ["type", "department", "course"]

    type: ScopeType = ScopeType.GLOBAL
    department: Optional[str] = None
    course: Optional[str] = None

    @classmethod
    def build(
        cls,
        type: Any = ScopeType.GLOBAL,
        department: Optional[str] = None,
        course: Optional[str] = None
    ) -> "LeaderboardScope":
        """
        Validate raw scope parameters.

        Raises:
            ValidationError: Unknown type, or a department/course scope
                without its value
        """
        try:
            scope_type = ScopeType(type)
        except ValueError:
            raise ValidationError(
                f"Invalid leaderboard scope: {type!r}",
                {"type": [s.value for s in ScopeType]}
            ) from None

        if scope_type == ScopeType.DEPARTMENT and not department:
            raise ValidationError("Department scope requires a department", {"department": "required"})
        if scope_type == ScopeType.COURSE and not course:
            raise ValidationError("Course scope requires a course", {"course": "required"})

        return cls(type=scope_type, department=department, course=course)

    @property
    def key(self) -> str:
        """Stable string identifying this scope (cache keys, entries)."""
        if self.type == ScopeType.DEPARTMENT:
            return f"department:{self.department}"
        if self.type == ScopeType.COURSE:
            return f"course:{self.course}"
        return "global"


@dataclass(frozen=True)
class LeaderboardEntry(SerializableMixin):
    """One ranked row of a leaderboard view."""

    __serializable_fields__ = [
        "user_id", "scope_key", "timeframe", "rank", "total_points",
        "badge_level", "department", "course", "last_activity_at"
    ]

    user_id: str
    scope_key: str
    timeframe: Timeframe
    rank: int
    total_points: int
    badge_level: BadgeLevel = BadgeLevel.FRESHMAN
    department: Optional[str] = None
    course: Optional[str] = None
    last_activity_at: Optional[datetime.datetime] = None


@dataclass
class AwardResult(SerializableMixin):
    """Outcome of recording one action."""

    __serializable_fields__ = [
        "user_id", "action_type", "points_awarded", "new_achievements",
        "total_points", "level", "badge_level"
    ]

    user_id: str
    action_type: ActionType
    points_awarded: int
    new_achievements: List[AchievementDefinition] = field(default_factory=list)
    total_points: int = 0
    level: int = 1
    badge_level: BadgeLevel = BadgeLevel.FRESHMAN


@dataclass
class UserEngagement(SerializableMixin):
    """Per-user engagement snapshot used by the analytics views."""

    __serializable_fields__ = [
        "user_id", "total_points", "achievements_count", "uploads_count",
        "collections_count", "votes_given", "votes_received",
        "last_activity_at", "streak_days", "engagement_score"
    ]

    user_id: str
    total_points: int = 0
    achievements_count: int = 0
    uploads_count: int = 0
    collections_count: int = 0
    votes_given: int = 0
    votes_received: int = 0
    last_activity_at: Optional[datetime.datetime] = None
    streak_days: int = 0
    engagement_score: int = 0


@dataclass
class AnalyticsReport(SerializableMixin):
    """
    Population-level aggregates for one timeframe.

    Every section is always present; an empty population yields zeroes and
    empty collections rather than missing keys.
    """

    __serializable_fields__ = [
        "timeframe", "generated_at", "engagement", "points_distribution",
        "achievement_stats", "leaderboard_stats", "activity_trends"
    ]

    timeframe: Timeframe
    generated_at: datetime.datetime
    engagement: Dict[str, Any] = field(default_factory=dict)
    points_distribution: Dict[str, Any] = field(default_factory=dict)
    achievement_stats: Dict[str, Any] = field(default_factory=dict)
    leaderboard_stats: Dict[str, Any] = field(default_factory=dict)
    activity_trends: List[Dict[str, Any]] = field(default_factory=list)
