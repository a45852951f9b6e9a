"""
Action Classifier

Maps each action to its point value and achievement category. The rule table
is fixed at deploy time; unknown action kinds fail fast rather than scoring 0.
"""

from typing import Any, Dict, Mapping, Union

from unishare.common.exceptions import ValidationError
from unishare.common.logger import app_logger
from unishare.gamification.models import (
    ActionType, ActionRecord, ActionMetadata, UserAction,
    ClassifiedAction, AchievementCategory, ResourceType
)

# Set up module logger
logger = app_logger.getChild("gamification.points")

# Base points per action kind. ACHIEVEMENT_UNLOCKED takes its value from
# the action metadata.
POINT_RULES: Dict[ActionType, int] = {
    ActionType.UPLOAD_RESOURCE: 10,
    ActionType.RECEIVE_UPVOTE: 5,
    ActionType.RECEIVE_DOWNVOTE: -2,
    ActionType.CAST_VOTE: 1,
    ActionType.RESOURCE_DOWNLOADED: 2,
    ActionType.CREATE_COLLECTION: 15,
    ActionType.ADD_TO_COLLECTION: 3,
    ActionType.SHARE_COLLECTION: 8,
    ActionType.COMPLETE_PROFILE: 25,
    ActionType.WEEKLY_ACTIVITY: 50,
    ActionType.TAG_RESOURCE: 1,
    ActionType.VERIFY_RESOURCE: 20,
    ActionType.COMMENT_RESOURCE: 3,
    ActionType.ACHIEVEMENT_UNLOCKED: 0,
}

ACTION_CATEGORIES: Dict[ActionType, AchievementCategory] = {
    ActionType.UPLOAD_RESOURCE: AchievementCategory.UPLOAD,
    ActionType.RECEIVE_UPVOTE: AchievementCategory.ENGAGEMENT,
    ActionType.RECEIVE_DOWNVOTE: AchievementCategory.ENGAGEMENT,
    ActionType.CAST_VOTE: AchievementCategory.ENGAGEMENT,
    ActionType.COMMENT_RESOURCE: AchievementCategory.ENGAGEMENT,
    ActionType.CREATE_COLLECTION: AchievementCategory.CURATION,
    ActionType.ADD_TO_COLLECTION: AchievementCategory.CURATION,
    ActionType.TAG_RESOURCE: AchievementCategory.CURATION,
    ActionType.VERIFY_RESOURCE: AchievementCategory.CURATION,
    ActionType.RESOURCE_DOWNLOADED: AchievementCategory.SOCIAL,
    ActionType.SHARE_COLLECTION: AchievementCategory.SOCIAL,
    ActionType.COMPLETE_PROFILE: AchievementCategory.MILESTONE,
    ActionType.WEEKLY_ACTIVITY: AchievementCategory.MILESTONE,
    ActionType.ACHIEVEMENT_UNLOCKED: AchievementCategory.MILESTONE,
}

RESOURCE_TYPE_BONUS: Dict[ResourceType, int] = {
    ResourceType.DOCUMENT: 0,
    ResourceType.VIDEO: 5,
    ResourceType.CODE: 8,
    ResourceType.ARTICLE: 3,
    ResourceType.LINK: 2,
}

VERIFIED_BONUS = 10
POPULARITY_THRESHOLD = 10
POPULARITY_BONUS_CAP = 50

# Actions whose value is fixed regardless of metadata
PENALTY_ACTIONS = frozenset({ActionType.RECEIVE_DOWNVOTE})

ActionLike = Union[ActionRecord, UserAction, Mapping[str, Any]]


def _unpack(action: ActionLike):
    """Normalize the accepted inputs to (kind, resource_type, metadata)."""
    if isinstance(action, ActionRecord):
        return action.kind, action.resource_type, action.metadata
    if isinstance(action, UserAction):
        return action.type, action.resource_type, ActionMetadata.from_dict(action.metadata)

    kind = ActionType.parse(action.get("action_type", action.get("type")))
    metadata = action.get("metadata")
    if not isinstance(metadata, ActionMetadata):
        metadata = ActionMetadata.from_dict(metadata)
    return kind, action.get("resource_type"), metadata


def _resource_bonus(resource_type: Any) -> int:
    if resource_type is None:
        return 0
    try:
        return RESOURCE_TYPE_BONUS[ResourceType(resource_type)]
    except ValueError:
        logger.debug(f"No bonus for resource type {resource_type!r}")
        return 0


def classify(action: ActionLike) -> ClassifiedAction:
    """
    Determine the point value and category of an action.

    Args:
        action: An ActionRecord, an inbound UserAction, or a raw mapping with
            ``action_type`` (or ``type``), ``resource_type`` and ``metadata``

    Returns:
        The classified action

    Raises:
        UnknownActionKind: If the action type is missing or not in the rule table
        ValidationError: If an achievement bonus is negative
    """
    kind, resource_type, metadata = _unpack(action)
    category = ACTION_CATEGORIES[kind]

    if kind == ActionType.ACHIEVEMENT_UNLOCKED:
        if metadata.points_awarded < 0:
            raise ValidationError(
                "Achievement bonus cannot be negative",
                {"points_awarded": metadata.points_awarded}
            )
        return ClassifiedAction(points=metadata.points_awarded, category=category)

    points = POINT_RULES[kind]

    # Penalties are flat and never clamped
    if kind in PENALTY_ACTIONS:
        return ClassifiedAction(points=points, category=category)

    if kind == ActionType.UPLOAD_RESOURCE:
        points += _resource_bonus(resource_type)

    if metadata.is_verified:
        points += VERIFIED_BONUS

    if metadata.upvotes > POPULARITY_THRESHOLD:
        points += min(metadata.upvotes, POPULARITY_BONUS_CAP)

    return ClassifiedAction(points=points, category=category)


def calculate_points(action: ActionLike) -> int:
    """
    Calculate the points an action is worth without recording it.

    Args:
        action: The action to score

    Returns:
        Point value (negative for penalties)
    """
    return classify(action).points
