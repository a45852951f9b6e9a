"""
Achievement Catalog and Evaluator

The catalog is static. Evaluation is one-way: an achievement already
unlocked is never re-checked or revoked, even if the user's points later
drop below its threshold.
"""

from typing import Dict, Iterable, List, Optional

from unishare.common.logger import app_logger
from unishare.gamification.models import (
    AchievementDefinition, AchievementCriteria, AchievementCategory,
    AchievementRarity, CriteriaType, UserProgress
)

# Set up module logger
logger = app_logger.getChild("gamification.achievements")


def _define(
    id: str,
    title: str,
    description: str,
    icon: str,
    points: int,
    category: AchievementCategory,
    rarity: AchievementRarity,
    criteria_type: CriteriaType,
    target: int,
    stat: Optional[str] = None
) -> AchievementDefinition:
    return AchievementDefinition(
        id=id,
        title=title,
        description=description,
        icon=icon,
        points_awarded=points,
        category=category,
        rarity=rarity,
        criteria=AchievementCriteria(type=criteria_type, target=target, stat=stat)
    )


_DEFAULT_ACHIEVEMENTS = (
    # Upload achievements
    _define("first_upload", "First Contribution", "Upload your first resource", "🎯", 10,
            AchievementCategory.UPLOAD, AchievementRarity.COMMON, CriteriaType.COUNT, 1, "upload"),
    _define("prolific_uploader", "Prolific Uploader", "Upload 10 resources", "📚", 50,
            AchievementCategory.UPLOAD, AchievementRarity.RARE, CriteriaType.COUNT, 10, "upload"),
    _define("content_master", "Content Master", "Upload 50 resources", "👑", 200,
            AchievementCategory.UPLOAD, AchievementRarity.EPIC, CriteriaType.COUNT, 50, "upload"),

    # Curation achievements
    _define("first_collection", "Curator", "Create your first collection", "📁", 15,
            AchievementCategory.CURATION, AchievementRarity.COMMON, CriteriaType.COUNT, 1, "collection"),
    _define("collection_master", "Collection Master", "Create 10 collections", "🗂️", 100,
            AchievementCategory.CURATION, AchievementRarity.RARE, CriteriaType.COUNT, 10, "collection"),

    # Engagement achievements
    _define("popular_content", "Popular Creator", "Receive 100 upvotes across all content", "⭐", 75,
            AchievementCategory.ENGAGEMENT, AchievementRarity.RARE, CriteriaType.COUNT, 100,
            "upvotes_received"),
    _define("viral_content", "Viral Creator", "Have a single resource receive 50+ upvotes", "🚀", 150,
            AchievementCategory.ENGAGEMENT, AchievementRarity.EPIC, CriteriaType.COUNT, 50,
            "single_resource_upvotes"),

    # Milestone achievements
    _define("points_100", "Rising Star", "Earn 100 points", "🌟", 25,
            AchievementCategory.MILESTONE, AchievementRarity.COMMON, CriteriaType.POINTS, 100),
    _define("points_500", "Expert Contributor", "Earn 500 points", "🏆", 100,
            AchievementCategory.MILESTONE, AchievementRarity.RARE, CriteriaType.POINTS, 500),
    _define("points_1000", "Platform Legend", "Earn 1000 points", "👑", 250,
            AchievementCategory.MILESTONE, AchievementRarity.LEGENDARY, CriteriaType.POINTS, 1000),

    # Social achievements
    _define("helpful_member", "Helpful Member", "Help others by downloading 25 resources", "🤝", 30,
            AchievementCategory.SOCIAL, AchievementRarity.COMMON, CriteriaType.COUNT, 25,
            "downloads_made"),

    # Streak achievements
    _define("weekly_warrior", "Weekly Warrior", "Stay active for 7 consecutive days", "🔥", 75,
            AchievementCategory.MILESTONE, AchievementRarity.RARE, CriteriaType.STREAK, 7),
)


def get_default_achievements() -> List[AchievementDefinition]:
    """
    Get the default achievement catalog.

    Returns:
        Achievement definitions in catalog order
    """
    return list(_DEFAULT_ACHIEVEMENTS)


def get_achievement(
    catalog: Iterable[AchievementDefinition],
    achievement_id: str
) -> Optional[AchievementDefinition]:
    """Look up a catalog entry by id."""
    for achievement in catalog:
        if achievement.id == achievement_id:
            return achievement
    return None


def achievement_title(achievement_id: str) -> str:
    """Display title of a default achievement, falling back to the id."""
    achievement = get_achievement(_DEFAULT_ACHIEVEMENTS, achievement_id)
    return achievement.title if achievement else achievement_id


def evaluate(
    progress: UserProgress,
    catalog: Optional[Iterable[AchievementDefinition]] = None,
    already_unlocked: Optional[Iterable[str]] = None
) -> List[AchievementDefinition]:
    """
    Find achievements the user has newly qualified for.

    Args:
        progress: The user's current progress
        catalog: Achievement definitions to check (defaults to the default catalog)
        already_unlocked: Ids recorded as unlocked; these are never returned

    Returns:
        Newly qualifying achievements, in catalog order
    """
    if catalog is None:
        catalog = _DEFAULT_ACHIEVEMENTS

    skip = set(already_unlocked or ()) | set(progress.achievements_unlocked)
    newly_unlocked = [
        achievement for achievement in catalog
        if achievement.id not in skip and achievement.predicate(progress)
    ]

    if newly_unlocked:
        logger.debug(
            f"User {progress.user_id} qualifies for: "
            f"{', '.join(a.id for a in newly_unlocked)}"
        )
    return newly_unlocked


def catalog_by_id(catalog: Iterable[AchievementDefinition]) -> Dict[str, AchievementDefinition]:
    return {achievement.id: achievement for achievement in catalog}
