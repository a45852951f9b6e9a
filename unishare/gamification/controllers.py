"""
Gamification Controllers Module

This module provides API endpoints for gamification features, including:
- Awarding and previewing points for actions
- Progress summaries and achievement checks
- Leaderboards by scope and timeframe
- Platform analytics for administrators
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from unishare.common.exceptions import (
    AuthorizationError, BaseError, NotFoundError, StoreUnavailableError, ValidationError
)
from unishare.common.logger import app_logger
from unishare.gamification.models import (
    ActionType, LeaderboardScope, ScopeType, Timeframe, UserAction
)
from unishare.gamification.service import GamificationService, get_gamification_service

# Set up module logger
logger = app_logger.getChild("gamification.controllers")

# Create router
router = APIRouter(prefix="/gamification", tags=["Gamification"])


# Request / response models
class AwardActionRequest(BaseModel):
    action_type: str = Field(..., description="Action kind, e.g. upload_resource")
    resource_id: Optional[str] = Field(None, description="Related resource")
    collection_id: Optional[str] = Field(None, description="Related collection")
    resource_type: Optional[str] = Field(None, description="Resource type (document, video, ...)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Action metadata")


class AchievementResponse(BaseModel):
    id: str = Field(..., description="Achievement ID")
    title: str = Field(..., description="Achievement title")
    description: str = Field(..., description="Achievement description")
    icon: str = Field(..., description="Achievement icon")
    points_awarded: int = Field(..., description="Bonus points for unlocking")
    category: str = Field(..., description="Achievement category")
    rarity: str = Field(..., description="Achievement rarity")


class AwardActionResponse(BaseModel):
    success: bool = Field(True, description="Whether the action was recorded")
    action_type: str = Field(..., description="Recorded action kind")
    points_awarded: int = Field(..., description="Points earned for the action")
    total_points: int = Field(..., description="User's new total")
    level: int = Field(..., description="User's new level")
    badge_level: str = Field(..., description="User's new badge tier")
    new_achievements: List[AchievementResponse] = Field(..., description="Achievements unlocked")


class PointsPreviewResponse(BaseModel):
    action_type: str = Field(..., description="Action kind")
    points: int = Field(..., description="Points the action would earn")


class LeaderboardEntryResponse(BaseModel):
    user_id: str = Field(..., description="User ID")
    rank: int = Field(..., description="Rank on leaderboard")
    total_points: int = Field(..., description="Score for the timeframe")
    badge_level: str = Field(..., description="Badge tier")
    department: Optional[str] = Field(None, description="Department")
    course: Optional[str] = Field(None, description="Course")
    last_activity_at: Optional[str] = Field(None, description="Latest activity")


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntryResponse] = Field(..., description="Ranked entries")
    user_rank: Optional[int] = Field(None, description="Current user's rank")
    total_entries: int = Field(..., description="Number of entries returned")
    scope: str = Field(..., description="Scope key")
    timeframe: str = Field(..., description="Ranking window")


# Dependencies
async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Identify the caller from the ``X-User-Id`` header set by the
    authentication gateway.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def _require_admin(service: GamificationService, user_id: str, resource: str) -> None:
    if user_id not in service.settings.admin_user_ids:
        raise AuthorizationError("Admin access required", resource=resource, action="read")


def _http_error(e: BaseError, operation: str) -> HTTPException:
    """Map a domain error onto an HTTP error."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=403, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, StoreUnavailableError):
        logger.error(f"Store unavailable while {operation}: {e}")
        return HTTPException(status_code=503, detail="Gamification data is temporarily unavailable")

    logger.error(f"Error {operation}: {e}")
    return HTTPException(status_code=500, detail=f"Error {operation}")


@router.post("/points", response_model=AwardActionResponse)
async def award_points(
    request: AwardActionRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """
    Record an action for the current user and award its points.

    Returns:
        Points awarded, new totals and any achievements unlocked
    """
    try:
        action = UserAction(
            type=request.action_type,
            user_id=current_user_id,
            resource_id=request.resource_id,
            collection_id=request.collection_id,
            resource_type=request.resource_type,
            metadata=request.metadata
        )
        result = await service.award_action(action)
    except BaseError as e:
        raise _http_error(e, "awarding points") from e

    payload = result.to_dict()
    payload["success"] = True
    return payload


@router.get("/points", response_model=PointsPreviewResponse)
async def preview_points(
    action_type: str = Query(..., description="Action kind"),
    resource_type: Optional[str] = Query(None, description="Resource type"),
    is_verified: bool = Query(False, description="Whether the resource is verified"),
    upvotes: int = Query(0, ge=0, description="Current upvote count"),
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """Preview the points an action would earn, without recording it."""
    try:
        points = service.calculate_points({
            "action_type": action_type,
            "resource_type": resource_type,
            "metadata": {"is_verified": is_verified, "upvotes": upvotes},
        })
    except BaseError as e:
        raise _http_error(e, "calculating points") from e

    return {"action_type": action_type, "points": points}


@router.get("/progress")
async def get_progress(
    user_id: Optional[str] = Query(None, description="User to inspect (defaults to the caller)"),
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """
    Get a progress summary.

    Returns:
        Points, level, badge, achievements and engagement of the user
    """
    try:
        return await service.get_progress_summary(user_id or current_user_id)
    except BaseError as e:
        raise _http_error(e, "retrieving progress") from e


@router.get("/achievements")
async def check_achievements(
    user_id: Optional[str] = Query(None, description="User to check (defaults to the caller)"),
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """
    Check for newly earned achievements and return the achievement summary.

    Checking another user's achievements requires admin access, since it
    may unlock achievements on their behalf.
    """
    target_user_id = user_id or current_user_id
    try:
        if target_user_id != current_user_id:
            _require_admin(service, current_user_id, "achievements")

        new_achievements = await service.check_achievements(target_user_id)
        summary = await service.get_progress_summary(target_user_id)
    except BaseError as e:
        raise _http_error(e, "checking achievements") from e

    return {
        "user_id": target_user_id,
        "new_achievements": [achievement.to_dict() for achievement in new_achievements],
        "achievements": summary["achievements"],
        "total_points": summary["progress"]["total_points"],
        "badge_level": summary["progress"]["badge_level"],
    }


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    type: str = Query(ScopeType.GLOBAL.value, description="Scope: global, department or course"),
    department: Optional[str] = Query(None, description="Department for department scope"),
    course: Optional[str] = Query(None, description="Course for course scope"),
    timeframe: str = Query(Timeframe.ALL_TIME.value, description="Ranking window"),
    limit: Optional[int] = Query(None, description="Number of entries"),
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """
    Get a leaderboard and the caller's rank on it.

    Returns:
        Ranked entries, the caller's rank (None if not on the board) and the scope
    """
    try:
        scope = LeaderboardScope.build(type, department, course)
        timeframe = Timeframe.parse(timeframe)
        entries = await service.get_leaderboard(scope, timeframe, limit)
        user_rank = next((e.rank for e in entries if e.user_id == current_user_id), None)
        if user_rank is None:
            user_rank = await service.get_user_rank(current_user_id, scope, timeframe)
    except BaseError as e:
        raise _http_error(e, "retrieving leaderboard") from e

    return {
        "entries": [entry.to_dict() for entry in entries],
        "user_rank": user_rank,
        "total_entries": len(entries),
        "scope": scope.key,
        "timeframe": timeframe.value,
    }


@router.get("/analytics")
async def get_analytics(
    timeframe: str = Query(Timeframe.ALL_TIME.value, description="Analytics window"),
    type: str = Query("overview", description="overview, user_engagement or trends"),
    user_id: Optional[str] = Query(None, description="User for user_engagement"),
    days: Optional[int] = Query(None, description="Days of trend data"),
    current_user_id: str = Depends(get_current_user_id),
    service: GamificationService = Depends(get_gamification_service)
) -> Dict[str, Any]:
    """
    Get gamification analytics.

    ``overview`` and ``trends`` are restricted to administrators;
    ``user_engagement`` is available for the caller's own account.
    """
    try:
        if type == "overview":
            _require_admin(service, current_user_id, "analytics")
            report = await service.get_analytics(Timeframe.parse(timeframe))
            return {"type": type, "data": report.to_dict()}

        if type == "trends":
            _require_admin(service, current_user_id, "analytics")
            trends = await service.get_engagement_trends(days)
            return {"type": type, "data": trends}

        if type == "user_engagement":
            target_user_id = user_id or current_user_id
            if target_user_id != current_user_id:
                _require_admin(service, current_user_id, "analytics")
            engagement = await service.get_user_engagement(target_user_id)
            return {"type": type, "data": engagement.to_dict()}

        raise ValidationError(
            f"Invalid analytics type: {type!r}",
            {"type": ["overview", "user_engagement", "trends"]}
        )
    except BaseError as e:
        raise _http_error(e, "retrieving analytics") from e


@router.get("/action-types")
async def list_action_types() -> List[str]:
    """List the recognised action kinds."""
    return [action_type.value for action_type in ActionType]
