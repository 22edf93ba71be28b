from fastapi import APIRouter, Depends

from healthtrack.api import deps
from healthtrack.core.exceptions import NotFound
from healthtrack.schemas.activity import MonthlyLeaderboard, MonthlyRollup, UserScoreSummary
from healthtrack.services.activity_service import ActivityService

router = APIRouter()


@router.get("/rollups/{month}", response_model=MonthlyLeaderboard)
def list_month_rollups(
    month: str,
    _: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    """Every user's rollup for the month, highest points first"""
    return MonthlyLeaderboard(month=month, rollups=service.list_monthly_rollups(month))


@router.get("/rollups/{month}/me", response_model=MonthlyRollup)
def read_my_rollup(
    month: str,
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    rollup = service.get_monthly_rollup(user_id, month)
    if rollup is None:
        raise NotFound(f"No activity recorded for {month}")
    return rollup


@router.post("/rollups/{month}/me/recompute", response_model=MonthlyRollup)
def recompute_my_rollup(
    month: str,
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    rollup = service.recompute_monthly_rollup(user_id, month)
    if rollup is None:
        raise NotFound(f"No activity recorded for {month}")
    return rollup


@router.get("/stats/me", response_model=UserScoreSummary)
def read_my_stats(
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    return service.get_user_summary(user_id)
