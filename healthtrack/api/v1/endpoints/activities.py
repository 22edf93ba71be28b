from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query

from healthtrack.api import deps
from healthtrack.schemas.activity import (
    ActivityDeleteResult,
    ActivityWriteResult,
    DailyActivity,
    DailyActivityCreate,
    DailyActivityUpdate,
)
from healthtrack.services.activity_service import ActivityService

router = APIRouter()


@router.get("", response_model=Union[List[DailyActivity], Optional[DailyActivity]])
def read_activities(
    date: Optional[str] = Query(None, description="YYYY-MM-DD; omit to list every day"),
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    """One day's activity (or null) when `date` is given, otherwise all days newest first"""
    if date is not None:
        return service.get_daily_activity(user_id, date)
    return service.list_daily_activities(user_id)


@router.post("", response_model=ActivityWriteResult)
def create_or_replace_activity(
    *,
    body: DailyActivityCreate,
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    return service.create_or_replace_daily_activity(user_id, body.date, body.score)


@router.put("/{date}", response_model=ActivityWriteResult)
def update_activity(
    date: str,
    body: DailyActivityUpdate,
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    return service.update_daily_activity(user_id, date, body.score)


@router.delete("/{date}", response_model=ActivityDeleteResult)
def delete_activity(
    date: str,
    user_id: str = Depends(deps.get_current_user_id),
    service: ActivityService = Depends(deps.get_activity_service),
):
    return service.delete_daily_activity(user_id, date)
