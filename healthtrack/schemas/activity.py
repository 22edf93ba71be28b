from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictBool

from healthtrack.utils.dates import MONTH_PATTERN

ROLLUP_APPLIED = "applied"
ROLLUP_PENDING_RECOMPUTE = "pending_recompute"


class ActivityScore(BaseModel):
    """One day's tracked behaviours, as entered by the user."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    bad_meals: int = Field(..., ge=0, alias="badMeals")
    alcohol: int = Field(..., ge=0)
    snacks: int = Field(..., ge=0)
    exercise: StrictBool
    greens: StrictBool


class ActivityScorePatch(BaseModel):
    """Partial score used by updates; unset fields keep their stored value."""

    model_config = ConfigDict(populate_by_name=True)

    bad_meals: Optional[int] = Field(None, ge=0, alias="badMeals")
    alcohol: Optional[int] = Field(None, ge=0)
    snacks: Optional[int] = Field(None, ge=0)
    exercise: Optional[StrictBool] = None
    greens: Optional[StrictBool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class DailyActivity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, from_attributes=True)

    id: str
    user_id: str = Field(..., alias="userId")
    date: str
    score: ActivityScore
    total_score: int = Field(..., alias="totalScore")
    updated_at: datetime = Field(..., alias="updatedAt")


class MonthlyRollup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(..., alias="userId")
    month: str
    total_points: int = Field(0, alias="totalPoints")
    exercise_days: int = Field(0, alias="exerciseDays")
    greens_days: int = Field(0, alias="greensDays")
    total_days: int = Field(0, alias="totalDays")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    # Optimistic concurrency token; 0 means "not stored yet"
    version: int = 0

    @classmethod
    def empty(cls, user_id: str, month: str) -> "MonthlyRollup":
        """Zero baseline for a month that has no stored rollup."""
        return cls(user_id=user_id, month=month)

    def same_totals(self, other: "MonthlyRollup") -> bool:
        return (
            self.total_points == other.total_points
            and self.exercise_days == other.exercise_days
            and self.greens_days == other.greens_days
            and self.total_days == other.total_days
        )


class UserScoreSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    all_time_score: int = Field(0, alias="allTimeScore")
    perfect_days: int = Field(0, alias="perfectDays")
    tracked_days: int = Field(0, alias="trackedDays")


# --- Request / response bodies ---

class DailyActivityCreate(BaseModel):
    # Presence and format are checked by ActivityService so every caller gets InvalidInput
    date: Optional[str] = None
    score: Optional[ActivityScore] = None


class DailyActivityUpdate(BaseModel):
    score: ActivityScorePatch = Field(default_factory=ActivityScorePatch)


class ActivityWriteResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    activity: DailyActivity
    rollup: Optional[MonthlyRollup] = None
    rollup_status: str = Field(ROLLUP_APPLIED, alias="rollupStatus")


class ActivityDeleteResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    rollup: Optional[MonthlyRollup] = None
    rollup_status: str = Field(ROLLUP_APPLIED, alias="rollupStatus")


class MonthlyLeaderboard(BaseModel):
    month: str = Field(..., pattern=MONTH_PATTERN)
    rollups: List[MonthlyRollup] = []
