from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    Index,
    UniqueConstraint,
)
from healthtrack.utils.timezone import now_local, to_utc_naive

from healthtrack.db.base import Base


def _utc_now():
    return to_utc_naive(now_local())


class DailyActivityRecord(Base):
    """One user's tracked behaviours for one calendar day"""
    __tablename__ = "daily_activities"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), nullable=False, unique=True)
    user_id = Column(String(128), nullable=False, index=True)
    activity_date = Column(Date, nullable=False)
    month = Column(String(7), nullable=False)  # YYYY-MM, derived from activity_date

    bad_meals = Column(Integer, nullable=False, default=0)
    alcohol = Column(Integer, nullable=False, default=0)
    snacks = Column(Integer, nullable=False, default=0)
    exercise = Column(Boolean, nullable=False, default=False)
    greens = Column(Boolean, nullable=False, default=False)
    total_score = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=_utc_now)
    updated_at = Column(DateTime, nullable=False, default=_utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="uq_daily_activities_user_date"),
        Index("idx_daily_activities_user_month", "user_id", "month"),
    )


class MonthlyRollupRecord(Base):
    """Running monthly totals derived from daily_activities"""
    __tablename__ = "monthly_rollups"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    month = Column(String(7), nullable=False, index=True)

    total_points = Column(Integer, nullable=False, default=0)
    exercise_days = Column(Integer, nullable=False, default=0)
    greens_days = Column(Integer, nullable=False, default=0)
    total_days = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    updated_at = Column(DateTime, nullable=False, default=_utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_monthly_rollups_user_month"),
    )


class DirtyMonthRecord(Base):
    """Months whose rollup must be recomputed after a failed incremental update"""
    __tablename__ = "rollup_dirty_months"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False)
    month = Column(String(7), nullable=False)
    reason = Column(String(500), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    marked_at = Column(DateTime, nullable=False, default=_utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_rollup_dirty_months_user_month"),
        Index("idx_rollup_dirty_months_marked_at", "marked_at"),
    )
