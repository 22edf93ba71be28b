from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from healthtrack.core.exceptions import InvalidInput, NotFound, StorageFailure
from healthtrack.crud.base import ActivityStore
from healthtrack.health_scoring import is_perfect_day, score_activity
from healthtrack.schemas.activity import (
    ROLLUP_APPLIED,
    ROLLUP_PENDING_RECOMPUTE,
    ActivityDeleteResult,
    ActivityScore,
    ActivityScorePatch,
    ActivityWriteResult,
    DailyActivity,
    MonthlyRollup,
    UserScoreSummary,
)
from healthtrack.services.monthly_aggregator import MonthlyAggregator
from healthtrack.utils.dates import month_of, parse_day, parse_month
from healthtrack.utils.timezone import now_local

logger = logging.getLogger(__name__)

ScoreInput = Union[ActivityScore, Mapping[str, Any]]
ScorePatchInput = Union[ActivityScorePatch, Mapping[str, Any]]


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid score: " + "; ".join(parts)


def coerce_score(score_input: Optional[ScoreInput]) -> ActivityScore:
    if score_input is None:
        raise InvalidInput("Score is required")
    if isinstance(score_input, ActivityScore):
        return score_input
    try:
        return ActivityScore.model_validate(score_input)
    except ValidationError as e:
        raise InvalidInput(_validation_message(e))


def coerce_patch(patch_input: Optional[ScorePatchInput]) -> ActivityScorePatch:
    if patch_input is None:
        return ActivityScorePatch()
    if isinstance(patch_input, ActivityScorePatch):
        return patch_input
    try:
        return ActivityScorePatch.model_validate(patch_input)
    except ValidationError as e:
        raise InvalidInput(_validation_message(e))


class ActivityService:
    """Daily activity writes and reads, keeping monthly rollups in step.

    A write holds the store's (user, month) lock from reading the existing
    day until the rollup is adjusted, so no other writer on the same backend
    can compute a delta from the same old day. The daily write is the primary operation: when it
    succeeds but the rollup cannot be adjusted, the month is marked dirty and
    the result reports `pending_recompute` instead of failing the request.
    """

    def __init__(self, store: ActivityStore, aggregator: Optional[MonthlyAggregator] = None, max_retries: int = 3):
        self.store = store
        self.aggregator = aggregator or MonthlyAggregator(store, max_retries=max_retries)

    # --- writes ---
    def create_or_replace_daily_activity(
        self, user_id: str, day: Optional[str], score_input: Optional[ScoreInput]
    ) -> ActivityWriteResult:
        day = parse_day(day)
        new_score = coerce_score(score_input)
        month = month_of(day)

        with self.store.lock_key(user_id, month):
            existing = self.store.get_daily(user_id, day)
            if existing is not None and existing.score == new_score:
                # Same payload again: nothing to store, nothing to fold
                return ActivityWriteResult(
                    activity=existing,
                    rollup=self.aggregator.get_rollup(user_id, month),
                    rollup_status=ROLLUP_APPLIED,
                )

            record = self._build_record(user_id, day, new_score, existing)
            stored = self.store.put_daily(user_id, day, record)

            if existing is None:
                logger.info(f"📝 [ActivityService] Created {user_id}/{day} score={stored.total_score}")
                rollup, status = self._sync_rollup(
                    user_id, month, lambda: self.aggregator.on_daily_create(user_id, day, new_score)
                )
            else:
                logger.info(
                    f"📝 [ActivityService] Replaced {user_id}/{day} "
                    f"score {existing.total_score} -> {stored.total_score}"
                )
                rollup, status = self._sync_rollup(
                    user_id, month, lambda: self.aggregator.on_daily_update(user_id, day, existing.score, new_score)
                )
        return ActivityWriteResult(activity=stored, rollup=rollup, rollup_status=status)

    def update_daily_activity(
        self, user_id: str, day: Optional[str], partial_score_input: Optional[ScorePatchInput]
    ) -> ActivityWriteResult:
        day = parse_day(day)
        patch = coerce_patch(partial_score_input)
        month = month_of(day)

        with self.store.lock_key(user_id, month):
            existing = self.store.get_daily(user_id, day)
            if existing is None:
                raise NotFound(f"Activity not found for {day}")

            new_score = existing.score.model_copy(update=patch.changes())
            if new_score == existing.score:
                return ActivityWriteResult(
                    activity=existing,
                    rollup=self.aggregator.get_rollup(user_id, month),
                    rollup_status=ROLLUP_APPLIED,
                )

            stored = self.store.put_daily(user_id, day, self._build_record(user_id, day, new_score, existing))
            logger.info(
                f"📝 [ActivityService] Updated {user_id}/{day} "
                f"score {existing.total_score} -> {stored.total_score}"
            )
            rollup, status = self._sync_rollup(
                user_id, month, lambda: self.aggregator.on_daily_update(user_id, day, existing.score, new_score)
            )
        return ActivityWriteResult(activity=stored, rollup=rollup, rollup_status=status)

    def delete_daily_activity(self, user_id: str, day: Optional[str]) -> ActivityDeleteResult:
        day = parse_day(day)
        month = month_of(day)

        with self.store.lock_key(user_id, month):
            existing = self.store.get_daily(user_id, day)
            if existing is None or not self.store.delete_daily(user_id, day):
                raise NotFound(f"Activity not found for {day}")

            logger.info(f"🗑️ [ActivityService] Deleted {user_id}/{day}")
            rollup, status = self._sync_rollup(
                user_id, month, lambda: self.aggregator.on_daily_delete(user_id, day, existing.score)
            )
        return ActivityDeleteResult(success=True, rollup=rollup, rollup_status=status)

    # --- reads ---
    def get_daily_activity(self, user_id: str, day: Optional[str]) -> Optional[DailyActivity]:
        return self.store.get_daily(user_id, parse_day(day))

    def list_daily_activities(self, user_id: str) -> List[DailyActivity]:
        return sorted(self.store.list_daily(user_id), key=lambda a: a.date, reverse=True)

    def get_monthly_rollup(self, user_id: str, month: Optional[str]) -> Optional[MonthlyRollup]:
        return self.aggregator.get_rollup(user_id, parse_month(month))

    def list_monthly_rollups(self, month: Optional[str]) -> List[MonthlyRollup]:
        return self.aggregator.list_rollups_for_month(parse_month(month))

    def recompute_monthly_rollup(self, user_id: str, month: Optional[str]) -> Optional[MonthlyRollup]:
        return self.aggregator.recompute(user_id, parse_month(month))

    def get_user_summary(self, user_id: str) -> UserScoreSummary:
        activities = self.store.list_daily(user_id)
        return UserScoreSummary(
            user_id=user_id,
            all_time_score=sum(score_activity(a.score) for a in activities),
            perfect_days=sum(1 for a in activities if is_perfect_day(a.score)),
            tracked_days=len(activities),
        )

    # --- helpers ---
    @staticmethod
    def _build_record(
        user_id: str, day: str, new_score: ActivityScore, existing: Optional[DailyActivity]
    ) -> DailyActivity:
        return DailyActivity(
            id=existing.id if existing else str(uuid.uuid4()),
            user_id=user_id,
            date=day,
            score=new_score,
            total_score=score_activity(new_score),
            updated_at=now_local(),
        )

    def _sync_rollup(
        self, user_id: str, month: str, adjust: Callable[[], Optional[MonthlyRollup]]
    ) -> Tuple[Optional[MonthlyRollup], str]:
        try:
            return adjust(), ROLLUP_APPLIED
        except StorageFailure as e:
            logger.error(f"❌ [ActivityService] Rollup update failed for {user_id}/{month}: {e}")
            try:
                self.store.mark_month_dirty(user_id, month, str(e))
            except StorageFailure as mark_error:
                logger.error(
                    f"❌ [ActivityService] Could not mark {user_id}/{month} for recompute: {mark_error}"
                )
                raise StorageFailure(
                    f"Daily record saved but rollup {user_id}/{month} is stale and could not be queued"
                ) from mark_error
            return None, ROLLUP_PENDING_RECOMPUTE
