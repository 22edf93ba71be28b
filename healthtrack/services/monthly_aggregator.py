from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from healthtrack.core.exceptions import ConcurrentModification, StorageFailure
from healthtrack.crud.base import ActivityStore
from healthtrack.health_scoring import score_activity
from healthtrack.schemas.activity import ActivityScore, DailyActivity, MonthlyRollup
from healthtrack.utils.dates import month_of
from healthtrack.utils.timezone import now_local

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Contribution:
    """What one day adds to its month's rollup."""

    points: int = 0
    exercise_days: int = 0
    greens_days: int = 0
    days: int = 0

    @classmethod
    def of(cls, activity_score: ActivityScore) -> "Contribution":
        return cls(
            points=score_activity(activity_score),
            exercise_days=1 if activity_score.exercise else 0,
            greens_days=1 if activity_score.greens else 0,
            days=1,
        )

    def __add__(self, other: "Contribution") -> "Contribution":
        return Contribution(
            points=self.points + other.points,
            exercise_days=self.exercise_days + other.exercise_days,
            greens_days=self.greens_days + other.greens_days,
            days=self.days + other.days,
        )

    def __neg__(self) -> "Contribution":
        return Contribution(-self.points, -self.exercise_days, -self.greens_days, -self.days)

    def __sub__(self, other: "Contribution") -> "Contribution":
        return self + (-other)

    def is_zero(self) -> bool:
        return self == Contribution()


def apply_contribution(rollup: MonthlyRollup, delta: Contribution) -> MonthlyRollup:
    return rollup.model_copy(update={
        "total_points": rollup.total_points + delta.points,
        "exercise_days": rollup.exercise_days + delta.exercise_days,
        "greens_days": rollup.greens_days + delta.greens_days,
        "total_days": rollup.total_days + delta.days,
    })


def is_consistent(rollup: MonthlyRollup) -> bool:
    """Cheap sanity bounds any rollup built from real days satisfies."""
    if min(rollup.total_points, rollup.exercise_days, rollup.greens_days, rollup.total_days) < 0:
        return False
    if rollup.exercise_days > rollup.total_days or rollup.greens_days > rollup.total_days:
        return False
    if rollup.total_days == 0:
        return rollup.total_points == 0
    return True


def compute_rollup(user_id: str, month: str, days: Iterable[DailyActivity]) -> Optional[MonthlyRollup]:
    """Batch fold of a month's days; None when the month has no days."""
    total = Contribution()
    for day in days:
        if month_of(day.date) != month:
            continue
        total = total + Contribution.of(day.score)
    if total.days == 0:
        return None
    return apply_contribution(MonthlyRollup.empty(user_id, month), total)


class MonthlyAggregator:
    """Keeps each (user, month) rollup equal to the fold of its days.

    Every mutation is a read-modify-write: serialised per key by the store's
    `lock_key` (shared by every writer on the backend) and double-checked by
    the rollup version. A version conflict re-reads and retries up to
    `max_retries` times before it is reported as StorageFailure.
    """

    def __init__(self, store: ActivityStore, max_retries: int = 3):
        self.store = store
        self.max_retries = max_retries

    # --- incremental path ---
    def on_daily_create(self, user_id: str, day: str, new_score: ActivityScore) -> Optional[MonthlyRollup]:
        return self._apply(user_id, month_of(day), Contribution.of(new_score))

    def on_daily_update(
        self, user_id: str, day: str, old_score: ActivityScore, new_score: ActivityScore
    ) -> Optional[MonthlyRollup]:
        delta = Contribution.of(new_score) - Contribution.of(old_score)
        return self._apply(user_id, month_of(day), delta)

    def on_daily_delete(self, user_id: str, day: str, old_score: ActivityScore) -> Optional[MonthlyRollup]:
        return self._apply(user_id, month_of(day), -Contribution.of(old_score))

    # --- reads ---
    def get_rollup(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        return self.store.get_rollup(user_id, month)

    def list_rollups_for_month(self, month: str) -> List[MonthlyRollup]:
        rollups = [rollup for _, rollup in self.store.query_rollups_by_month(month)]
        rollups.sort(key=lambda r: (-r.total_points, r.user_id))
        return rollups

    # --- batch path ---
    def recompute(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        """Discard the stored rollup and rebuild it from the month's days."""
        with self.store.lock_key(user_id, month):
            return self._recompute_locked(user_id, month)

    def _apply(self, user_id: str, month: str, delta: Contribution) -> Optional[MonthlyRollup]:
        with self.store.lock_key(user_id, month):
            for attempt in range(1, self.max_retries + 1):
                current = self.store.get_rollup(user_id, month)
                if delta.is_zero():
                    return current

                base = current or MonthlyRollup.empty(user_id, month)
                updated = apply_contribution(base, delta)
                if not is_consistent(updated):
                    logger.warning(
                        f"⚠️ [Aggregator] Rollup {user_id}/{month} drifted "
                        f"(days={updated.total_days}, points={updated.total_points}); recomputing"
                    )
                    return self._recompute_locked(user_id, month)

                try:
                    if updated.total_days == 0:
                        # Last day removed: a month without days has no rollup
                        if current is not None:
                            self.store.delete_rollup(user_id, month, expected_version=current.version)
                            logger.info(f"🗑️ [Aggregator] Removed empty rollup {user_id}/{month}")
                        return None
                    stored = self.store.put_rollup(user_id, month, updated, expected_version=base.version)
                    logger.debug(
                        f"✅ [Aggregator] {user_id}/{month} points={stored.total_points} "
                        f"days={stored.total_days} v{stored.version}"
                    )
                    return stored
                except ConcurrentModification:
                    logger.warning(
                        f"🔁 [Aggregator] Concurrent update on {user_id}/{month}, "
                        f"retry {attempt}/{self.max_retries}"
                    )

        raise StorageFailure(f"Rollup {user_id}/{month} kept changing; gave up after {self.max_retries} attempts")

    def _recompute_locked(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        for attempt in range(1, self.max_retries + 1):
            # Markers set after this instant may cover days the fold below misses
            started_at = now_local()
            days = self.store.list_daily_for_month(user_id, month)
            fresh = compute_rollup(user_id, month, days)
            current = self.store.get_rollup(user_id, month)
            try:
                if fresh is None:
                    if current is not None:
                        self.store.delete_rollup(user_id, month, expected_version=current.version)
                    result = None
                else:
                    result = self.store.put_rollup(
                        user_id, month, fresh, expected_version=current.version if current else 0
                    )
            except ConcurrentModification:
                logger.warning(
                    f"🔁 [Aggregator] Concurrent update during recompute of {user_id}/{month}, "
                    f"retry {attempt}/{self.max_retries}"
                )
                continue

            self.store.clear_dirty_month(user_id, month, marked_before=started_at)
            logger.info(
                f"🔄 [Aggregator] Recomputed {user_id}/{month} from {len(days)} day(s)"
            )
            return result

        raise StorageFailure(f"Recompute of {user_id}/{month} kept conflicting; gave up after {self.max_retries} attempts")
