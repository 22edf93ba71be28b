import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from healthtrack.core.exceptions import ConcurrentModification
from healthtrack.core.locks import KeyedLock
from healthtrack.crud.base import ActivityStore, DirtyMonth
from healthtrack.schemas.activity import DailyActivity, MonthlyRollup
from healthtrack.utils.dates import month_of
from healthtrack.utils.timezone import now_local


class InMemoryActivityStore(ActivityStore):
    """Process-local store for development and tests.

    Every call takes one internal lock so version checks are atomic; records
    are immutable pydantic models, so handing them out needs no copying.
    Every service sharing the store shares its key locks.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.key_locks = KeyedLock()
        self._daily: Dict[Tuple[str, str], DailyActivity] = {}
        self._rollups: Dict[Tuple[str, str], MonthlyRollup] = {}
        self._dirty: Dict[Tuple[str, str], DirtyMonth] = {}

    @contextmanager
    def lock_key(self, user_id: str, month: str) -> Iterator[None]:
        with self.key_locks.hold((user_id, month)):
            yield

    # --- daily activities ---
    def get_daily(self, user_id: str, day: str) -> Optional[DailyActivity]:
        with self._lock:
            return self._daily.get((user_id, day))

    def put_daily(self, user_id: str, day: str, record: DailyActivity) -> DailyActivity:
        with self._lock:
            self._daily[(user_id, day)] = record
            return record

    def delete_daily(self, user_id: str, day: str) -> bool:
        with self._lock:
            return self._daily.pop((user_id, day), None) is not None

    def list_daily(self, user_id: str) -> List[DailyActivity]:
        with self._lock:
            return [r for (uid, _), r in self._daily.items() if uid == user_id]

    def list_daily_for_month(self, user_id: str, month: str) -> List[DailyActivity]:
        with self._lock:
            return [
                r for (uid, day), r in self._daily.items()
                if uid == user_id and month_of(day) == month
            ]

    def list_user_ids_for_month(self, month: str) -> List[str]:
        with self._lock:
            return sorted({uid for (uid, day) in self._daily if month_of(day) == month})

    # --- monthly rollups ---
    def get_rollup(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        with self._lock:
            return self._rollups.get((user_id, month))

    def put_rollup(
        self, user_id: str, month: str, record: MonthlyRollup, expected_version: int
    ) -> MonthlyRollup:
        with self._lock:
            self._check_version(user_id, month, expected_version)
            stored = record.model_copy(update={
                "user_id": user_id,
                "month": month,
                "version": expected_version + 1,
                "updated_at": now_local(),
            })
            self._rollups[(user_id, month)] = stored
            return stored

    def delete_rollup(self, user_id: str, month: str, expected_version: int) -> None:
        with self._lock:
            self._check_version(user_id, month, expected_version)
            self._rollups.pop((user_id, month), None)

    def query_rollups_by_month(self, month: str) -> List[Tuple[str, MonthlyRollup]]:
        with self._lock:
            return [(uid, r) for (uid, m), r in self._rollups.items() if m == month]

    def _check_version(self, user_id: str, month: str, expected_version: int) -> None:
        current = self._rollups.get((user_id, month))
        current_version = current.version if current else 0
        if current_version != expected_version:
            raise ConcurrentModification(user_id, month, expected_version)

    # --- reconciliation markers ---
    def mark_month_dirty(self, user_id: str, month: str, reason: str) -> None:
        with self._lock:
            existing = self._dirty.get((user_id, month))
            if existing:
                existing.reason = reason
                existing.marked_at = now_local()
                return
            self._dirty[(user_id, month)] = DirtyMonth(
                user_id=user_id, month=month, reason=reason, attempts=0, marked_at=now_local()
            )

    def list_dirty_months(self, limit: int = 100) -> List[DirtyMonth]:
        with self._lock:
            return sorted(self._dirty.values(), key=lambda d: d.marked_at)[:limit]

    def clear_dirty_month(self, user_id: str, month: str, marked_before: Optional[datetime] = None) -> None:
        with self._lock:
            existing = self._dirty.get((user_id, month))
            if existing is None:
                return
            if marked_before is not None and existing.marked_at >= marked_before:
                return
            del self._dirty[(user_id, month)]

    def bump_dirty_attempts(self, user_id: str, month: str, reason: str) -> None:
        with self._lock:
            existing = self._dirty.get((user_id, month))
            if existing:
                existing.attempts += 1
                existing.reason = reason
