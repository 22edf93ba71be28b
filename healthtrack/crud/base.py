from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import ContextManager, List, Optional, Tuple

from healthtrack.schemas.activity import DailyActivity, MonthlyRollup


@dataclass
class DirtyMonth:
    user_id: str
    month: str
    reason: Optional[str]
    attempts: int
    marked_at: datetime


class ActivityStore(ABC):
    """Storage collaborator for daily activities and their monthly rollups.

    Implementations wrap every backend error in StorageFailure. Rollup writes
    are conditional on `expected_version` (0 = must not exist yet) and raise
    ConcurrentModification when another writer got there first.

    `lock_key` serialises whole read-modify-write sequences for one
    (user, month) across every writer sharing the backend, so a rollup delta
    is always computed from the daily record it replaces.
    """

    @abstractmethod
    def lock_key(self, user_id: str, month: str) -> ContextManager[None]:
        """Exclusive, re-entrant hold on (user_id, month) for the current thread"""

    # --- daily activities ---
    @abstractmethod
    def get_daily(self, user_id: str, day: str) -> Optional[DailyActivity]:
        ...

    @abstractmethod
    def put_daily(self, user_id: str, day: str, record: DailyActivity) -> DailyActivity:
        ...

    @abstractmethod
    def delete_daily(self, user_id: str, day: str) -> bool:
        """True if a record existed and was removed"""

    @abstractmethod
    def list_daily(self, user_id: str) -> List[DailyActivity]:
        ...

    @abstractmethod
    def list_daily_for_month(self, user_id: str, month: str) -> List[DailyActivity]:
        ...

    @abstractmethod
    def list_user_ids_for_month(self, month: str) -> List[str]:
        """Users with at least one daily activity in `month`"""

    # --- monthly rollups ---
    @abstractmethod
    def get_rollup(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        ...

    @abstractmethod
    def put_rollup(
        self, user_id: str, month: str, record: MonthlyRollup, expected_version: int
    ) -> MonthlyRollup:
        """Store `record` as version `expected_version + 1` and return what was stored"""

    @abstractmethod
    def delete_rollup(self, user_id: str, month: str, expected_version: int) -> None:
        ...

    @abstractmethod
    def query_rollups_by_month(self, month: str) -> List[Tuple[str, MonthlyRollup]]:
        ...

    # --- reconciliation markers ---
    @abstractmethod
    def mark_month_dirty(self, user_id: str, month: str, reason: str) -> None:
        """Create the marker, or refresh its reason and marked_at if it exists"""

    @abstractmethod
    def list_dirty_months(self, limit: int = 100) -> List[DirtyMonth]:
        """Oldest markers first"""

    @abstractmethod
    def clear_dirty_month(self, user_id: str, month: str, marked_before: Optional[datetime] = None) -> None:
        """Drop the marker; with `marked_before`, only if it was last marked strictly before that"""

    @abstractmethod
    def bump_dirty_attempts(self, user_id: str, month: str, reason: str) -> None:
        ...
