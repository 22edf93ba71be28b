import hashlib
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Generator, List, Optional, Tuple

from sqlalchemy import and_, asc, desc, distinct, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from healthtrack.core.database_utils import get_db_session
from healthtrack.core.exceptions import ConcurrentModification, StorageFailure
from healthtrack.core.locks import KeyedLock
from healthtrack.crud.base import ActivityStore, DirtyMonth
from healthtrack.db.session import SessionLocal
from healthtrack.models.activity import DailyActivityRecord, MonthlyRollupRecord, DirtyMonthRecord
from healthtrack.schemas.activity import ActivityScore, DailyActivity, MonthlyRollup
from healthtrack.utils.dates import from_date, month_of, to_date
from healthtrack.utils.timezone import now_local, to_utc_aware, to_utc_naive

logger = logging.getLogger(__name__)

# Shared by every SQLActivityStore in the process
_process_key_locks = KeyedLock()


def advisory_lock_id(user_id: str, month: str) -> int:
    """Stable signed 64-bit id for pg_advisory_lock, identical in every process"""
    digest = hashlib.blake2b(f"rollup:{user_id}:{month}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class SQLActivityStore(ActivityStore):
    """ActivityStore backed by SQLAlchemy; one short transaction per call.

    `lock_key` takes a process-wide lock and, on PostgreSQL, a session-level
    advisory lock held on its own connection until the block exits. Other
    dialects (SQLite) are serialised within the process only.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory

    @contextmanager
    def lock_key(self, user_id: str, month: str) -> Generator[None, None, None]:
        with _process_key_locks.hold((user_id, month)) as outermost:
            if not outermost:
                yield
                return

            lock_id = advisory_lock_id(user_id, month)
            db = (self.session_factory or SessionLocal)()
            try:
                try:
                    use_advisory = db.get_bind().dialect.name == "postgresql"
                    if use_advisory:
                        db.execute(text("SELECT pg_advisory_lock(:lock_id)"), {"lock_id": lock_id})
                except SQLAlchemyError as e:
                    raise StorageFailure(f"lock_key failed: {e.__class__.__name__}") from e

                try:
                    yield
                finally:
                    if use_advisory:
                        try:
                            db.execute(text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": lock_id})
                        except SQLAlchemyError as e:
                            # Dropping the connection ends the database session and its locks
                            logger.error(f"❌ [SQLActivityStore] Advisory unlock failed for {user_id}/{month}: {e}")
                            db.invalidate()
            finally:
                db.close()

    @contextmanager
    def _session(self, operation: str) -> Generator[Session, None, None]:
        try:
            with get_db_session(self.session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            raise StorageFailure(f"{operation} failed: {e.__class__.__name__}") from e

    # --- row mapping ---
    @staticmethod
    def _to_daily(row: DailyActivityRecord) -> DailyActivity:
        return DailyActivity(
            id=row.public_id,
            user_id=row.user_id,
            date=from_date(row.activity_date),
            score=ActivityScore(
                bad_meals=row.bad_meals,
                alcohol=row.alcohol,
                snacks=row.snacks,
                exercise=bool(row.exercise),
                greens=bool(row.greens),
            ),
            total_score=row.total_score,
            updated_at=to_utc_aware(row.updated_at),
        )

    @staticmethod
    def _to_rollup(row: MonthlyRollupRecord) -> MonthlyRollup:
        return MonthlyRollup(
            user_id=row.user_id,
            month=row.month,
            total_points=row.total_points,
            exercise_days=row.exercise_days,
            greens_days=row.greens_days,
            total_days=row.total_days,
            updated_at=to_utc_aware(row.updated_at),
            version=row.version,
        )

    # --- daily activities ---
    def get_daily(self, user_id: str, day: str) -> Optional[DailyActivity]:
        with self._session("get_daily") as db:
            row = (
                db.query(DailyActivityRecord)
                .filter(
                    DailyActivityRecord.user_id == user_id,
                    DailyActivityRecord.activity_date == to_date(day),
                )
                .first()
            )
            return self._to_daily(row) if row else None

    def put_daily(self, user_id: str, day: str, record: DailyActivity) -> DailyActivity:
        with self._session("put_daily") as db:
            row = (
                db.query(DailyActivityRecord)
                .filter(
                    DailyActivityRecord.user_id == user_id,
                    DailyActivityRecord.activity_date == to_date(day),
                )
                .first()
            )
            if row is None:
                row = DailyActivityRecord(
                    public_id=record.id,
                    user_id=user_id,
                    activity_date=to_date(day),
                    month=month_of(day),
                )
                db.add(row)
            row.bad_meals = record.score.bad_meals
            row.alcohol = record.score.alcohol
            row.snacks = record.score.snacks
            row.exercise = record.score.exercise
            row.greens = record.score.greens
            row.total_score = record.total_score
            row.updated_at = to_utc_naive(record.updated_at)
            db.flush()
            return self._to_daily(row)

    def delete_daily(self, user_id: str, day: str) -> bool:
        with self._session("delete_daily") as db:
            deleted = (
                db.query(DailyActivityRecord)
                .filter(
                    DailyActivityRecord.user_id == user_id,
                    DailyActivityRecord.activity_date == to_date(day),
                )
                .delete(synchronize_session=False)
            )
            return deleted > 0

    def list_daily(self, user_id: str) -> List[DailyActivity]:
        with self._session("list_daily") as db:
            rows = (
                db.query(DailyActivityRecord)
                .filter(DailyActivityRecord.user_id == user_id)
                .order_by(desc(DailyActivityRecord.activity_date))
                .all()
            )
            return [self._to_daily(r) for r in rows]

    def list_daily_for_month(self, user_id: str, month: str) -> List[DailyActivity]:
        with self._session("list_daily_for_month") as db:
            rows = (
                db.query(DailyActivityRecord)
                .filter(
                    and_(
                        DailyActivityRecord.user_id == user_id,
                        DailyActivityRecord.month == month,
                    )
                )
                .order_by(asc(DailyActivityRecord.activity_date))
                .all()
            )
            return [self._to_daily(r) for r in rows]

    def list_user_ids_for_month(self, month: str) -> List[str]:
        with self._session("list_user_ids_for_month") as db:
            rows = (
                db.query(distinct(DailyActivityRecord.user_id))
                .filter(DailyActivityRecord.month == month)
                .order_by(DailyActivityRecord.user_id)
                .all()
            )
            return [r[0] for r in rows]

    # --- monthly rollups ---
    def get_rollup(self, user_id: str, month: str) -> Optional[MonthlyRollup]:
        with self._session("get_rollup") as db:
            row = (
                db.query(MonthlyRollupRecord)
                .filter(MonthlyRollupRecord.user_id == user_id, MonthlyRollupRecord.month == month)
                .first()
            )
            return self._to_rollup(row) if row else None

    def put_rollup(
        self, user_id: str, month: str, record: MonthlyRollup, expected_version: int
    ) -> MonthlyRollup:
        now = to_utc_naive(now_local())
        values = {
            "total_points": record.total_points,
            "exercise_days": record.exercise_days,
            "greens_days": record.greens_days,
            "total_days": record.total_days,
            "version": expected_version + 1,
            "updated_at": now,
        }
        conflict = False
        try:
            with self._session("put_rollup") as db:
                if expected_version == 0:
                    db.add(MonthlyRollupRecord(user_id=user_id, month=month, **values))
                    db.flush()
                else:
                    # Compare-and-set on version; 0 rows means someone else won
                    updated = (
                        db.query(MonthlyRollupRecord)
                        .filter(
                            MonthlyRollupRecord.user_id == user_id,
                            MonthlyRollupRecord.month == month,
                            MonthlyRollupRecord.version == expected_version,
                        )
                        .update(values, synchronize_session=False)
                    )
                    conflict = updated == 0
        except StorageFailure as e:
            if isinstance(e.__cause__, IntegrityError):
                conflict = True
            else:
                raise
        if conflict:
            raise ConcurrentModification(user_id, month, expected_version)
        return record.model_copy(update={
            "user_id": user_id,
            "month": month,
            "version": expected_version + 1,
            "updated_at": to_utc_aware(now),
        })

    def delete_rollup(self, user_id: str, month: str, expected_version: int) -> None:
        with self._session("delete_rollup") as db:
            deleted = (
                db.query(MonthlyRollupRecord)
                .filter(
                    MonthlyRollupRecord.user_id == user_id,
                    MonthlyRollupRecord.month == month,
                    MonthlyRollupRecord.version == expected_version,
                )
                .delete(synchronize_session=False)
            )
        if deleted == 0:
            raise ConcurrentModification(user_id, month, expected_version)

    def query_rollups_by_month(self, month: str) -> List[Tuple[str, MonthlyRollup]]:
        with self._session("query_rollups_by_month") as db:
            rows = (
                db.query(MonthlyRollupRecord)
                .filter(MonthlyRollupRecord.month == month)
                .order_by(desc(MonthlyRollupRecord.total_points), asc(MonthlyRollupRecord.user_id))
                .all()
            )
            return [(r.user_id, self._to_rollup(r)) for r in rows]

    # --- reconciliation markers ---
    def mark_month_dirty(self, user_id: str, month: str, reason: str) -> None:
        now = to_utc_naive(now_local())
        with self._session("mark_month_dirty") as db:
            row = (
                db.query(DirtyMonthRecord)
                .filter(DirtyMonthRecord.user_id == user_id, DirtyMonthRecord.month == month)
                .first()
            )
            if row:
                row.reason = reason[:500]
                row.marked_at = now
            else:
                db.add(DirtyMonthRecord(
                    user_id=user_id,
                    month=month,
                    reason=reason[:500],
                    attempts=0,
                    marked_at=now,
                ))
        logger.info(f"📌 [SQLActivityStore] Marked {user_id}/{month} for recompute")

    def list_dirty_months(self, limit: int = 100) -> List[DirtyMonth]:
        with self._session("list_dirty_months") as db:
            rows = (
                db.query(DirtyMonthRecord)
                .order_by(asc(DirtyMonthRecord.marked_at), asc(DirtyMonthRecord.id))
                .limit(limit)
                .all()
            )
            return [
                DirtyMonth(
                    user_id=r.user_id,
                    month=r.month,
                    reason=r.reason,
                    attempts=r.attempts,
                    marked_at=to_utc_aware(r.marked_at),
                )
                for r in rows
            ]

    def clear_dirty_month(self, user_id: str, month: str, marked_before: Optional[datetime] = None) -> None:
        with self._session("clear_dirty_month") as db:
            query = db.query(DirtyMonthRecord).filter(
                DirtyMonthRecord.user_id == user_id,
                DirtyMonthRecord.month == month,
            )
            if marked_before is not None:
                # A marker refreshed after this point belongs to a newer failure
                query = query.filter(DirtyMonthRecord.marked_at < to_utc_naive(marked_before))
            query.delete(synchronize_session=False)

    def bump_dirty_attempts(self, user_id: str, month: str, reason: str) -> None:
        with self._session("bump_dirty_attempts") as db:
            db.query(DirtyMonthRecord).filter(
                DirtyMonthRecord.user_id == user_id,
                DirtyMonthRecord.month == month,
            ).update({
                "attempts": DirtyMonthRecord.attempts + 1,
                "reason": reason[:500],
            }, synchronize_session=False)
