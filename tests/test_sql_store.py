import threading
import time
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthtrack.core.exceptions import ConcurrentModification, StorageFailure
from healthtrack.crud.activity import SQLActivityStore, advisory_lock_id
from healthtrack.schemas.activity import ActivityScore, DailyActivity, MonthlyRollup
from healthtrack.services.activity_service import ActivityService
from healthtrack.utils.timezone import now_local

USER = "user-alice"


def make_daily(day, **score):
    activity_score = ActivityScore(**{
        "bad_meals": 0, "alcohol": 0, "snacks": 0, "exercise": False, "greens": False, **score
    })
    return DailyActivity(
        id=str(uuid.uuid4()),
        user_id=USER,
        date=day,
        score=activity_score,
        total_score=4,
        updated_at=now_local(),
    )


def test_daily_round_trip(sql_store):
    record = make_daily("2025-01-01", exercise=True)
    sql_store.put_daily(USER, "2025-01-01", record)

    loaded = sql_store.get_daily(USER, "2025-01-01")
    assert loaded.id == record.id
    assert loaded.score == record.score
    assert loaded.date == "2025-01-01"
    assert sql_store.get_daily(USER, "2025-01-02") is None


def test_put_daily_replaces_in_place(sql_store):
    first = make_daily("2025-01-01")
    sql_store.put_daily(USER, "2025-01-01", first)
    sql_store.put_daily(USER, "2025-01-01", first.model_copy(update={"score": first.score.model_copy(update={"greens": True})}))

    assert len(sql_store.list_daily(USER)) == 1
    assert sql_store.get_daily(USER, "2025-01-01").score.greens is True


def test_month_listing_and_delete(sql_store):
    for day in ("2025-01-02", "2025-01-01", "2025-02-01"):
        sql_store.put_daily(USER, day, make_daily(day))
    sql_store.put_daily("user-bob", "2025-01-05", make_daily("2025-01-05"))

    assert [d.date for d in sql_store.list_daily_for_month(USER, "2025-01")] == ["2025-01-01", "2025-01-02"]
    assert sql_store.list_user_ids_for_month("2025-01") == ["user-alice", "user-bob"]
    assert sql_store.delete_daily(USER, "2025-01-01") is True
    assert sql_store.delete_daily(USER, "2025-01-01") is False


def test_rollup_version_check(sql_store):
    rollup = MonthlyRollup(user_id=USER, month="2025-01", total_points=4, total_days=1)
    stored = sql_store.put_rollup(USER, "2025-01", rollup, expected_version=0)
    assert stored.version == 1

    with pytest.raises(ConcurrentModification):
        sql_store.put_rollup(USER, "2025-01", rollup, expected_version=0)
    with pytest.raises(ConcurrentModification):
        sql_store.put_rollup(USER, "2025-01", rollup, expected_version=5)

    bumped = sql_store.put_rollup(USER, "2025-01", rollup.model_copy(update={"total_points": 9}), expected_version=1)
    assert bumped.version == 2
    assert sql_store.get_rollup(USER, "2025-01").total_points == 9

    with pytest.raises(ConcurrentModification):
        sql_store.delete_rollup(USER, "2025-01", expected_version=1)
    sql_store.delete_rollup(USER, "2025-01", expected_version=2)
    assert sql_store.get_rollup(USER, "2025-01") is None


def test_conflict_is_still_a_storage_failure(sql_store):
    rollup = MonthlyRollup(user_id=USER, month="2025-01", total_days=1, total_points=1)
    sql_store.put_rollup(USER, "2025-01", rollup, expected_version=0)
    with pytest.raises(StorageFailure):
        sql_store.put_rollup(USER, "2025-01", rollup, expected_version=0)


def test_dirty_month_markers(sql_store):
    sql_store.mark_month_dirty(USER, "2025-01", "timeout")
    sql_store.mark_month_dirty(USER, "2025-01", "timeout again")
    sql_store.mark_month_dirty("user-bob", "2025-02", "x" * 800)

    dirty = sql_store.list_dirty_months()
    assert [(d.user_id, d.month) for d in dirty] == [(USER, "2025-01"), ("user-bob", "2025-02")]
    assert dirty[0].reason == "timeout again"
    assert len(dirty[1].reason) == 500

    sql_store.bump_dirty_attempts(USER, "2025-01", "still failing")
    assert sql_store.list_dirty_months(limit=1)[0].attempts == 1

    sql_store.clear_dirty_month(USER, "2025-01")
    assert [d.user_id for d in sql_store.list_dirty_months()] == ["user-bob"]


def test_backend_errors_are_reported_as_storage_failure():
    # No tables were created on this engine, so every query fails
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    store = SQLActivityStore(session_factory=sessionmaker(bind=engine))
    with pytest.raises(StorageFailure):
        store.get_daily(USER, "2025-01-01")
    with pytest.raises(StorageFailure):
        store.mark_month_dirty(USER, "2025-01", "boom")


def test_service_walkthrough_on_sql(sql_store):
    service = ActivityService(sql_store)
    service.create_or_replace_daily_activity(
        USER, "2025-01-01", {"badMeals": 1, "alcohol": 0, "snacks": 0, "exercise": True, "greens": False}
    )
    rollup = service.update_daily_activity(USER, "2025-01-01", {"exercise": False}).rollup
    assert (rollup.total_points, rollup.exercise_days, rollup.total_days) == (3, 0, 1)

    service.create_or_replace_daily_activity(
        USER, "2025-01-15", {"badMeals": 0, "alcohol": 0, "snacks": 0, "exercise": True, "greens": True}
    )
    recomputed = service.recompute_monthly_rollup(USER, "2025-01")
    assert recomputed.same_totals(service.get_monthly_rollup(USER, "2025-01"))
    assert recomputed.total_points == 9

    service.delete_daily_activity(USER, "2025-01-01")
    service.delete_daily_activity(USER, "2025-01-15")
    assert service.get_monthly_rollup(USER, "2025-01") is None


def test_remarking_refreshes_marker_and_clear_respects_cutoff(sql_store):
    sql_store.mark_month_dirty(USER, "2025-01", "timeout")
    first_mark = sql_store.list_dirty_months()[0].marked_at
    assert first_mark.tzinfo is not None
    assert abs((now_local() - first_mark).total_seconds()) < 60

    time.sleep(0.01)
    cutoff = now_local()
    time.sleep(0.01)
    sql_store.mark_month_dirty(USER, "2025-01", "timeout again")
    assert sql_store.list_dirty_months()[0].marked_at > first_mark

    # Re-marked after the cutoff: a recompute that started at `cutoff` must leave it
    sql_store.clear_dirty_month(USER, "2025-01", marked_before=cutoff)
    assert len(sql_store.list_dirty_months()) == 1

    sql_store.clear_dirty_month(USER, "2025-01", marked_before=now_local())
    assert sql_store.list_dirty_months() == []


def test_advisory_lock_id_is_stable_and_fits_bigint():
    lock_id = advisory_lock_id(USER, "2025-01")
    assert lock_id == advisory_lock_id(USER, "2025-01")
    assert lock_id != advisory_lock_id(USER, "2025-02")
    assert -(2 ** 63) <= lock_id < 2 ** 63


class SlowReadSQLStore(SQLActivityStore):
    def get_daily(self, user_id, day):
        found = super().get_daily(user_id, day)
        time.sleep(0.02)
        return found


def test_separate_sql_stores_serialise_the_same_month(sql_session_factory):
    services = [ActivityService(SlowReadSQLStore(sql_session_factory)) for _ in range(2)]
    barrier = threading.Barrier(len(services))
    errors = []

    def create(service):
        barrier.wait()
        try:
            service.create_or_replace_daily_activity(
                USER, "2025-01-01", {"badMeals": 1, "alcohol": 0, "snacks": 0, "exercise": True, "greens": False}
            )
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    threads = [threading.Thread(target=create, args=(s,)) for s in services]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    rollup = services[0].get_monthly_rollup(USER, "2025-01")
    assert (rollup.total_points, rollup.exercise_days, rollup.total_days) == (4, 1, 1)
