"""
Rollup reconciliation - rebuilds months whose incremental update failed
"""
import logging
from dataclasses import dataclass

from healthtrack.core.exceptions import StorageFailure
from healthtrack.crud.base import ActivityStore
from healthtrack.services.monthly_aggregator import MonthlyAggregator

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    recomputed: int = 0
    failed: int = 0


class RollupReconciler:
    """Recomputes every month marked dirty, oldest first"""

    def __init__(self, store: ActivityStore, aggregator: MonthlyAggregator):
        self.store = store
        self.aggregator = aggregator

    def process_dirty_months(self, limit: int = 100) -> ReconcileStats:
        stats = ReconcileStats()
        dirty = self.store.list_dirty_months(limit=limit)
        if not dirty:
            logger.info("📊 [Reconciler] No dirty months")
            return stats

        logger.info(f"📊 [Reconciler] Recomputing {len(dirty)} dirty month(s)")
        for marker in dirty:
            try:
                # recompute clears the marker on success
                self.aggregator.recompute(marker.user_id, marker.month)
                stats.recomputed += 1
            except StorageFailure as e:
                stats.failed += 1
                logger.error(
                    f"❌ [Reconciler] Recompute failed for {marker.user_id}/{marker.month} "
                    f"(attempt {marker.attempts + 1}): {e}"
                )
                try:
                    self.store.bump_dirty_attempts(marker.user_id, marker.month, str(e))
                except StorageFailure as bump_error:
                    logger.error(f"❌ [Reconciler] Could not record failed attempt: {bump_error}")

        logger.info(f"✅ [Reconciler] Done: {stats.recomputed} recomputed, {stats.failed} failed")
        return stats

    def recompute_month_for_all_users(self, month: str) -> ReconcileStats:
        """Rebuild `month` for every user that has days or a stored rollup in it"""
        stats = ReconcileStats()
        user_ids = set(self.store.list_user_ids_for_month(month))
        user_ids.update(uid for uid, _ in self.store.query_rollups_by_month(month))
        for user_id in sorted(user_ids):
            try:
                self.aggregator.recompute(user_id, month)
                stats.recomputed += 1
            except StorageFailure as e:
                stats.failed += 1
                logger.error(f"❌ [Reconciler] Recompute failed for {user_id}/{month}: {e}")
        return stats
