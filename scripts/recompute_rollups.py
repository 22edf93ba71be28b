#!/usr/bin/env python3
"""
Rebuild monthly rollups from their daily activities.

Usage:
    # Recompute every month still marked dirty after a failed update
    python recompute_rollups.py --dirty

    # Recompute one user's month
    python recompute_rollups.py --user-id abc123 --month 2024-03

    # Recompute a month for every user with data in it
    python recompute_rollups.py --month 2024-03
"""
import sys
import os
import argparse
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from healthtrack.core.config import settings
from healthtrack.core.exceptions import HealthTrackError
from healthtrack.crud.activity import SQLActivityStore
from healthtrack.services.monthly_aggregator import MonthlyAggregator
from healthtrack.services.reconciliation import RollupReconciler
from healthtrack.utils.dates import parse_month


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Recompute monthly rollups from daily activities',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python recompute_rollups.py --dirty --limit 500
  python recompute_rollups.py --user-id abc123 --month 2024-03
  python recompute_rollups.py --month 2024-03
        """
    )

    parser.add_argument(
        '--user-id',
        type=str,
        help='Only this user (requires --month)',
        default=None
    )

    parser.add_argument(
        '--month',
        type=str,
        help='Month to rebuild (YYYY-MM)',
        default=None
    )

    parser.add_argument(
        '--dirty',
        action='store_true',
        help='Process months marked dirty after a failed rollup update'
    )

    parser.add_argument(
        '--limit',
        type=int,
        help='Maximum dirty months to process (default: RECONCILE_BATCH_SIZE)',
        default=None
    )

    args = parser.parse_args(argv)

    if not args.dirty and not args.month:
        parser.error("Must specify either --dirty or --month")
    if args.user_id and not args.month:
        parser.error("--user-id requires --month")

    store = SQLActivityStore()
    aggregator = MonthlyAggregator(store, max_retries=settings.ROLLUP_MAX_RETRIES)
    reconciler = RollupReconciler(store, aggregator)

    print("=" * 80)
    print("MONTHLY ROLLUP RECOMPUTE")
    print("=" * 80)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print()

    try:
        if args.dirty:
            stats = reconciler.process_dirty_months(limit=args.limit or settings.RECONCILE_BATCH_SIZE)
            print(f"Dirty months: {stats.recomputed} recomputed, {stats.failed} failed")
            return 1 if stats.failed else 0

        month = parse_month(args.month)
        if args.user_id:
            rollup = aggregator.recompute(args.user_id, month)
            if rollup is None:
                print(f"  {args.user_id}/{month}: no days, rollup removed")
            else:
                print(
                    f"  ✓ {args.user_id}/{month}: points={rollup.total_points} "
                    f"days={rollup.total_days} exercise={rollup.exercise_days} greens={rollup.greens_days}"
                )
            return 0

        stats = reconciler.recompute_month_for_all_users(month)
        print(f"{month}: {stats.recomputed} user(s) recomputed, {stats.failed} failed")
        return 1 if stats.failed else 0
    except HealthTrackError as e:
        print(f"  ✗ {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
