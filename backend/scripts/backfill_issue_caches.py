#!/usr/bin/env python3
"""
Rebuild issue caches (summary, issues data, product issue counts) from the
latest stored snapshot of every seller marketplace, or of one.

Run from backend directory:
  python scripts/backfill_issue_caches.py
  python scripts/backfill_issue_caches.py --user-id u1 --country US --region NA
  python scripts/backfill_issue_caches.py --stale-only --limit 50
"""

import asyncio
import argparse

from sqlalchemy import select

from seller_dashboard.collector import StoredSnapshotCollector
from seller_dashboard.database import async_session
from seller_dashboard.models import AnalysisSnapshot, CalculationSource
from seller_dashboard.services.issue_summary_service import refresh_stale_summaries
from seller_dashboard.services.recalculation_service import recalculate_all
from seller_dashboard.services.task_service import make_task_creator


async def snapshot_keys() -> list[tuple[str, str, str]]:
    async with async_session() as db:
        result = await db.execute(
            select(AnalysisSnapshot.user_id, AnalysisSnapshot.country, AnalysisSnapshot.region).distinct()
        )
        return [tuple(r) for r in result.all()]


async def backfill(keys: list[tuple[str, str, str]], with_tasks: bool) -> int:
    failures = 0
    for user_id, country, region in keys:
        async with async_session() as db:
            result = await recalculate_all(
                db, StoredSnapshotCollector(db), user_id, country, region,
                source=CalculationSource.MANUAL.value,
                task_creator=make_task_creator(db) if with_tasks else None,
            )
            await db.commit()
        status = "ok" if result["success"] else f"FAILED ({result.get('error')})"
        if not result["success"]:
            failures += 1
        print(f"  {user_id} {country}/{region}: {status} in {result['duration']}ms")
    return failures


async def main():
    parser = argparse.ArgumentParser(description="Rebuild issue caches from stored snapshots")
    parser.add_argument("--user-id", help="Only this user (requires --country and --region)")
    parser.add_argument("--country")
    parser.add_argument("--region")
    parser.add_argument("--tasks", action="store_true", help="Also generate user tasks from the new errors")
    parser.add_argument("--stale-only", action="store_true", help="Only refresh summaries flagged stale")
    parser.add_argument("--limit", type=int, default=10, help="Max stale summaries to refresh (with --stale-only)")
    args = parser.parse_args()

    if args.stale_only:
        async with async_session() as db:
            result = await refresh_stale_summaries(db, StoredSnapshotCollector(db), args.limit)
        print(f"Stale refresh: {result}")
        return

    if args.user_id:
        if not args.country or not args.region:
            parser.error("--user-id requires --country and --region")
        keys = [(args.user_id, args.country, args.region)]
    else:
        keys = await snapshot_keys()

    print(f"Backfilling issue caches for {len(keys)} seller marketplace(s)...")
    failures = await backfill(keys, args.tasks)
    print(f"Done. {len(keys) - failures} succeeded, {failures} failed.")


if __name__ == "__main__":
    asyncio.run(main())
