"""
Issue Summary Service: precomputed issue counts for the dashboard's
"Total Issues" card and quick stats.

Counts come from the same aggregation every other issue view uses, so the
summary always agrees with the detailed pages. Refreshed after integration,
by the scheduled stale-summary job, and on demand.
"""

import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.models import CalculationSource, IssueSummary
from seller_dashboard.services.dashboard_calculation import TaskCreator, analyse_data
from seller_dashboard.utils import elapsed_ms, utcnow

logger = logging.getLogger(__name__)


def summary_counts(dashboard_data: dict) -> dict:
    """Category totals, their sum and product counts from one ``dashboardData``."""
    ranking = dashboard_data.get("TotalRankingerrors") or 0
    conversion = dashboard_data.get("totalErrorInConversion") or 0
    account = dashboard_data.get("totalErrorInAccount") or 0
    profitability = dashboard_data.get("totalProfitabilityErrors") or 0
    sponsored_ads = dashboard_data.get("totalSponsoredAdsErrors") or 0
    inventory = dashboard_data.get("totalInventoryErrors") or 0
    return {
        "total_issues": profitability + sponsored_ads + inventory + ranking + conversion + account,
        "total_profitability_errors": profitability,
        "total_sponsored_ads_errors": sponsored_ads,
        "total_inventory_errors": inventory,
        "total_ranking_errors": ranking,
        "total_conversion_errors": conversion,
        "total_account_errors": account,
        "number_of_products_with_issues": len(dashboard_data.get("productWiseError") or []),
        "total_active_products": len(dashboard_data.get("ActiveProducts") or []),
    }


async def _get_row(db: AsyncSession, user_id: str, country: str, region: str) -> Optional[IssueSummary]:
    result = await db.execute(
        select(IssueSummary).where(
            IssueSummary.user_id == user_id,
            IssueSummary.country == country,
            IssueSummary.region == region,
        )
    )
    return result.scalar_one_or_none()


async def upsert_issue_summary(
    db: AsyncSession, user_id: str, country: str, region: str, counts: dict, source: str,
) -> IssueSummary:
    """Insert or overwrite the summary for a key; clears the stale flag."""
    row = await _get_row(db, user_id, country, region)
    if row is None:
        row = IssueSummary(user_id=user_id, country=country, region=region)
        db.add(row)
    for key, value in counts.items():
        setattr(row, key, value)
    row.last_calculated_at = utcnow()
    row.calculation_source = source
    row.is_stale = False
    await db.flush()
    return row


async def store_issue_summary_from_dashboard_data(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    dashboard_data: Optional[dict],
    source: str = CalculationSource.INTEGRATION.value,
) -> dict:
    """Store counts from an already computed ``dashboardData``."""
    started = time.monotonic()
    if not dashboard_data:
        logger.error(f"No dashboard data provided for issue summary of user {user_id}")
        return {"success": False, "error": "No dashboard data provided"}
    try:
        async with db.begin_nested():
            row = await upsert_issue_summary(db, user_id, country, region, summary_counts(dashboard_data), source)
        logger.info(f"Stored issue summary for user {user_id} ({country}/{region}): {row.total_issues} issues")
        return {"success": True, "data": row.to_dict(), "duration": elapsed_ms(started)}
    except Exception as e:
        logger.error(f"Failed to store issue summary for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def calculate_and_store_issue_summary(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    source: str = CalculationSource.INTEGRATION.value,
    task_creator: Optional[TaskCreator] = None,
) -> dict:
    """Collect, aggregate and upsert the issue summary for one key."""
    started = time.monotonic()
    logger.info(f"Calculating issue summary for user {user_id} ({country}/{region}), source={source}")
    try:
        collected = await collector.analyse(user_id, country, region)
        if not collected or collected.get("status") != 200:
            status = collected.get("status") if collected else None
            logger.error(f"Snapshot unavailable for user {user_id}: status {status}")
            return {"success": False, "error": f"Failed to get analyse data: status {status}",
                    "duration": elapsed_ms(started)}

        result = await analyse_data(collected.get("message"), user_id, task_creator)
        dashboard_data = result.get("dashboardData")
        if not dashboard_data:
            return {"success": False, "error": "Failed to calculate dashboard data",
                    "duration": elapsed_ms(started)}

        async with db.begin_nested():
            row = await upsert_issue_summary(db, user_id, country, region, summary_counts(dashboard_data), source)
        duration = elapsed_ms(started)
        logger.info(
            f"Issue summary for user {user_id} ({country}/{region}) stored in {duration}ms: "
            f"{row.total_issues} issues"
        )
        return {"success": True, "data": row.to_dict(), "duration": duration}
    except Exception as e:
        logger.error(f"Issue summary calculation failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def get_issue_summary(db: AsyncSession, user_id: str, country: str, region: str) -> Optional[IssueSummary]:
    """Cached summary or None (lookup failures are logged, not raised)."""
    try:
        return await _get_row(db, user_id, country, region)
    except Exception as e:
        logger.error(f"Failed to read issue summary for user {user_id}: {e}", exc_info=True)
        return None


async def mark_issue_summary_stale(db: AsyncSession, user_id: str, country: str, region: str) -> bool:
    try:
        async with db.begin_nested():
            row = await _get_row(db, user_id, country, region)
            if row is not None:
                row.is_stale = True
                await db.flush()
        logger.debug(f"Marked issue summary stale for user {user_id} ({country}/{region})")
        return True
    except Exception as e:
        logger.error(f"Failed to mark issue summary stale for user {user_id}: {e}", exc_info=True)
        return False


async def refresh_stale_summaries(db: AsyncSession, collector: SnapshotCollector, limit: int = 10) -> dict:
    """Recalculate up to ``limit`` stale summaries, oldest first."""
    started = time.monotonic()
    refreshed = failed = 0
    try:
        result = await db.execute(
            select(IssueSummary.user_id, IssueSummary.country, IssueSummary.region)
            .where(IssueSummary.is_stale.is_(True))
            .order_by(IssueSummary.last_calculated_at.asc())
            .limit(limit)
        )
        keys = result.all()
        logger.info(f"Refreshing {len(keys)} stale issue summaries (limit {limit})")

        for user_id, country, region in keys:
            outcome = await calculate_and_store_issue_summary(
                db, collector, user_id, country, region, source=CalculationSource.SCHEDULE.value,
            )
            if outcome["success"]:
                refreshed += 1
                await db.commit()
            else:
                failed += 1

        duration = elapsed_ms(started)
        logger.info(f"Stale summary refresh done: {refreshed} refreshed, {failed} failed in {duration}ms")
        return {"success": True, "refreshed": refreshed, "failed": failed, "duration": duration}
    except Exception as e:
        logger.error(f"Stale summary refresh failed: {e}", exc_info=True)
        return {"success": False, "error": str(e), "refreshed": refreshed, "failed": failed}
