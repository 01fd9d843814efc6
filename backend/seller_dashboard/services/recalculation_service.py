"""
Recalculation: one aggregation fanned out to every issue cache.

The integration worker and the manual "recalculate" action collect the
snapshot once, aggregate once, and store the summary, the issues data and the
catalog issue counts from the same ``dashboardData``.
"""

import logging
import time
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.models import CalculationSource
from seller_dashboard.services.dashboard_calculation import TaskCreator, analyse_data
from seller_dashboard.services.issue_summary_service import store_issue_summary_from_dashboard_data
from seller_dashboard.services.issues_data_service import store_issues_data_from_dashboard
from seller_dashboard.services.product_issues_service import store_product_issues_from_dashboard_data
from seller_dashboard.utils import elapsed_ms

logger = logging.getLogger(__name__)


async def recalculate_all(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    source: str = CalculationSource.INTEGRATION.value,
    task_creator: Optional[TaskCreator] = None,
) -> dict:
    """
    Refresh every cache for one key.

    Returns ``{"success", "summary", "issuesData", "productIssues", "degraded", "duration"}``;
    ``success`` is False only when the snapshot could not be collected. Each
    store reports its own outcome.
    """
    started = time.monotonic()
    try:
        collected = await collector.analyse(user_id, country, region)
    except Exception as e:
        logger.error(f"Snapshot collection failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}

    if not collected or collected.get("status") != 200:
        status = collected.get("status") if collected else None
        logger.error(f"Snapshot unavailable for user {user_id}: status {status}")
        return {"success": False, "error": f"Failed to get analyse data: status {status}",
                "duration": elapsed_ms(started)}

    result = await analyse_data(collected.get("message"), user_id, task_creator)
    dashboard_data = result["dashboardData"]

    summary = await store_issue_summary_from_dashboard_data(db, user_id, country, region, dashboard_data, source)
    issues = await store_issues_data_from_dashboard(db, user_id, country, region, dashboard_data, source)
    products = await store_product_issues_from_dashboard_data(db, user_id, country, region, dashboard_data, source)

    duration = elapsed_ms(started)
    logger.info(
        f"Recalculated caches for user {user_id} ({country}/{region}) in {duration}ms: "
        f"summary={summary['success']} issuesData={issues['success']} productIssues={products['success']}"
    )
    return {
        "success": True,
        "summary": summary,
        "issuesData": {"success": issues["success"], "error": issues.get("error")},
        "productIssues": products,
        "degraded": result.get("degraded", []),
        "duration": duration,
    }
