"""
Issues Data Service: precomputed issue arrays for the Issues pages.

Rows are written during integration, by schedules, or on demand, and whatever
is stored is served as-is. A missing row (or ``force_refresh``) triggers one
full aggregation that is stored before it is returned.
"""

import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.models import CalculationSource, IssuesData
from seller_dashboard.services.dashboard_calculation import TaskCreator, analyse_data
from seller_dashboard.utils import elapsed_ms, utcnow

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_CALCULATED = "calculated"

DEFAULT_ACCOUNT_HEALTH = {"Percentage": 0, "status": "Unknown"}

# dashboardData key -> IssuesData column for the detail arrays
ARRAY_FIELDS = {
    "productWiseError": "product_wise_error",
    "rankingProductWiseErrors": "ranking_product_wise_errors",
    "conversionProductWiseErrors": "conversion_product_wise_errors",
    "inventoryProductWiseErrors": "inventory_product_wise_errors",
    "profitabilityErrorDetails": "profitability_error_details",
    "sponsoredAdsErrorDetails": "sponsored_ads_error_details",
    "TotalProduct": "total_product",
    "ActiveProducts": "active_products",
}

TOP_ERROR_SLOTS = ("first", "second", "third", "fourth")


async def get_issues_data_row(db: AsyncSession, user_id: str, country: str, region: str) -> Optional[IssuesData]:
    result = await db.execute(
        select(IssuesData).where(
            IssuesData.user_id == user_id,
            IssuesData.country == country,
            IssuesData.region == region,
        )
    )
    return result.scalar_one_or_none()


def format_issues_data_for_response(row: IssuesData) -> dict:
    """Shape a stored row the way the Issues pages consume it."""
    top = row.top_error_products or {}
    data = {key: list(getattr(row, column) or []) for key, column in ARRAY_FIELDS.items()}
    data.update({
        "totalErrorInAccount": row.total_account_errors or 0,
        "totalErrorInConversion": row.total_conversion_errors or 0,
        "TotalRankingerrors": row.total_ranking_errors or 0,
        "totalInventoryErrors": row.total_inventory_errors or 0,
        "totalProfitabilityErrors": row.total_profitability_errors or 0,
        "totalSponsoredAdsErrors": row.total_sponsored_ads_errors or 0,
        "AccountErrors": row.account_errors or {},
        "accountHealthPercentage": row.account_health_percentage or dict(DEFAULT_ACCOUNT_HEALTH),
        "buyBoxData": row.buy_box_data or {"asinBuyBoxData": []},
        "Country": row.country,
    })
    for slot in TOP_ERROR_SLOTS:
        data[slot] = top.get(slot) or None
    return data


async def _upsert_issues_data(
    db: AsyncSession, user_id: str, country: str, region: str, dashboard_data: dict, source: str,
) -> IssuesData:
    row = await get_issues_data_row(db, user_id, country, region)
    if row is None:
        row = IssuesData(user_id=user_id, country=country, region=region)
        db.add(row)

    row.total_ranking_errors = dashboard_data.get("TotalRankingerrors") or 0
    row.total_conversion_errors = dashboard_data.get("totalErrorInConversion") or 0
    row.total_inventory_errors = dashboard_data.get("totalInventoryErrors") or 0
    row.total_account_errors = dashboard_data.get("totalErrorInAccount") or 0
    row.total_profitability_errors = dashboard_data.get("totalProfitabilityErrors") or 0
    row.total_sponsored_ads_errors = dashboard_data.get("totalSponsoredAdsErrors") or 0

    row.account_errors = dashboard_data.get("AccountErrors") or {}
    row.account_health_percentage = dashboard_data.get("accountHealthPercentage") or dict(DEFAULT_ACCOUNT_HEALTH)
    row.buy_box_data = dashboard_data.get("buyBoxData") or {"asinBuyBoxData": []}
    row.top_error_products = {slot: dashboard_data.get(slot) or None for slot in TOP_ERROR_SLOTS}

    for key, column in ARRAY_FIELDS.items():
        value = dashboard_data.get(key)
        setattr(row, column, list(value) if isinstance(value, list) else [])

    row.last_calculated_at = utcnow()
    row.calculation_source = source
    row.is_stale = False
    await db.flush()
    return row


async def store_issues_data_from_dashboard(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    dashboard_data: Optional[dict],
    source: str = CalculationSource.INTEGRATION.value,
) -> dict:
    """Store issues data from an already computed ``dashboardData``."""
    started = time.monotonic()
    if not dashboard_data:
        logger.warning(f"No dashboard data provided for issues data of user {user_id}")
        return {"success": False, "error": "No dashboard data provided", "duration": elapsed_ms(started)}
    try:
        async with db.begin_nested():
            row = await _upsert_issues_data(db, user_id, country, region, dashboard_data, source)
        logger.info(
            f"Stored issues data for user {user_id} ({country}/{region}), "
            f"{len(row.product_wise_error or [])} products with errors"
        )
        return {"success": True, "data": format_issues_data_for_response(row), "duration": elapsed_ms(started)}
    except Exception as e:
        logger.error(f"Failed to store issues data for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def calculate_and_store_issues_data(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    source: str = CalculationSource.INTEGRATION.value,
    task_creator: Optional[TaskCreator] = None,
) -> dict:
    started = time.monotonic()
    logger.info(f"Calculating issues data for user {user_id} ({country}/{region}), source={source}")
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
            row = await _upsert_issues_data(db, user_id, country, region, dashboard_data, source)
        duration = elapsed_ms(started)
        logger.info(
            f"Issues data for user {user_id} ({country}/{region}) stored in {duration}ms: "
            f"{len(row.product_wise_error or [])} products with errors"
        )
        return {"success": True, "data": format_issues_data_for_response(row), "duration": duration}
    except Exception as e:
        logger.error(f"Issues data calculation failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def get_issues_data(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    force_refresh: bool = False,
) -> dict:
    """Stored issues data when present, otherwise a fresh calculation stored with source ``request``."""
    started = time.monotonic()
    try:
        if not force_refresh:
            row = await get_issues_data_row(db, user_id, country, region)
            if row is not None:
                duration = elapsed_ms(started)
                logger.info(f"Serving cached issues data for user {user_id} ({country}/{region}) in {duration}ms")
                return {
                    "success": True,
                    "data": format_issues_data_for_response(row),
                    "source": SOURCE_CACHE,
                    "lastCalculatedAt": row.last_calculated_at.isoformat() if row.last_calculated_at else None,
                    "duration": duration,
                }

        reason = "force_refresh" if force_refresh else "missing"
        logger.info(f"Calculating fresh issues data for user {user_id} ({country}/{region}), reason={reason}")
        result = await calculate_and_store_issues_data(
            db, collector, user_id, country, region, source=CalculationSource.REQUEST.value,
        )
        if not result["success"]:
            return {**result, "duration": elapsed_ms(started)}
        return {"success": True, "data": result["data"], "source": SOURCE_CALCULATED, "duration": elapsed_ms(started)}
    except Exception as e:
        logger.error(f"Failed to get issues data for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def get_paginated_field_data(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    field_name: str,
    skip: int = 0,
    limit: int = 50,
) -> dict:
    """Slice of one stored detail array: ``{"data": [...], "total": n}``."""
    column = ARRAY_FIELDS.get(field_name)
    if column is None:
        logger.warning(f"Unknown issues data field requested: {field_name}")
        return {"data": [], "total": 0}
    try:
        row = await get_issues_data_row(db, user_id, country, region)
        items = list(getattr(row, column) or []) if row is not None else []
        skip = max(skip, 0)
        return {"data": items[skip:skip + max(limit, 0)], "total": len(items)}
    except Exception as e:
        logger.error(f"Failed to page {field_name} for user {user_id}: {e}", exc_info=True)
        return {"data": [], "total": 0}
