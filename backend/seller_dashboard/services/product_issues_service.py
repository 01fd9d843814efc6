"""
Product Issues Service: per-product issue counts on the seller catalog.

``productWiseError[].errors`` already holds ranking + conversion + inventory
errors for an ASIN; catalog products absent from it have zero issues.
"""

import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.models import CalculationSource, Seller, SellerAccount, SellerProduct
from seller_dashboard.services.dashboard_calculation import TaskCreator, analyse_data
from seller_dashboard.utils import elapsed_ms, utcnow

logger = logging.getLogger(__name__)


def build_issue_count_map(product_wise_error: list) -> dict[str, int]:
    counts: dict[str, int] = {}
    for product in product_wise_error or []:
        if isinstance(product, dict) and product.get("asin"):
            counts[product["asin"]] = int(product.get("errors") or 0)
    return counts


async def _find_account(db: AsyncSession, user_id: str, country: str, region: str) -> tuple[Optional[Seller], Optional[SellerAccount]]:
    seller = (await db.execute(select(Seller).where(Seller.user_id == user_id))).scalar_one_or_none()
    if seller is None:
        return None, None
    account = (await db.execute(
        select(SellerAccount).where(
            SellerAccount.seller_id == seller.id,
            SellerAccount.country == country,
            SellerAccount.region == region,
        )
    )).scalar_one_or_none()
    return seller, account


async def _apply_issue_counts(
    db: AsyncSession, user_id: str, country: str, region: str, product_wise_error: list,
) -> dict:
    counts = build_issue_count_map(product_wise_error)
    seller, account = await _find_account(db, user_id, country, region)
    if seller is None:
        logger.error(f"Seller not found for user {user_id}")
        return {"success": False, "error": "Seller not found"}
    if account is None:
        logger.error(f"Seller account not found for user {user_id} ({country}/{region})")
        return {"success": False, "error": "Seller account not found for region"}

    result = await db.execute(
        select(SellerProduct).where(SellerProduct.account_id == account.id).order_by(SellerProduct.position)
    )
    products = result.scalars().all()

    now = utcnow()
    updated = 0
    for product in products:
        issue_count = counts.get(product.asin, 0)
        if product.issue_count != issue_count:
            product.issue_count = issue_count
            product.issue_count_updated_at = now
            updated += 1

    if updated:
        await db.flush()
        logger.info(f"Updated {updated}/{len(products)} product issue counts for user {user_id} ({country}/{region})")
    else:
        logger.info(f"No product issue count changes for user {user_id} ({country}/{region})")

    return {
        "success": True,
        "data": {"updatedCount": updated, "totalProducts": len(products), "productsWithIssues": len(counts)},
    }


async def store_product_issues_from_dashboard_data(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    dashboard_data: Optional[dict],
    source: str = CalculationSource.INTEGRATION.value,
) -> dict:
    started = time.monotonic()
    if not dashboard_data or dashboard_data.get("productWiseError") is None:
        logger.warning(f"No productWiseError data provided for user {user_id}")
        return {"success": False, "error": "No productWiseError data provided", "duration": elapsed_ms(started)}
    try:
        async with db.begin_nested():
            outcome = await _apply_issue_counts(db, user_id, country, region, dashboard_data["productWiseError"])
        outcome["duration"] = elapsed_ms(started)
        if outcome["success"]:
            logger.info(f"Stored product issues for user {user_id} from dashboard data, source={source}")
        return outcome
    except Exception as e:
        logger.error(f"Failed to store product issues for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def calculate_and_store_product_issues(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    source: str = CalculationSource.INTEGRATION.value,
    task_creator: Optional[TaskCreator] = None,
) -> dict:
    started = time.monotonic()
    logger.info(f"Calculating product issues for user {user_id} ({country}/{region}), source={source}")
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
            outcome = await _apply_issue_counts(
                db, user_id, country, region, dashboard_data.get("productWiseError") or [],
            )
        outcome["duration"] = elapsed_ms(started)
        return outcome
    except Exception as e:
        logger.error(f"Product issues calculation failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "duration": elapsed_ms(started)}


async def get_top_products_by_issues(
    db: AsyncSession, user_id: str, country: str, region: str, limit: int = 10,
) -> list[dict]:
    """Active catalog products with at least one issue, most issues first."""
    try:
        result = await db.execute(
            select(SellerProduct)
            .join(SellerAccount, SellerProduct.account_id == SellerAccount.id)
            .join(Seller, SellerAccount.seller_id == Seller.id)
            .where(
                Seller.user_id == user_id,
                SellerAccount.country == country,
                SellerAccount.region == region,
                SellerProduct.status == "Active",
                SellerProduct.issue_count > 0,
            )
            .order_by(SellerProduct.issue_count.desc(), SellerProduct.position)
            .limit(limit)
        )
        return [p.to_dict() for p in result.scalars().all()]
    except Exception as e:
        logger.error(f"Failed to load top products by issues for user {user_id}: {e}", exc_info=True)
        return []
