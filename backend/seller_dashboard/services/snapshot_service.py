"""
Snapshot Service: persists what the integration worker pushes.

Three hand-offs per (user, country, region):
  - the raw multi-source snapshot the aggregator reads,
  - the seller catalog (products whose issue counts we maintain),
  - the metric documents the phased dashboard loaders read.
"""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.models import (
    AnalysisSnapshot,
    BuyBoxSnapshot,
    DataFetchTracking,
    EconomicsMetrics,
    KeywordPerformanceSnapshot,
    OrderSnapshot,
    PPCMetrics,
    ReportVersion,
    Seller,
    SellerAccount,
    SellerPerformanceReport,
    SellerProduct,
)
from seller_dashboard.utils import parse_float, to_float

logger = logging.getLogger(__name__)

KEEP_SNAPSHOTS = 3


async def store_snapshot(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    payload: dict,
) -> AnalysisSnapshot:
    """Insert a snapshot and prune older ones, keeping the latest few per key."""
    row = AnalysisSnapshot(user_id=user_id, country=country, region=region, payload=payload)
    db.add(row)
    await db.flush()

    result = await db.execute(
        select(AnalysisSnapshot.id)
        .where(
            AnalysisSnapshot.user_id == user_id,
            AnalysisSnapshot.country == country,
            AnalysisSnapshot.region == region,
        )
        .order_by(AnalysisSnapshot.created_at.desc())
        .offset(KEEP_SNAPSHOTS)
    )
    stale_ids = [r[0] for r in result.all()]
    if stale_ids:
        await db.execute(delete(AnalysisSnapshot).where(AnalysisSnapshot.id.in_(stale_ids)))
        logger.info(f"Pruned {len(stale_ids)} old snapshots for user {user_id} ({country}/{region})")

    logger.info(f"Stored snapshot for user {user_id} ({country}/{region})")
    return row


async def upsert_catalog(
    db: AsyncSession,
    user_id: str,
    country: str,
    region: str,
    products: list[dict],
    brand: Optional[str] = None,
) -> dict:
    """
    Sync the seller's catalog for one marketplace.

    Products are matched by ASIN; unknown ASINs are added, listed ones updated
    (their issue counts are kept), and products missing from the push removed.
    """
    result = await db.execute(select(Seller).where(Seller.user_id == user_id))
    seller = result.scalar_one_or_none()
    if seller is None:
        seller = Seller(user_id=user_id, brand=brand)
        db.add(seller)
        await db.flush()
    elif brand:
        seller.brand = brand

    result = await db.execute(
        select(SellerAccount).where(
            SellerAccount.seller_id == seller.id,
            SellerAccount.country == country,
            SellerAccount.region == region,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        account = SellerAccount(seller_id=seller.id, country=country, region=region)
        db.add(account)
        await db.flush()

    result = await db.execute(select(SellerProduct).where(SellerProduct.account_id == account.id))
    existing = {p.asin: p for p in result.scalars().all()}

    added = updated = 0
    seen: set = set()
    for position, item in enumerate(products or []):
        asin = item.get("asin") if isinstance(item, dict) else None
        if not asin or asin in seen:
            continue
        seen.add(asin)
        product = existing.get(asin)
        if product is None:
            product = SellerProduct(account_id=account.id, asin=asin)
            db.add(product)
            added += 1
        else:
            updated += 1
        product.sku = item.get("sku") or product.sku
        product.item_name = item.get("itemName") or product.item_name
        product.price = parse_float(item.get("price"))
        product.status = item.get("status") or "Active"
        product.position = position

    removed = [p for asin, p in existing.items() if asin not in seen]
    for product in removed:
        await db.delete(product)

    await db.flush()
    logger.info(
        f"Catalog sync for user {user_id} ({country}/{region}): "
        f"{added} added, {updated} updated, {len(removed)} removed"
    )
    return {"added": added, "updated": updated, "removed": len(removed)}


async def store_metrics(db: AsyncSession, user_id: str, country: str, region: str, metrics: dict) -> list[str]:
    """
    Insert the metric documents present in ``metrics`` (wire keys as the worker
    sends them). Returns the names of the sections stored.
    """
    key = {"user_id": user_id, "country": country, "region": region}
    stored = []

    economics = metrics.get("economicsMetrics")
    if isinstance(economics, dict):
        db.add(EconomicsMetrics(
            **key,
            total_sales=to_float(economics.get("totalSales")),
            gross_profit=to_float(economics.get("grossProfit")),
            ppc_spent=to_float(economics.get("ppcSpent")),
            fba_fees=to_float(economics.get("fbaFees")),
            storage_fees=to_float(economics.get("storageFees")),
            amazon_fees=to_float(economics.get("amazonFees")),
            refunds=to_float(economics.get("refunds")),
            datewise_sales=economics.get("datewiseSales"),
            date_range=economics.get("dateRange"),
        ))
        stored.append("economicsMetrics")

    buy_box = metrics.get("buyBoxData")
    if isinstance(buy_box, dict):
        db.add(BuyBoxSnapshot(
            **key,
            total_products=int(to_float(buy_box.get("totalProducts"))),
            products_with_buybox=int(to_float(buy_box.get("productsWithBuyBox"))),
            products_without_buybox=int(to_float(buy_box.get("productsWithoutBuyBox"))),
            date_range=buy_box.get("dateRange"),
        ))
        stored.append("buyBoxData")

    for name, version in (("performanceV2", ReportVersion.V2), ("performanceV1", ReportVersion.V1)):
        report = metrics.get(name)
        if isinstance(report, dict):
            db.add(SellerPerformanceReport(**key, report_version=version.value, data=report))
            stored.append(name)

    ppc = metrics.get("ppcMetrics")
    if isinstance(ppc, dict):
        db.add(PPCMetrics(
            **key,
            summary=ppc.get("summary"),
            date_wise_metrics=ppc.get("dateWiseMetrics"),
            date_range=ppc.get("dateRange"),
        ))
        stored.append("ppcMetrics")

    if isinstance(metrics.get("keywordsData"), list):
        db.add(KeywordPerformanceSnapshot(**key, keywords_data=metrics["keywordsData"]))
        stored.append("keywordsData")

    if isinstance(metrics.get("revenueData"), list):
        db.add(OrderSnapshot(**key, revenue_data=metrics["revenueData"]))
        stored.append("revenueData")

    fetch = metrics.get("dataFetch")
    if isinstance(fetch, dict):
        db.add(DataFetchTracking(
            **key,
            status=fetch.get("status") or "completed",
            date_range=fetch.get("dateRange"),
            calendar_mode=fetch.get("calendarMode") or "default",
        ))
        stored.append("dataFetch")

    await db.flush()
    logger.info(f"Stored metrics for user {user_id} ({country}/{region}): {', '.join(stored) or 'none'}")
    return stored
