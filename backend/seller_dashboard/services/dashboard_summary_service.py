"""
Dashboard Summary Service: lightweight, phased loaders for the main dashboard.

The UI renders incrementally:
  Phase 1  precomputed issue counts, product counts, date range
  Phase 2  account health, finance block, PPC and buy-box summaries
  Phase 3  chart series, full product arrays, filtered orders

Each phase issues its reads in parallel, one short session per read, and
zero-defaults whatever is missing; no phase depends on another.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.models import (
    BuyBoxSnapshot,
    DataFetchTracking,
    EconomicsMetrics,
    IssueSummary,
    KeywordPerformanceSnapshot,
    OrderSnapshot,
    PPCMetrics,
    ReportVersion,
    Seller,
    SellerAccount,
    SellerPerformanceReport,
    SellerProduct,
)
from seller_dashboard.services.account_health import calculate_account_health_percentage, check_account_health
from seller_dashboard.services.dashboard_calculation import analyse_data
from seller_dashboard.services.sponsored_ads import calculate_money_wasted_in_ads
from seller_dashboard.utils import elapsed_ms, round2, to_float

logger = logging.getLogger(__name__)

COUNTED_ORDER_STATUSES = ("Shipped", "Unshipped", "PartiallyShipped")

DEFAULT_PPC_SUMMARY = {
    "totalSales": 0,
    "totalSpend": 0,
    "overallAcos": 0,
    "overallRoas": 0,
    "totalImpressions": 0,
    "totalClicks": 0,
    "ctr": 0,
    "cpc": 0,
}


# ══════════════════════════════════════════════════════════════════════
#  READS (one session each so they can run concurrently)
# ══════════════════════════════════════════════════════════════════════

async def _latest(session_factory: async_sessionmaker, model, user_id: str, country: str, region: str,
                  *criteria, order_by=None):
    async with session_factory() as session:
        result = await session.execute(
            select(model)
            .where(model.user_id == user_id, model.country == country, model.region == region, *criteria)
            .order_by((order_by if order_by is not None else model.created_at).desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def _issue_summary(session_factory, user_id, country, region) -> Optional[IssueSummary]:
    async with session_factory() as session:
        result = await session.execute(
            select(IssueSummary).where(
                IssueSummary.user_id == user_id,
                IssueSummary.country == country,
                IssueSummary.region == region,
            )
        )
        return result.scalar_one_or_none()


async def _catalog(session_factory, user_id, country, region) -> list[SellerProduct]:
    async with session_factory() as session:
        result = await session.execute(
            select(SellerProduct)
            .join(SellerAccount, SellerProduct.account_id == SellerAccount.id)
            .join(Seller, SellerAccount.seller_id == Seller.id)
            .where(Seller.user_id == user_id, SellerAccount.country == country, SellerAccount.region == region)
            .order_by(SellerProduct.position)
        )
        return list(result.scalars().all())


async def _report(session_factory, user_id, country, region, version: ReportVersion) -> Optional[dict]:
    row = await _latest(session_factory, SellerPerformanceReport, user_id, country, region,
                        SellerPerformanceReport.report_version == version.value)
    return row.data if row is not None else None


async def _fetch_tracking(session_factory, user_id, country, region) -> Optional[DataFetchTracking]:
    return await _latest(session_factory, DataFetchTracking, user_id, country, region,
                         DataFetchTracking.status == "completed", order_by=DataFetchTracking.fetched_at)


# ══════════════════════════════════════════════════════════════════════
#  PROJECTIONS
# ══════════════════════════════════════════════════════════════════════

def _fresh(summary: Optional[IssueSummary]) -> bool:
    return summary is not None and not summary.is_stale


def _date_range(tracking: Optional[DataFetchTracking], economics: Optional[EconomicsMetrics] = None) -> dict:
    if tracking is not None and tracking.date_range:
        return {
            "startDate": tracking.date_range.get("startDate"),
            "endDate": tracking.date_range.get("endDate"),
            "calendarMode": tracking.calendar_mode or "default",
        }
    if economics is not None and economics.date_range:
        return {
            "startDate": economics.date_range.get("startDate"),
            "endDate": economics.date_range.get("endDate"),
            "calendarMode": "default",
        }
    return {"startDate": None, "endDate": None, "calendarMode": "default"}


def issue_counts(summary: Optional[IssueSummary]) -> dict:
    """Dashboard issue counts; zeros unless a non-stale summary exists."""
    fresh = _fresh(summary)
    return {
        "totalProfitabilityErrors": summary.total_profitability_errors if fresh else 0,
        "totalSponsoredAdsErrors": summary.total_sponsored_ads_errors if fresh else 0,
        "totalInventoryErrors": summary.total_inventory_errors if fresh else 0,
        "TotalRankingerrors": summary.total_ranking_errors if fresh else 0,
        "totalErrorInConversion": summary.total_conversion_errors if fresh else 0,
        "totalErrorInAccount": summary.total_account_errors if fresh else 0,
        "totalIssues": summary.total_issues if fresh else 0,
        "numberOfProductsWithIssues": summary.number_of_products_with_issues if fresh else 0,
        "hasPrecomputedIssues": fresh,
        "issueDataLastUpdated": summary.last_calculated_at.isoformat()
        if fresh and summary.last_calculated_at else None,
    }


def account_finance(economics: Optional[EconomicsMetrics], total_sales: float, ppc_spend: Any) -> dict:
    """Finance block: Amazon fees fall back to FBA + storage when zero."""
    fba_fees = (economics.fba_fees if economics is not None else 0) or 0
    storage_fees = (economics.storage_fees if economics is not None else 0) or 0
    amazon_fees = (economics.amazon_fees if economics is not None else 0) or 0
    refunds = (economics.refunds if economics is not None else 0) or 0
    if amazon_fees == 0:
        amazon_fees = fba_fees + storage_fees
    return {
        "Gross_Profit": round2(total_sales - amazon_fees - refunds),
        "Total_Sales": total_sales,
        "ProductAdsPayment": ppc_spend or 0,
        "FBA_Fees": fba_fees,
        "Storage": storage_fees,
        "Amazon_Fees": amazon_fees,
        "Amazon_Charges": amazon_fees,
        "Other_Amazon_Fees": round2(max(0, amazon_fees - fba_fees)),
        "Refunds": refunds,
    }


def buy_box_summary(buy_box: Optional[BuyBoxSnapshot]) -> dict:
    if buy_box is None:
        return {"totalProducts": 0, "productsWithBuyBox": 0, "productsWithoutBuyBox": 0}
    return {
        "totalProducts": buy_box.total_products or 0,
        "productsWithBuyBox": buy_box.products_with_buybox or 0,
        "productsWithoutBuyBox": buy_box.products_without_buybox or 0,
    }


def sponsored_ads_summary(ppc_summary: dict) -> dict:
    return {
        "totalCost": ppc_summary.get("totalSpend"),
        "totalSalesIn30Days": ppc_summary.get("totalSales"),
        "acos": ppc_summary.get("overallAcos") or 0,
        "tacos": 0,
    }


def counted_orders(orders: Optional[OrderSnapshot]) -> list[dict]:
    rows = orders.revenue_data if orders is not None else None
    if not isinstance(rows, list):
        return []
    return [o for o in rows if isinstance(o, dict) and o.get("orderStatus") in COUNTED_ORDER_STATUSES]


def date_wise_total_costs(ppc: Optional[PPCMetrics]) -> list[dict]:
    metrics = (ppc.date_wise_metrics if ppc is not None else None) or []
    return [
        {"date": m.get("date"), "totalCost": m.get("spend") or 0, "sales": m.get("sales") or 0}
        for m in metrics if isinstance(m, dict)
    ]


def datewise_sales_total(economics: Optional[EconomicsMetrics]) -> float:
    """Weekly sale from the date-wise series when present, else the stored total."""
    if economics is None:
        return 0
    if isinstance(economics.datewise_sales, list):
        return round2(sum(to_float(item.get("sales")) for item in economics.datewise_sales if isinstance(item, dict)))
    return economics.total_sales or 0


def _ppc_summary(ppc: Optional[PPCMetrics]) -> dict:
    return dict(ppc.summary) if ppc is not None and ppc.summary else dict(DEFAULT_PPC_SUMMARY)


# ══════════════════════════════════════════════════════════════════════
#  PHASES
# ══════════════════════════════════════════════════════════════════════

async def get_dashboard_phase1(session_factory: async_sessionmaker, user_id: str, country: str, region: str) -> dict:
    """Precomputed issue counts, product counts and date range."""
    started = time.monotonic()
    try:
        summary, products, tracking = await asyncio.gather(
            _issue_summary(session_factory, user_id, country, region),
            _catalog(session_factory, user_id, country, region),
            _fetch_tracking(session_factory, user_id, country, region),
        )
        data = issue_counts(summary)
        data.update({
            "totalProductCount": len(products),
            "activeProductCount": sum(1 for p in products if p.status == "Active"),
            **_date_range(tracking),
            "Country": country,
            "phase": 1,
        })
        logger.info(f"Dashboard phase 1 for user {user_id} ({country}/{region}) in {elapsed_ms(started)}ms")
        return {"success": True, "data": data}
    except Exception as e:
        logger.error(f"Dashboard phase 1 failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_dashboard_phase2(session_factory: async_sessionmaker, user_id: str, country: str, region: str) -> dict:
    """Account health, finance block, PPC and buy-box summaries."""
    started = time.monotonic()
    try:
        economics, v2, v1, buy_box, ppc = await asyncio.gather(
            _latest(session_factory, EconomicsMetrics, user_id, country, region),
            _report(session_factory, user_id, country, region, ReportVersion.V2),
            _report(session_factory, user_id, country, region, ReportVersion.V1),
            _latest(session_factory, BuyBoxSnapshot, user_id, country, region),
            _latest(session_factory, PPCMetrics, user_id, country, region),
        )
        total_sales = round2((economics.total_sales if economics is not None else 0) or 0)
        ppc_summary = _ppc_summary(ppc)
        data = {
            "accountHealthPercentage": calculate_account_health_percentage(v2),
            "AccountErrors": check_account_health(v2, v1),
            "TotalWeeklySale": total_sales,
            "accountFinance": account_finance(economics, total_sales, ppc_summary.get("totalSpend")),
            "ppcSummary": ppc_summary,
            "sponsoredAdsMetrics": sponsored_ads_summary(ppc_summary),
            "buyBoxSummary": buy_box_summary(buy_box),
            "phase": 2,
        }
        logger.info(f"Dashboard phase 2 for user {user_id} ({country}/{region}) in {elapsed_ms(started)}ms")
        return {"success": True, "data": data}
    except Exception as e:
        logger.error(f"Dashboard phase 2 failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_dashboard_phase3(session_factory: async_sessionmaker, user_id: str, country: str, region: str) -> dict:
    """Chart series, product arrays and counted orders."""
    started = time.monotonic()
    try:
        economics, ppc, keywords, orders, products = await asyncio.gather(
            _latest(session_factory, EconomicsMetrics, user_id, country, region),
            _latest(session_factory, PPCMetrics, user_id, country, region),
            _latest(session_factory, KeywordPerformanceSnapshot, user_id, country, region),
            _latest(session_factory, OrderSnapshot, user_id, country, region),
            _catalog(session_factory, user_id, country, region),
        )
        keywords_data = (keywords.keywords_data if keywords is not None else None) or []
        filtered_orders = counted_orders(orders)
        catalog = [p.to_dict() for p in products]
        data = {
            "TotalSales": (economics.datewise_sales if economics is not None else None) or [],
            "TotalProduct": catalog,
            "ActiveProducts": [p for p in catalog if p["status"] == "Active"],
            "GetOrderData": filtered_orders,
            "totalOrdersCount": len(filtered_orders),
            "ppcDateWiseMetrics": (ppc.date_wise_metrics if ppc is not None else None) or [],
            "dateWiseTotalCosts": date_wise_total_costs(ppc),
            "adsKeywordsPerformanceData": keywords_data,
            "moneyWastedInAds": calculate_money_wasted_in_ads(keywords_data),
            "phase": 3,
        }
        logger.info(f"Dashboard phase 3 for user {user_id} ({country}/{region}) in {elapsed_ms(started)}ms")
        return {"success": True, "data": data}
    except Exception as e:
        logger.error(f"Dashboard phase 3 failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_dashboard_summary(session_factory: async_sessionmaker, user_id: str, country: str, region: str) -> dict:
    """All three phases' data in one lightweight response."""
    started = time.monotonic()
    try:
        (economics, buy_box, v2, v1, ppc, orders, products, keywords, tracking, summary) = await asyncio.gather(
            _latest(session_factory, EconomicsMetrics, user_id, country, region),
            _latest(session_factory, BuyBoxSnapshot, user_id, country, region),
            _report(session_factory, user_id, country, region, ReportVersion.V2),
            _report(session_factory, user_id, country, region, ReportVersion.V1),
            _latest(session_factory, PPCMetrics, user_id, country, region),
            _latest(session_factory, OrderSnapshot, user_id, country, region),
            _catalog(session_factory, user_id, country, region),
            _latest(session_factory, KeywordPerformanceSnapshot, user_id, country, region),
            _fetch_tracking(session_factory, user_id, country, region),
            _issue_summary(session_factory, user_id, country, region),
        )
        logger.info(f"Dashboard summary queries for user {user_id} done in {elapsed_ms(started)}ms")

        account_errors = check_account_health(v2, v1)
        total_sales = datewise_sales_total(economics)
        ppc_summary = _ppc_summary(ppc)
        keywords_data = (keywords.keywords_data if keywords is not None else None) or []
        filtered_orders = counted_orders(orders)
        catalog = [p.to_dict() for p in products]
        active = [p for p in catalog if p["status"] == "Active"]
        buy_box_counts = buy_box_summary(buy_box)

        data = {
            "accountHealthPercentage": calculate_account_health_percentage(v2),
            "AccountErrors": account_errors,
            "TotalWeeklySale": total_sales,
            "accountFinance": account_finance(economics, total_sales, ppc_summary.get("totalSpend")),
            "TotalSales": (economics.datewise_sales if economics is not None else None) or [],
            "GetOrderData": filtered_orders,
            "totalOrdersCount": len(filtered_orders),
            "TotalProduct": catalog,
            "ActiveProducts": active,
            "totalProductCount": len(catalog),
            "activeProductCount": len(active),
            "ppcSummary": {**ppc_summary, "moneyWastedInAds": calculate_money_wasted_in_ads(keywords_data)},
            "sponsoredAdsMetrics": sponsored_ads_summary(ppc_summary),
            "ppcDateWiseMetrics": (ppc.date_wise_metrics if ppc is not None else None) or [],
            "dateWiseTotalCosts": date_wise_total_costs(ppc),
            "adsKeywordsPerformanceData": keywords_data,
            "buyBoxSummary": buy_box_counts,
            **_date_range(tracking, economics),
            "Country": country,
            "isLightweightSummary": True,
        }

        counts = issue_counts(summary)
        if not counts["hasPrecomputedIssues"]:
            # Approximate from what is cheap to read
            account_count = account_errors.get("TotalErrors") or 0
            without_buybox = buy_box_counts["productsWithoutBuyBox"]
            counts["totalErrorInAccount"] = account_count
            counts["totalErrorInConversion"] = without_buybox
            counts["totalIssues"] = account_count + without_buybox
            logger.info(f"No fresh issue summary for user {user_id}, using approximate counts")
        data.update(counts)

        logger.info(f"Dashboard summary for user {user_id} ({country}/{region}) in {elapsed_ms(started)}ms")
        return {"success": True, "data": data}
    except Exception as e:
        logger.error(f"Dashboard summary failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_full_dashboard_data(collector: SnapshotCollector, user_id: str, country: str, region: str) -> dict:
    """Run the full aggregator over the latest snapshot."""
    started = time.monotonic()
    try:
        collected = await collector.analyse(user_id, country, region)
        if not collected or collected.get("status") != 200:
            return {"success": False, "error": (collected or {}).get("message") or "Analysis failed"}
        result = await analyse_data(collected.get("message"), user_id)
        logger.info(f"Full dashboard data for user {user_id} ({country}/{region}) in {elapsed_ms(started)}ms")
        return {"success": True, "data": result["dashboardData"], "degraded": result["degraded"]}
    except Exception as e:
        logger.error(f"Full dashboard data failed for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
