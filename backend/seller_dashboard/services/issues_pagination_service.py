"""
Issues Pagination Service: paginated, sorted and filtered slices of the
cached issues data for the Issues by Category and Issues by Product pages.

Reads never re-run the aggregator unless the cache row is missing; then a
single fallback calculation is stored and the row is re-read.

Category endpoints flatten each product's errors into one row per issue so
totals match the summary counts, paginate the flat list, then regroup the
page by product in the shape the frontend renders.
"""

import logging
import math
import time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import SnapshotCollector
from seller_dashboard.config import get_settings
from seller_dashboard.models import CalculationSource, IssuesData
from seller_dashboard.services.issue_summary_service import get_issue_summary
from seller_dashboard.services.issues_data_service import (
    DEFAULT_ACCOUNT_HEALTH,
    calculate_and_store_issues_data,
    get_issues_data_row,
)
from seller_dashboard.utils import elapsed_ms, to_float

logger = logging.getLogger(__name__)

NO_DATA_ERROR = "No issues data found and calculation failed"

RANKING_SECTIONS = (
    ("TitleResult", "Title"),
    ("BulletPoints", "Bullet Points"),
    ("Description", "Description"),
)
RANKING_CHECKS = (
    ("charLim", "Character Limit"),
    ("RestictedWords", "Restricted Words"),
    ("checkSpecialCharacters", "Special Characters"),
)
CONVERSION_ISSUE_TYPES = (
    ("imageResultErrorData", "Images"),
    ("videoResultErrorData", "Videos"),
    ("productStarRatingResultErrorData", "Rating"),
    ("aplusErrorData", "A Plus"),
    ("brandStoryErrorData", "Brand Story"),
    ("productsWithOutBuyboxErrorData", "No Buy Box"),
)
PLANNING_SUBTYPES = ("longTermStorageFees", "unfulfillable")

NUMERIC_SORT_FIELDS = {
    "issues": "errors",
    "sessions": "sessions",
    "conversion": "conversionRate",
    "sales": "sales",
    "acos": "acos",
    "price": "price",
}
TEXT_SORT_FIELDS = {"name": "name", "asin": "asin"}


def paginate(items: list, page: int, limit: int) -> tuple[list, dict]:
    """Slice ``[(page-1)*limit, page*limit)`` and describe the page."""
    page = max(int(page or 1), 1)
    limit = max(int(limit or 1), 1)
    total = len(items)
    start = (page - 1) * limit
    return items[start:start + limit], {
        "page": page,
        "limit": limit,
        "total": total,
        "hasMore": start + limit < total,
        "totalPages": math.ceil(total / limit),
    }


def _is_error(value: Any) -> bool:
    return isinstance(value, dict) and value.get("status") == "Error"


def _product_map(row: IssuesData) -> dict:
    return {p["asin"]: p for p in (row.total_product or []) if isinstance(p, dict) and p.get("asin")}


def _title_and_sku(error: dict, product: Optional[dict], title: Any = None) -> tuple[Any, Any]:
    product = product or {}
    title = title or product.get("itemName") or product.get("title") or product.get("name") or "Unknown Product"
    return title, product.get("sku") or error.get("sku") or ""


async def ensure_issues_data(
    db: AsyncSession, collector: SnapshotCollector, user_id: str, country: str, region: str,
) -> Optional[IssuesData]:
    """Cached row, or one fallback calculation followed by a re-read."""
    row = await get_issues_data_row(db, user_id, country, region)
    if row is not None:
        return row

    logger.info(f"No cached issues data for user {user_id} ({country}/{region}), calculating")
    result = await calculate_and_store_issues_data(
        db, collector, user_id, country, region, source=CalculationSource.PAGINATION_FALLBACK.value,
    )
    if not result["success"]:
        logger.error(f"Fallback issues calculation failed for user {user_id}: {result.get('error')}")
        return None
    return await get_issues_data_row(db, user_id, country, region)


# ══════════════════════════════════════════════════════════════════════
#  SUMMARY / ACCOUNT
# ══════════════════════════════════════════════════════════════════════

async def get_issues_summary(
    db: AsyncSession, collector: SnapshotCollector, user_id: str, country: str, region: str,
) -> dict:
    """Header counts: the issue summary where present, cached issues data otherwise."""
    started = time.monotonic()
    try:
        summary = await get_issue_summary(db, user_id, country, region)
        row = await get_issues_data_row(db, user_id, country, region)

        if summary is None and row is None:
            logger.info(f"No summary data for user {user_id} ({country}/{region}), calculating")
            result = await calculate_and_store_issues_data(
                db, collector, user_id, country, region, source=CalculationSource.SUMMARY_FALLBACK.value,
            )
            if not result["success"]:
                return {"success": False, "error": NO_DATA_ERROR, "duration": elapsed_ms(started)}
            summary = await get_issue_summary(db, user_id, country, region)
            row = await get_issues_data_row(db, user_id, country, region)

        s = summary.to_dict() if summary is not None else {}
        meta = {
            "totalRankingErrors": row.total_ranking_errors,
            "totalConversionErrors": row.total_conversion_errors,
            "totalInventoryErrors": row.total_inventory_errors,
            "totalAccountErrors": row.total_account_errors,
            "totalProfitabilityErrors": row.total_profitability_errors,
            "totalSponsoredAdsErrors": row.total_sponsored_ads_errors,
            "numberOfProductsWithIssues": len(row.product_wise_error or []),
        } if row is not None else {}

        data = {key: s.get(key) or meta.get(key) or 0 for key in (
            "totalRankingErrors", "totalConversionErrors", "totalInventoryErrors", "totalAccountErrors",
            "totalProfitabilityErrors", "totalSponsoredAdsErrors", "numberOfProductsWithIssues",
        )}
        data["totalIssues"] = s.get("totalIssues") or (
            (meta.get("totalRankingErrors") or 0)
            + (meta.get("totalConversionErrors") or 0)
            + (meta.get("totalInventoryErrors") or 0)
        )
        data["totalActiveProducts"] = s.get("totalActiveProducts") or (
            len(row.active_products or []) if row is not None else 0
        )
        data["accountHealthPercentage"] = (
            (row.account_health_percentage if row is not None else None) or dict(DEFAULT_ACCOUNT_HEALTH)
        )
        data["TotalProduct"] = len(row.total_product or []) if row is not None else 0
        calculated_at = s.get("lastCalculatedAt") or (
            row.last_calculated_at.isoformat() if row is not None and row.last_calculated_at else None
        )
        data["lastCalculatedAt"] = calculated_at

        duration = elapsed_ms(started)
        logger.info(
            f"Issues summary for user {user_id} ({country}/{region}) from "
            f"{'issue summary' if summary is not None else 'issues data'} in {duration}ms"
        )
        return {"success": True, "data": data, "duration": duration}
    except Exception as e:
        logger.error(f"Failed to build issues summary for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_account_issues(
    db: AsyncSession, collector: SnapshotCollector, user_id: str, country: str, region: str,
) -> dict:
    started = time.monotonic()
    try:
        row = await ensure_issues_data(db, collector, user_id, country, region)
        if row is None:
            return {"success": False, "error": NO_DATA_ERROR}
        return {
            "success": True,
            "data": {
                "AccountErrors": row.account_errors or {},
                "accountHealthPercentage": row.account_health_percentage or dict(DEFAULT_ACCOUNT_HEALTH),
                "totalAccountErrors": row.total_account_errors or 0,
            },
            "duration": elapsed_ms(started),
        }
    except Exception as e:
        logger.error(f"Failed to load account issues for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


# ══════════════════════════════════════════════════════════════════════
#  CATEGORY PAGES
# ══════════════════════════════════════════════════════════════════════

def flatten_ranking_issues(ranking_errors: list, products: dict) -> list[dict]:
    issues = []
    for error in ranking_errors or []:
        if not isinstance(error, dict):
            continue
        asin = error.get("asin")
        data = error.get("data") if isinstance(error.get("data"), dict) else {}
        title, sku = _title_and_sku(error, products.get(asin), data.get("Title"))
        base = {"asin": asin, "sku": sku, "Title": title}

        for section_key, section_label in RANKING_SECTIONS:
            section = data.get(section_key)
            if not isinstance(section, dict):
                continue
            for check_key, check_label in RANKING_CHECKS:
                if _is_error(section.get(check_key)):
                    issues.append({**base, "sectionKey": section_key, "checkKey": check_key,
                                   "sectionLabel": section_label, "checkLabel": check_label,
                                   "errorData": section[check_key]})

        # backend keywords
        if _is_error(data.get("charLim")):
            issues.append({**base, "sectionKey": "charLim", "checkKey": "charLim",
                           "sectionLabel": "Backend Keywords", "checkLabel": "Character Limit",
                           "errorData": data["charLim"]})
    return issues


def group_ranking_issues(issues: list[dict]) -> list[dict]:
    grouped: dict = {}
    for issue in issues:
        entry = grouped.setdefault(issue["asin"], {
            "asin": issue["asin"], "sku": issue["sku"], "Title": issue["Title"],
            "data": {"Title": issue["Title"]},
        })
        if issue["sectionKey"] == "charLim":
            entry["data"]["charLim"] = issue["errorData"]
        else:
            entry["data"].setdefault(issue["sectionKey"], {})[issue["checkKey"]] = issue["errorData"]
    return list(grouped.values())


def flatten_conversion_issues(conversion_errors: list, products: dict) -> list[dict]:
    issues = []
    for error in conversion_errors or []:
        if not isinstance(error, dict):
            continue
        asin = error.get("asin")
        title, sku = _title_and_sku(error, products.get(asin), error.get("Title"))
        for key, label in CONVERSION_ISSUE_TYPES:
            if error.get(key):
                issues.append({"asin": asin, "sku": sku, "Title": title, "issueType": label,
                               "errorKey": key, "errorData": error[key]})
    return issues


def group_conversion_issues(issues: list[dict]) -> list[dict]:
    grouped: dict = {}
    for issue in issues:
        entry = grouped.setdefault(issue["asin"], {"asin": issue["asin"], "sku": issue["sku"], "Title": issue["Title"]})
        entry[issue["errorKey"]] = issue["errorData"]
    return list(grouped.values())


def flatten_inventory_issues(inventory_errors: list, products: dict) -> list[dict]:
    issues = []
    for error in inventory_errors or []:
        if not isinstance(error, dict):
            continue
        asin = error.get("asin")
        title, sku = _title_and_sku(error, products.get(asin), error.get("Title"))
        base = {"asin": asin, "sku": sku, "Title": title}

        planning = error.get("inventoryPlanningErrorData")
        if isinstance(planning, dict):
            for subtype in PLANNING_SUBTYPES:
                if _is_error(planning.get(subtype)):
                    issues.append({**base, "issueType": "inventoryPlanning", "issueSubType": subtype,
                                   "errorData": planning[subtype]})
        if error.get("strandedInventoryErrorData"):
            issues.append({**base, "issueType": "stranded", "issueSubType": "stranded",
                           "errorData": error["strandedInventoryErrorData"]})
        if error.get("inboundNonComplianceErrorData"):
            issues.append({**base, "issueType": "compliance", "issueSubType": "inboundNonCompliance",
                           "errorData": error["inboundNonComplianceErrorData"]})

        replenishment = error.get("replenishmentErrorData")
        if replenishment:
            rows = replenishment if isinstance(replenishment, list) else [replenishment]
            for item in rows:
                item_sku = item.get("sku") if isinstance(item, dict) else None
                issues.append({**base, "sku": item_sku or sku, "issueType": "replenishment",
                               "issueSubType": "lowInventory", "errorData": item})
    return issues


def group_inventory_issues(issues: list[dict]) -> list[dict]:
    grouped: dict = {}
    for issue in issues:
        entry = grouped.setdefault(issue["asin"], {"asin": issue["asin"], "sku": issue["sku"], "Title": issue["Title"]})
        kind = issue["issueType"]
        if kind == "inventoryPlanning":
            entry.setdefault("inventoryPlanningErrorData", {})[issue["issueSubType"]] = issue["errorData"]
        elif kind == "stranded":
            entry["strandedInventoryErrorData"] = issue["errorData"]
        elif kind == "compliance":
            entry["inboundNonComplianceErrorData"] = issue["errorData"]
        elif kind == "replenishment":
            entry.setdefault("replenishmentErrorData", []).append(issue["errorData"])
    return list(grouped.values())


async def _category_page(
    db: AsyncSession, collector: SnapshotCollector, user_id: str, country: str, region: str,
    category: str, page: int, limit: Optional[int], column: str, flatten, group,
) -> dict:
    started = time.monotonic()
    limit = limit or get_settings().issues_page_size
    try:
        row = await ensure_issues_data(db, collector, user_id, country, region)
        if row is None:
            return {"success": False, "error": NO_DATA_ERROR}

        issues = flatten(getattr(row, column) or [], _product_map(row))
        page_items, pagination = paginate(issues, page, limit)
        data = group(page_items)

        duration = elapsed_ms(started)
        logger.info(
            f"{category} issues for user {user_id} ({country}/{region}): page {pagination['page']}, "
            f"{len(page_items)}/{pagination['total']} issues across {len(data)} products in {duration}ms"
        )
        return {"success": True, "data": data, "pagination": pagination, "duration": duration}
    except Exception as e:
        logger.error(f"Failed to load {category} issues for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


async def get_ranking_issues(db, collector, user_id, country, region, page=1, limit=None) -> dict:
    return await _category_page(db, collector, user_id, country, region, "Ranking", page, limit,
                                "ranking_product_wise_errors", flatten_ranking_issues, group_ranking_issues)


async def get_conversion_issues(db, collector, user_id, country, region, page=1, limit=None) -> dict:
    result = await _category_page(db, collector, user_id, country, region, "Conversion", page, limit,
                                  "conversion_product_wise_errors", flatten_conversion_issues,
                                  group_conversion_issues)
    if result["success"]:
        # No Buy Box rows are already part of the conversion list
        result["buyBoxData"] = []
    return result


async def get_inventory_issues(db, collector, user_id, country, region, page=1, limit=None) -> dict:
    return await _category_page(db, collector, user_id, country, region, "Inventory", page, limit,
                                "inventory_product_wise_errors", flatten_inventory_issues, group_inventory_issues)


# ══════════════════════════════════════════════════════════════════════
#  ISSUES BY PRODUCT
# ══════════════════════════════════════════════════════════════════════

def _error_count(section: Any) -> int:
    if not isinstance(section, dict):
        return 0
    return sum(1 for v in section.values() if _is_error(v))


def enrich_products(row: IssuesData) -> list[dict]:
    """productWiseError joined with the per-category detail rows and buy-box data."""
    def by_asin(rows):
        return {r.get("asin"): r for r in rows or [] if isinstance(r, dict)}

    ranking = by_asin(row.ranking_product_wise_errors)
    conversion = by_asin(row.conversion_product_wise_errors)
    inventory = by_asin(row.inventory_product_wise_errors)
    buy_box = by_asin((row.buy_box_data or {}).get("asinBuyBoxData"))

    enriched = []
    for product in row.product_wise_error or []:
        if not isinstance(product, dict):
            continue
        asin = product.get("asin")
        enriched.append({
            **product,
            "rankingErrorCount": _error_count(product.get("rankingErrors")),
            "conversionErrorCount": _error_count(product.get("conversionErrors")),
            "inventoryErrorCount": _error_count(product.get("inventoryErrors")),
            "rankingDetails": ranking.get(asin),
            "conversionDetails": conversion.get(asin),
            "inventoryDetails": inventory.get(asin),
            "buyBoxDetails": buy_box.get(asin),
        })
    return enriched


def search_products(products: list[dict], search: Optional[str]) -> list[dict]:
    if not search:
        return products
    needle = search.lower()
    return [
        p for p in products
        if needle in str(p.get("name") or "").lower()
        or needle in str(p.get("asin") or "").lower()
        or needle in str(p.get("sku") or "").lower()
    ]


def filter_by_priority(products: list[dict], priority: Optional[str]) -> list[dict]:
    """high: 5+ errors, medium: 2-4, low: exactly 1; anything else keeps all."""
    if priority == "high":
        return [p for p in products if to_float(p.get("errors")) >= 5]
    if priority == "medium":
        return [p for p in products if 2 <= to_float(p.get("errors")) < 5]
    if priority == "low":
        return [p for p in products if to_float(p.get("errors")) == 1]
    return products


def sort_products(products: list[dict], sort: str = "issues", sort_order: str = "desc") -> list[dict]:
    reverse = sort_order != "asc"
    if sort in TEXT_SORT_FIELDS:
        field = TEXT_SORT_FIELDS[sort]
        return sorted(products, key=lambda p: str(p.get(field) or "").lower(), reverse=reverse)
    field = NUMERIC_SORT_FIELDS.get(sort, "errors")
    return sorted(products, key=lambda p: to_float(p.get(field)), reverse=reverse)


async def get_products_with_issues(
    db: AsyncSession,
    collector: SnapshotCollector,
    user_id: str,
    country: str,
    region: str,
    page: int = 1,
    limit: Optional[int] = None,
    sort: str = "issues",
    sort_order: str = "desc",
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> dict:
    started = time.monotonic()
    limit = limit or get_settings().products_page_size
    try:
        row = await ensure_issues_data(db, collector, user_id, country, region)
        if row is None:
            return {"success": False, "error": NO_DATA_ERROR}

        products = enrich_products(row)
        products = search_products(products, search)
        products = filter_by_priority(products, priority)
        products = sort_products(products, sort, sort_order)
        data, pagination = paginate(products, page, limit)

        duration = elapsed_ms(started)
        logger.info(
            f"Products with issues for user {user_id} ({country}/{region}): {len(data)}/{pagination['total']} "
            f"(sort={sort} {sort_order}, priority={priority}, search={search}) in {duration}ms"
        )
        return {
            "success": True,
            "data": data,
            "pagination": pagination,
            "filters": {"sort": sort, "sortOrder": sort_order, "priority": priority, "search": search},
            "duration": duration,
        }
    except Exception as e:
        logger.error(f"Failed to load products with issues for user {user_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
