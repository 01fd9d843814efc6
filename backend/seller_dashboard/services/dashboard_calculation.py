"""
Dashboard Calculation: the aggregator behind every issue and dashboard view.

Takes one raw multi-source snapshot for a (user, country, region), restricts it to
active products, runs the profitability / ads / account sub-calculations, fans in
ranking, conversion and inventory errors per ASIN and assembles ``dashboardData``.

Each sub-calculation runs through ``run_step``: a failure is logged, recorded in
``AggregationResult.degraded`` and replaced by an empty fallback, so the aggregate
is always returned. ``build_dashboard_data`` is pure; ``analyse_data`` adds the
optional task-creation side effect.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

from seller_dashboard.services.default_data import merge_with_defaults
from seller_dashboard.services.profitability import compute_profitability
from seller_dashboard.services.snapshot import DashboardSnapshot
from seller_dashboard.services.sponsored_ads import (
    calculate_acos,
    calculate_negative_keywords_metrics,
    calculate_sponsored_ads_metrics,
    calculate_tacos,
    get_ppc_sales_from_economics,
)
from seller_dashboard.utils import parse_float, round2, today_iso

logger = logging.getLogger(__name__)

TITLE_LIMIT = 50

STATUS_ERROR = "Error"

# (error-bundle key, ConversionData source list)
CONVERSION_SOURCES = (
    ("aplusErrorData", "aPlusResult"),
    ("imageResultErrorData", "imageResult"),
    ("videoResultErrorData", "videoResult"),
    ("productReviewResultErrorData", "productReviewResult"),
    ("productStarRatingResultErrorData", "productStarRatingResult"),
)
BUYBOX_ERROR_KEY = "productsWithOutBuyboxErrorData"

INVENTORY_SECTIONS = ("inventoryPlanning", "strandedInventory", "inboundNonCompliance", "replenishment")

ECONOMICS_SUBSET_KEYS = (
    "totalSales", "grossProfit", "ppcSpent", "fbaFees", "storageFees", "refunds",
    "datewiseSales", "datewiseGrossProfit", "asinWiseSales", "dateRange",
)

TaskCreator = Callable[[str, dict], Awaitable[Any]]


# ══════════════════════════════════════════════════════════════════════
#  STEP RUNNER & RESULT TYPES
# ══════════════════════════════════════════════════════════════════════

@dataclass
class StepResult:
    value: Any
    degraded: bool = False
    error: Optional[str] = None


def run_step(name: str, fn: Callable[[], Any], fallback: Callable[[], Any]) -> StepResult:
    """Run one sub-calculation; on failure log it and return the fallback value."""
    try:
        return StepResult(value=fn())
    except Exception as e:
        logger.error(f"Dashboard step '{name}' degraded: {e}", exc_info=True)
        return StepResult(value=fallback(), degraded=True, error=str(e))


@dataclass
class AggregationContext:
    """Active-product scope and lookups shared by every aggregation step."""
    snapshot: DashboardSnapshot
    active_asins: list
    active_set: set
    products_by_asin: dict
    first_sales_by_asin: dict
    image_by_asin: dict
    sales_rows: list
    ads_rows: list
    fba_rows: list
    fee_rows: list
    inventory: dict
    conversion_errors: dict
    buybox_errors: list


@dataclass
class ProductErrors:
    product_wise: list = field(default_factory=list)
    ranking: list = field(default_factory=list)
    conversion: list = field(default_factory=list)
    inventory: list = field(default_factory=list)
    total_ranking_errors: int = 0


@dataclass
class AggregationResult:
    dashboard_data: dict
    steps: dict = field(default_factory=dict)

    @property
    def degraded(self) -> list[str]:
        return [name for name, step in self.steps.items() if step.degraded]

    def task_errors(self) -> dict:
        """The five error arrays tasks are generated from."""
        data = self.dashboard_data
        return {
            "rankingProductWiseErrors": data.get("rankingProductWiseErrors", []),
            "conversionProductWiseErrors": data.get("conversionProductWiseErrors", []),
            "inventoryProductWiseErrors": data.get("inventoryProductWiseErrors", []),
            "profitabilityErrorDetails": data.get("profitabilityErrorDetails", []),
            "sponsoredAdsErrorDetails": data.get("sponsoredAdsErrorDetails", []),
        }


# ══════════════════════════════════════════════════════════════════════
#  SMALL HELPERS
# ══════════════════════════════════════════════════════════════════════

def _count(value: Any) -> float:
    """Numeric count or 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _truncate(value: Any, limit: int = TITLE_LIMIT) -> Optional[str]:
    """First ``limit`` characters of a non-empty string, else None."""
    if isinstance(value, str) and value:
        return value[:limit]
    return None


def _is_error(entry: Any) -> bool:
    return isinstance(entry, dict) and isinstance(entry.get("data"), dict) and entry["data"].get("status") == STATUS_ERROR


def _num(value: Any) -> float:
    parsed = parse_float(value)
    return parsed if parsed else 0.0


def _metric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


# ══════════════════════════════════════════════════════════════════════
#  PUBLIC PURE HELPERS
# ══════════════════════════════════════════════════════════════════════

def _date_string(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value.split("T")[0].split(" ")[0]
    return None


def calculate_date_wise_total_costs(rows: Any) -> list[dict]:
    """Group PPC spend rows by day; totals rounded half-up, ascending by date."""
    if not isinstance(rows, list):
        return []
    by_date: dict = {}
    for item in rows:
        if not isinstance(item, dict) or not item.get("date"):
            continue
        day = _date_string(item["date"])
        if day is None:
            logger.warning(f"Skipping PPC row with unusable date: {item['date']!r}")
            continue
        cost = item.get("cost")
        cost = float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else _num(cost)
        bucket = by_date.setdefault(day, {"cost": 0.0, "sales": 0.0})
        bucket["cost"] += cost
        bucket["sales"] += _num(item.get("sales7d"))

    totals = [
        {"date": day, "totalCost": round2(v["cost"]), "sales": round2(v["sales"])}
        for day, v in by_date.items()
    ]
    return sorted(totals, key=lambda r: r["date"])


def calculate_campaign_wise_total_sales_and_cost(rows: Any) -> list[dict]:
    """Group PPC spend rows by campaign; descending by spend."""
    if not isinstance(rows, list):
        return []
    by_campaign: dict = {}
    for item in rows:
        if not isinstance(item, dict) or not item.get("campaignId"):
            continue
        campaign_id = str(item["campaignId"])
        bucket = by_campaign.setdefault(campaign_id, {
            "campaignName": item.get("campaignName") or "Unknown Campaign",
            "spend": 0.0,
            "sales": 0.0,
        })
        bucket["spend"] += _num(item.get("cost"))
        bucket["sales"] += _num(item.get("sales7d"))

    totals = [
        {
            "campaignId": campaign_id,
            "campaignName": v["campaignName"],
            "totalSpend": round2(v["spend"]),
            "totalSales": round2(v["sales"]),
        }
        for campaign_id, v in by_campaign.items()
    ]
    return sorted(totals, key=lambda r: r["totalSpend"], reverse=True)


def calculate_profitability_errors(profitability_data: list[dict]) -> dict:
    """Flag ASINs with negative profit or a margin under 10% (before COGS)."""
    total = 0
    details = []
    for item in profitability_data or []:
        sales = _count(item.get("sales"))
        net_profit = (sales or 0) - (_count(item.get("ads")) or 0) - (_count(item.get("amzFee")) or 0)
        margin = net_profit / sales * 100 if sales > 0 else 0
        if margin < 10 or net_profit < 0:
            total += 1
            details.append({
                "asin": item.get("asin"),
                "sales": item.get("sales"),
                "netProfit": net_profit,
                "profitMargin": margin,
                "errorType": "negative_profit" if net_profit < 0 else "low_margin",
            })
    return {"totalErrors": total, "errorDetails": details}


def calculate_sponsored_ads_errors(product_wise_sponsored_ads: Any, negative_keywords_metrics: Any) -> dict:
    """Flag unprofitable product ads and wasteful negative keywords."""
    total = 0
    details = []

    if isinstance(product_wise_sponsored_ads, list):
        for product in product_wise_sponsored_ads:
            if not isinstance(product, dict):
                continue
            spend = _num(product.get("spend"))
            sales = _num(product.get("salesIn30Days"))
            acos = spend / sales * 100 if sales > 0 else 0
            error_type = None
            if acos > 50 and sales > 0:
                error_type = "high_acos"
            elif spend > 5 and sales == 0:
                error_type = "no_sales_high_spend"
            elif spend > 10 and acos > 30:
                error_type = "marginal_profit"
            if error_type:
                total += 1
                details.append({
                    "asin": product.get("asin"),
                    "campaignName": product.get("campaignName") or "Unknown Campaign",
                    "spend": spend,
                    "sales": sales,
                    "acos": acos,
                    "errorType": error_type,
                    "source": "product",
                })

    if isinstance(negative_keywords_metrics, list):
        for keyword in negative_keywords_metrics:
            if not isinstance(keyword, dict):
                continue
            acos = _metric(keyword.get("acos"))
            sales = _metric(keyword.get("sales"))
            spend = _metric(keyword.get("spend"))
            error_type = None
            if acos is not None and sales is not None and acos > 100 and sales > 0:
                error_type = "extreme_high_acos"
            elif spend is not None and sales is not None and spend > 5 and sales == 0:
                error_type = "keyword_no_sales"
            if error_type:
                total += 1
                details.append({
                    "keyword": keyword.get("keyword"),
                    "campaignName": keyword.get("campaignName"),
                    "spend": keyword.get("spend"),
                    "sales": keyword.get("sales"),
                    "acos": keyword.get("acos"),
                    "errorType": error_type,
                    "source": "keyword",
                })

    return {"totalErrors": total, "errorDetails": details}


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT
# ══════════════════════════════════════════════════════════════════════

def _active_only(rows: list[dict], active_set: set, key: str = "asin") -> list[dict]:
    return [r for r in rows if r.get(key) and r[key] in active_set]


def _buybox_errors(snapshot: DashboardSnapshot, active_set: set) -> list[dict]:
    buy_box = snapshot.buy_box_data
    if buy_box is not None and isinstance(buy_box.get("asinBuyBoxData"), list):
        errors = []
        for p in buy_box["asinBuyBoxData"]:
            if not isinstance(p, dict):
                continue
            pct = p.get("buyBoxPercentage")
            if isinstance(pct, bool) or pct != 0 or not p.get("childAsin") or p["childAsin"] not in active_set:
                continue
            errors.append({
                "asin": p["childAsin"],
                "data": {
                    "status": STATUS_ERROR,
                    "asin": p["childAsin"],
                    "buyBoxPercentage": pct,
                    "pageViews": p.get("pageViews"),
                    "sessions": p.get("sessions"),
                },
            })
        logger.info(f"Buy box errors from ASIN buy box data: {len(errors)}")
        return errors

    legacy = snapshot.conversion_section("ProductWithOutBuybox")
    errors = [
        {"asin": p["asin"], "data": p}
        for p in legacy
        if p.get("status") == STATUS_ERROR and p.get("asin") and p["asin"] in active_set
    ]
    logger.info(f"Buy box errors from legacy conversion data: {len(errors)}")
    return errors


def build_context(snapshot: DashboardSnapshot) -> AggregationContext:
    active_asins: list = []
    active_set: set = set()
    products_by_asin: dict = {}
    for product in snapshot.total_products:
        asin = product.get("asin")
        if asin is None:
            continue
        products_by_asin.setdefault(asin, product)
        if asin and product.get("status") == "Active" and asin not in active_set:
            active_asins.append(asin)
            active_set.add(asin)

    sales_rows = _active_only(snapshot.sales_by_products, active_set)
    first_sales: dict = {}
    for row in sales_rows:
        first_sales.setdefault(row["asin"], row)

    image_by_asin: dict = {}
    for item in snapshot.conversion_section("imageResult"):
        if item.get("asin") is not None:
            image_by_asin.setdefault(item["asin"], item)

    inventory = {
        name: _active_only(snapshot.inventory_section(name), active_set)
        for name in INVENTORY_SECTIONS
    }

    conversion_errors = {
        key: [
            p for p in snapshot.conversion_section(source)
            if _is_error(p) and p.get("asin") and p["asin"] in active_set
        ]
        for key, source in CONVERSION_SOURCES
    }

    return AggregationContext(
        snapshot=snapshot,
        active_asins=active_asins,
        active_set=active_set,
        products_by_asin=products_by_asin,
        first_sales_by_asin=first_sales,
        image_by_asin=image_by_asin,
        sales_rows=sales_rows,
        ads_rows=_active_only(snapshot.product_wise_sponsored_ads, active_set),
        fba_rows=_active_only(snapshot.product_wise_fba_data, active_set),
        fee_rows=_active_only(snapshot.fba_fees_data, active_set),
        inventory=inventory,
        conversion_errors=conversion_errors,
        buybox_errors=_buybox_errors(snapshot, active_set),
    )


# ══════════════════════════════════════════════════════════════════════
#  PER-PRODUCT ERROR FAN-IN
# ══════════════════════════════════════════════════════════════════════

def conversion_bundle(ctx: AggregationContext, asin: str) -> tuple[dict, int]:
    data: dict = {"asin": asin}
    count = 0
    sources = [(key, ctx.conversion_errors[key]) for key, _ in CONVERSION_SOURCES]
    sources.append((BUYBOX_ERROR_KEY, ctx.buybox_errors))
    for key, rows in sources:
        found = next((p for p in rows if p.get("asin") == asin), None)
        if found is not None:
            data[key] = found.get("data")
            count += 1
    return data, count


def inventory_bundle(ctx: AggregationContext, asin: str) -> tuple[dict, int]:
    data: dict = {"asin": asin}
    count = 0

    planning = next((r for r in ctx.inventory["inventoryPlanning"] if r.get("asin") == asin), None)
    if planning is not None:
        data["inventoryPlanningErrorData"] = planning
        for sub in ("longTermStorageFees", "unfulfillable"):
            entry = planning.get(sub)
            if isinstance(entry, dict) and entry.get("status") == STATUS_ERROR:
                count += 1

    stranded = next((r for r in ctx.inventory["strandedInventory"] if r.get("asin") == asin), None)
    if stranded is not None:
        data["strandedInventoryErrorData"] = stranded
        count += 1

    compliance = next((r for r in ctx.inventory["inboundNonCompliance"] if r.get("asin") == asin), None)
    if compliance is not None:
        data["inboundNonComplianceErrorData"] = compliance
        count += 1

    replenishment = next(
        (r for r in ctx.inventory["replenishment"] if r.get("asin") == asin and r.get("status") == STATUS_ERROR),
        None,
    )
    if replenishment is not None:
        data["replenishmentErrorData"] = replenishment
        count += 1

    return data, count


def _main_image(ctx: AggregationContext, asin: str) -> Any:
    item = ctx.image_by_asin.get(asin)
    data = item.get("data") if item else None
    return (data.get("MainImage") if isinstance(data, dict) else None) or None


def _product_entry(ctx: AggregationContext, asin: str, name: str, errors: float, ranking: Any,
                   conversion: dict, inventory: dict, sales: Any, quantity: Any) -> dict:
    product = ctx.products_by_asin.get(asin) or {}
    return {
        "asin": asin,
        "sku": product.get("sku") or "N/A",
        "name": name,
        "price": product.get("price") or 0,
        "MainImage": _main_image(ctx, asin),
        "errors": errors,
        "rankingErrors": ranking,
        "conversionErrors": conversion,
        "inventoryErrors": inventory,
        "sales": sales,
        "quantity": quantity,
    }


def collect_product_errors(ctx: AggregationContext) -> ProductErrors:
    """Ranking pass, inventory-only pass and backend-keyword pass."""
    out = ProductErrors()
    seen: set = set()

    # Ranking results, first occurrence per active ASIN
    for elm in ctx.snapshot.ranking_section("RankingResultArray"):
        asin = elm.get("asin")
        if not asin or asin not in ctx.active_set or asin in seen:
            continue
        seen.add(asin)

        elm = copy.deepcopy(elm)
        elm_data = elm.get("data") if isinstance(elm.get("data"), dict) else {}
        full_title = elm_data.get("Title") or "N/A"
        title = _truncate(elm_data.get("Title")) or "N/A"
        sales_row = ctx.first_sales_by_asin.get(asin) or {}

        conversion, conversion_count = conversion_bundle(ctx, asin)
        inventory, inventory_count = inventory_bundle(ctx, asin)
        ranking_count = _count(elm_data.get("TotalErrors")) or 0
        if ranking_count > 0:
            out.total_ranking_errors += ranking_count

        conversion["Title"] = full_title
        out.conversion.append(conversion)
        if inventory_count > 0:
            out.inventory.append({**inventory, "Title": full_title})

        out.ranking.append(elm if ranking_count > 0 else {"asin": asin, "data": {"Title": title}})
        out.product_wise.append(_product_entry(
            ctx, asin, title, ranking_count + conversion_count + inventory_count,
            elm if ranking_count > 0 else None, conversion, inventory,
            sales_row.get("amount") or 0, sales_row.get("quantity") or 0,
        ))

    # Active products without ranking data that still have inventory problems
    for asin in ctx.active_asins:
        if asin in seen:
            continue
        inventory, inventory_count = inventory_bundle(ctx, asin)
        if inventory_count <= 0:
            continue
        product = ctx.products_by_asin.get(asin) or {}
        title = _truncate(product.get("itemName")) or _truncate(product.get("title")) or "N/A"
        out.inventory.append({**inventory, "Title": title})

        conversion, conversion_count = conversion_bundle(ctx, asin)
        sales_row = ctx.first_sales_by_asin.get(asin) or {}
        out.product_wise.append(_product_entry(
            ctx, asin, title, inventory_count + conversion_count, None, conversion, inventory,
            sales_row.get("amount") or 0, sales_row.get("quantity") or 0,
        ))

    # Backend keyword results add to the product and backfill the ranking entry
    for elm in ctx.snapshot.ranking_section("BackendKeywordResultArray"):
        asin = elm.get("asin")
        data = elm.get("data")
        if not asin or not data or not isinstance(data, dict) or asin not in ctx.active_set:
            continue
        n_errors = _count(data.get("NumberOfErrors")) or 0
        if n_errors <= 0:
            continue
        out.total_ranking_errors += n_errors

        entry = next((p for p in out.product_wise if p["asin"] == asin), None)
        if entry is not None:
            entry["errors"] += n_errors
        else:
            conversion, conversion_count = conversion_bundle(ctx, asin)
            inventory, inventory_count = inventory_bundle(ctx, asin)
            product = ctx.products_by_asin.get(asin) or {}
            name = product.get("itemName") or _truncate(product.get("title")) or "N/A"
            out.product_wise.append(_product_entry(
                ctx, asin, name, n_errors + conversion_count + inventory_count, None,
                conversion, inventory, 0, 0,
            ))

        ranking = next((r for r in out.ranking if r.get("asin") == asin), None)
        if ranking is None:
            product = ctx.products_by_asin.get(asin) or {}
            fallback_title = (
                _truncate(product.get("itemName"))
                or _truncate(product.get("title"))
                or _truncate(data.get("Title"))
                or "N/A"
            )
            ranking = {"asin": asin, "data": {"Title": fallback_title}}
            out.ranking.append(ranking)
        if not isinstance(ranking.get("data"), dict):
            ranking["data"] = {}

        char_lim = data.get("charLim")
        if isinstance(char_lim, dict) and char_lim.get("status") == STATUS_ERROR:
            ranking["data"]["charLim"] = copy.deepcopy(char_lim)
        if data.get("dublicateWords") == STATUS_ERROR:
            ranking["data"]["dublicateWords"] = data["dublicateWords"]

    return out


def select_top_error_products(product_wise: list[dict], ctx: AggregationContext) -> list[Optional[dict]]:
    """
    Top four products by error count.

    Duplicates keep the first record per ASIN; the sort is stable. Backend-keyword
    entries with exactly one error then add one to a matching slot without
    re-sorting the four.
    """
    unique: dict = {}
    for entry in product_wise:
        unique.setdefault(entry["asin"], entry)
    ranked = sorted(unique.values(), key=lambda p: p["errors"], reverse=True)

    slots: list[Optional[dict]] = []
    for i in range(4):
        if i < len(ranked):
            p = ranked[i]
            slots.append({"asin": p["asin"], "name": _truncate(p.get("name")) or "N/A", "errors": p["errors"]})
        else:
            slots.append(None)

    # Latest backend-keyword row per active ASIN, in first-seen order
    backend: dict = {}
    for elm in ctx.snapshot.ranking_section("BackendKeywordResultArray"):
        asin = elm.get("asin")
        if asin and asin in ctx.active_set:
            backend[asin] = elm
    for asin, elm in backend.items():
        data = elm.get("data") if isinstance(elm.get("data"), dict) else {}
        n_errors = data.get("NumberOfErrors")
        if isinstance(n_errors, bool) or n_errors != 1:
            continue
        for slot in slots:
            if slot and slot["asin"] == asin:
                slot["errors"] += 1
    return slots


# ══════════════════════════════════════════════════════════════════════
#  AGGREGATION
# ══════════════════════════════════════════════════════════════════════

def _default_result(snapshot: DashboardSnapshot) -> AggregationResult:
    known = {
        "Country": snapshot.country,
        "createdAccountDate": snapshot.created_account_date,
        "startDate": snapshot.start_date,
        "endDate": snapshot.end_date,
        "keywordTrackingData": snapshot.keyword_tracking_data,
    }
    data = merge_with_defaults({key: value for key, value in known.items() if value})
    return AggregationResult(dashboard_data=data)


def _economics_subset(economics: dict) -> Optional[dict]:
    if not economics:
        return None
    return {k: economics.get(k) for k in ECONOMICS_SUBSET_KEYS if k in economics}


def _total_inventory_errors(inventory: dict) -> int:
    return (
        len(inventory["inventoryPlanning"])
        + len(inventory["strandedInventory"])
        + len(inventory["inboundNonCompliance"])
        + sum(1 for r in inventory["replenishment"] if r.get("status") == STATUS_ERROR)
    )


def build_dashboard_data(raw_snapshot: Any) -> AggregationResult:
    """Compute ``dashboardData`` from a raw snapshot. Never raises for malformed input."""
    snapshot = DashboardSnapshot.parse(raw_snapshot)
    if not snapshot.has_valid_data():
        logger.warning("No valid data found, returning default dashboard structure")
        return _default_result(snapshot)

    steps: dict = {}
    economics = get_ppc_sales_from_economics(snapshot.economics_metrics)
    ctx = build_context(snapshot)
    buy_box = snapshot.buy_box_data
    account_data = snapshot.account_data
    account_errors = account_data.get("accountHealth") if isinstance(account_data.get("accountHealth"), dict) else {}

    # Sub-calculations
    economics_active = {a: v for a, v in economics["asinPpcSales"].items() if a in ctx.active_set}
    steps["profitability"] = run_step(
        "profitability",
        lambda: compute_profitability(ctx.sales_rows, ctx.ads_rows, ctx.fba_rows, ctx.fee_rows, economics_active),
        list,
    )
    profitability = steps["profitability"].value

    def _ads_metrics() -> dict:
        metrics = calculate_sponsored_ads_metrics(ctx.ads_rows)
        ppc_spent = economics["totalPpcSpent"] or metrics["totalCost"]
        total_sales = economics["totalSales"] or snapshot.finance_data.get("Total_Sales") or 0
        metrics["acos"] = calculate_acos(ppc_spent, metrics["totalSalesIn30Days"])
        metrics["tacos"] = calculate_tacos(ppc_spent, total_sales)
        metrics["economicsPpcSpent"] = economics["totalPpcSpent"]
        return metrics

    steps["sponsoredAdsMetrics"] = run_step(
        "sponsoredAdsMetrics",
        _ads_metrics,
        lambda: {"totalCost": 0, "totalSalesIn30Days": 0, "totalProductsPurchased": 0, "acos": 0, "tacos": 0},
    )
    ads_metrics = steps["sponsoredAdsMetrics"].value

    steps["negativeKeywordsMetrics"] = run_step(
        "negativeKeywordsMetrics",
        lambda: calculate_negative_keywords_metrics(snapshot.negative_keywords, snapshot.ads_keywords_performance),
        list,
    )
    negative_metrics = steps["negativeKeywordsMetrics"].value

    # Issue fan-in
    products = collect_product_errors(ctx)
    first, second, third, fourth = select_top_error_products(products.product_wise, ctx)

    total_conversion_errors = sum(len(rows) for rows in ctx.conversion_errors.values()) + len(ctx.buybox_errors)
    if buy_box is not None and buy_box.get("productsWithoutBuyBox") is not None:
        without_buybox = buy_box["productsWithoutBuyBox"]
    else:
        without_buybox = len(ctx.buybox_errors)

    steps["profitabilityErrors"] = run_step(
        "profitabilityErrors",
        lambda: calculate_profitability_errors(profitability),
        lambda: {"totalErrors": 0, "errorDetails": []},
    )
    steps["sponsoredAdsErrors"] = run_step(
        "sponsoredAdsErrors",
        lambda: calculate_sponsored_ads_errors(ctx.ads_rows, negative_metrics),
        lambda: {"totalErrors": 0, "errorDetails": []},
    )
    profitability_errors = steps["profitabilityErrors"].value
    sponsored_errors = steps["sponsoredAdsErrors"].value

    today = today_iso()
    dashboard_data = {
        "Country": snapshot.country or "US",
        "createdAccountDate": snapshot.created_account_date or None,
        "Brand": snapshot.brand or None,
        "accountHealthPercentage": account_data.get("getAccountHealthPercentge") or {"Percentage": 0, "status": "UNKNOWN"},
        "accountFinance": snapshot.finance_data,
        "totalErrorInAccount": account_errors.get("TotalErrors") or 0,
        "totalErrorInConversion": total_conversion_errors,
        "TotalRankingerrors": products.total_ranking_errors,
        "totalInventoryErrors": _total_inventory_errors(ctx.inventory),
        "first": first,
        "second": second,
        "third": third,
        "fourth": fourth,
        "productsWithOutBuyboxError": without_buybox,
        "productsWithoutBuyBox": without_buybox,
        "buyBoxData": buy_box,
        "amazonReadyProducts": snapshot.conversion_data.get("AmazonReadyproducts") or [],
        "TotalProduct": snapshot.total_products,
        "ActiveProducts": ctx.active_asins,
        "TotalWeeklySale": economics["totalSales"] or snapshot.finance_data.get("Total_Sales") or 0,
        "TotalSales": snapshot.total_sales,
        "reimbustment": snapshot.reimbursement or {"totalReimbursement": 0},
        "productWiseError": products.product_wise,
        "rankingProductWiseErrors": products.ranking,
        "conversionProductWiseErrors": products.conversion,
        "inventoryProductWiseErrors": products.inventory,
        "InventoryAnalysis": ctx.inventory,
        "AccountErrors": account_errors,
        "startDate": snapshot.start_date or today,
        "endDate": snapshot.end_date or today,
        "profitibilityData": profitability,
        "sponsoredAdsMetrics": ads_metrics,
        "negativeKeywordsMetrics": negative_metrics,
        "ProductWiseSponsoredAdsGraphData": snapshot.sponsored_ads_graph_data,
        "totalProfitabilityErrors": profitability_errors["totalErrors"],
        "totalSponsoredAdsErrors": sponsored_errors["totalErrors"],
        "ProductWiseSponsoredAds": ctx.ads_rows,
        "profitabilityErrorDetails": profitability_errors["errorDetails"],
        "sponsoredAdsErrorDetails": sponsored_errors["errorDetails"],
        "keywords": snapshot.keywords,
        "searchTerms": snapshot.search_terms,
        "campaignData": snapshot.campaign_data,
        "adsKeywordsPerformanceData": snapshot.ads_keywords_performance,
        "GetOrderData": snapshot.order_data,
        "dateWiseTotalCosts": calculate_date_wise_total_costs(snapshot.date_wise_ppc_spend),
        "campaignWiseTotalSalesAndCost": calculate_campaign_wise_total_sales_and_cost(snapshot.date_wise_ppc_spend),
        "negetiveKeywords": snapshot.negative_keywords,
        "AdsGroupData": snapshot.ads_group_data,
        "keywordTrackingData": snapshot.keyword_tracking_data,
        "isEmptyData": False,
        "dataAvailabilityStatus": "DATA_AVAILABLE",
        "DifferenceData": snapshot.difference_data or 0,
        "economicsMetrics": _economics_subset(snapshot.economics_metrics),
        "acos": ads_metrics.get("acos") or 0,
        "tacos": ads_metrics.get("tacos") or 0,
    }

    result = AggregationResult(dashboard_data=dashboard_data, steps=steps)
    if result.degraded:
        logger.warning(f"Dashboard aggregation degraded steps: {', '.join(result.degraded)}")
    logger.info(f"Dashboard data processed with {len(ctx.active_asins)} active products")
    return result


async def analyse_data(
    raw_snapshot: Any,
    user_id: Optional[str] = None,
    task_creator: Optional[TaskCreator] = None,
) -> dict:
    """
    Aggregate a snapshot and, when a user and task creator are given, generate
    tasks from the error arrays. Task failures are logged and never propagate.
    """
    result = build_dashboard_data(raw_snapshot)

    if user_id and task_creator is not None and not result.dashboard_data.get("isEmptyData"):
        try:
            await task_creator(user_id, result.task_errors())
            logger.info(f"Tasks created for user {user_id}")
        except Exception as e:
            logger.error(f"Task creation failed for user {user_id}: {e}", exc_info=True)

    return {"dashboardData": result.dashboard_data, "degraded": result.degraded}
