"""
Sponsored Ads Calculation: totals over product ads, negative keyword waste,
ACOS/TACOS and the economics-metrics PPC extraction.
"""

import logging
from typing import Any, Optional

from seller_dashboard.utils import parse_float, round2, to_float

logger = logging.getLogger(__name__)


def _num(value: Any) -> float:
    parsed = parse_float(value)
    return parsed if parsed else 0.0


def calculate_sponsored_ads_metrics(product_wise_sponsored_ads: Any) -> dict:
    """Total spend, 30-day attributed sales and units purchased across product ads."""
    if not isinstance(product_wise_sponsored_ads, list):
        logger.warning("Sponsored ads input is not a list, returning zero metrics")
        return {"totalCost": 0, "totalSalesIn30Days": 0, "totalProductsPurchased": 0}

    total_cost = total_sales = total_purchased = 0.0
    for item in product_wise_sponsored_ads:
        if not isinstance(item, dict):
            continue
        if item.get("spend") is not None:
            total_cost += _num(item["spend"])
        if item.get("salesIn30Days") is not None:
            total_sales += _num(item["salesIn30Days"])
        if item.get("purchasedIn30Days") is not None:
            total_purchased += _num(item["purchasedIn30Days"])

    return {
        "totalCost": round2(total_cost),
        "totalSalesIn30Days": round2(total_sales),
        "totalProductsPurchased": round2(total_purchased),
    }


def _lower(value: Any) -> Optional[str]:
    return value.lower() if isinstance(value, str) else None


def _find_performance(keyword_text: Any, campaign_id: Any, performance: list[dict]) -> Optional[dict]:
    kw = _lower(keyword_text)

    # Exact keyword within the same campaign
    for perf in performance:
        if _lower(perf.get("keyword")) == kw and perf.get("campaignId") == campaign_id:
            return perf
    # Exact keyword in any campaign
    for perf in performance:
        if _lower(perf.get("keyword")) == kw:
            return perf
    # Substring either way
    for perf in performance:
        perf_kw = _lower(perf.get("keyword"))
        if perf_kw is not None and (kw or "") in perf_kw:
            return perf
        if kw is not None and (perf_kw or "") in kw:
            return perf
    return None


def calculate_negative_keywords_metrics(negative_keywords: Any, ads_keywords_performance: Any) -> list[dict]:
    """Join each negative keyword with its keyword performance row."""
    if not isinstance(negative_keywords, list) or not isinstance(ads_keywords_performance, list):
        logger.warning("Negative keyword inputs are not lists, skipping keyword metrics")
        return []

    performance = [p for p in ads_keywords_performance if isinstance(p, dict)]
    results = []
    for keyword in negative_keywords:
        if not isinstance(keyword, dict):
            continue
        keyword_text = keyword.get("keywordText")
        perf = _find_performance(keyword_text, keyword.get("campaignId"), performance)
        if perf is None:
            results.append({
                "keyword": keyword_text or "",
                "campaignName": "No Campaign Found",
                "sales": 0,
                "spend": 0,
                "acos": 0,
            })
            continue

        sales = _num(perf.get("attributedSales30d"))
        cost = _num(perf.get("cost"))
        acos = cost / sales * 100 if sales > 0 else 0.0
        results.append({
            "keyword": keyword_text or "",
            "campaignName": perf.get("campaignName") or "Unknown Campaign",
            "sales": round2(sales),
            "spend": round2(cost),
            "acos": round2(acos),
        })
    return results


def calculate_acos(ad_spend: float, ad_sales: float) -> float:
    """ACOS = ad spend / ad-attributed sales * 100."""
    if not ad_sales:
        return 0
    return round2(ad_spend / ad_sales * 100)


def calculate_tacos(ad_spend: float, total_sales: float) -> float:
    """TACOS = ad spend / all sales * 100."""
    if not total_sales:
        return 0
    return round2(ad_spend / total_sales * 100)


def _amount(value: Any) -> float:
    return to_float(value) if isinstance(value, dict) else 0.0


def get_ppc_sales_from_economics(economics_metrics: Optional[dict]) -> dict:
    """Totals and per-ASIN figures from an economics-metrics document."""
    if not economics_metrics:
        return {"totalPpcSpent": 0, "totalSales": 0, "asinPpcSales": {}}

    asin_ppc_sales: dict = {}
    rows = economics_metrics.get("asinWiseSales")
    if isinstance(rows, list):
        for item in rows:
            if not isinstance(item, dict) or not item.get("asin"):
                continue
            asin_ppc_sales[item["asin"]] = {
                "sales": _amount(item.get("sales")),
                "ppcSpent": _amount(item.get("ppcSpent")),
                "grossProfit": _amount(item.get("grossProfit")),
                "fbaFees": _amount(item.get("fbaFees")),
                "storageFees": _amount(item.get("storageFees")),
                "totalFees": _amount(item.get("totalFees")),
                "unitsSold": item.get("unitsSold") or 0,
            }

    return {
        "totalPpcSpent": _amount(economics_metrics.get("ppcSpent")),
        "totalSales": _amount(economics_metrics.get("totalSales")),
        "asinPpcSales": asin_ppc_sales,
    }


def calculate_money_wasted_in_ads(keywords: Any) -> float:
    """Spend on keywords that produced no attributed sales."""
    if not isinstance(keywords, list):
        return 0
    wasted = 0.0
    for kw in keywords:
        if not isinstance(kw, dict):
            continue
        cost = _num(kw.get("cost"))
        sales = _num(kw.get("attributedSales30d"))
        if cost > 0 and sales < 0.01:
            wasted += cost
    return round2(wasted)
