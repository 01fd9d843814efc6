"""
Default dashboard structure returned when a seller has no usable data yet,
so the dashboard always has every key it renders.
"""

from typing import Optional

from seller_dashboard.utils import today_iso

_NESTED_KEYS = (
    "accountHealthPercentage", "accountFinance", "reimbustment",
    "InventoryAnalysis", "sponsoredAdsMetrics",
)


def empty_inventory_analysis() -> dict:
    return {
        "inventoryPlanning": [],
        "strandedInventory": [],
        "inboundNonCompliance": [],
        "replenishment": [],
    }


def create_default_dashboard_data() -> dict:
    today = today_iso()
    return {
        "Country": "US",
        "createdAccountDate": None,
        "Brand": None,
        "accountHealthPercentage": {"Percentage": 0, "status": "UNKNOWN"},
        "accountFinance": {},
        "totalErrorInAccount": 0,
        "totalErrorInConversion": 0,
        "TotalRankingerrors": 0,
        "totalInventoryErrors": 0,
        "first": None,
        "second": None,
        "third": None,
        "fourth": None,
        "productsWithOutBuyboxError": 0,
        "amazonReadyProducts": [],
        "TotalProduct": [],
        "ActiveProducts": [],
        "TotalWeeklySale": 0,
        "TotalSales": [],
        "reimbustment": {"totalReimbursement": 0},
        "productWiseError": [],
        "rankingProductWiseErrors": [],
        "conversionProductWiseErrors": [],
        "inventoryProductWiseErrors": [],
        "InventoryAnalysis": empty_inventory_analysis(),
        "AccountErrors": {},
        "startDate": today,
        "endDate": today,
        "profitibilityData": [],
        "sponsoredAdsMetrics": {"totalCost": 0, "totalSalesIn30Days": 0, "totalProductsPurchased": 0},
        "negativeKeywordsMetrics": [],
        "ProductWiseSponsoredAdsGraphData": [],
        "totalProfitabilityErrors": 0,
        "totalSponsoredAdsErrors": 0,
        "ProductWiseSponsoredAds": [],
        "profitabilityErrorDetails": [],
        "sponsoredAdsErrorDetails": [],
        "keywords": [],
        "searchTerms": [],
        "campaignData": [],
        "adsKeywordsPerformanceData": [],
        "GetOrderData": [],
        "dateWiseTotalCosts": [],
        "campaignWiseTotalSalesAndCost": [],
        "negetiveKeywords": [],
        "AdsGroupData": [],
        "keywordTrackingData": {},
        "isEmptyData": True,
        "dataAvailabilityStatus": "NO_DATA",
        "DifferenceData": 0,
    }


def merge_with_defaults(partial: Optional[dict]) -> dict:
    """Overlay partial data on the defaults; the nested blocks merge one level deep."""
    defaults = create_default_dashboard_data()
    partial = partial or {}
    merged = {**defaults, **partial}
    for key in _NESTED_KEYS:
        merged[key] = {**defaults[key], **(partial.get(key) or {})}
    return merged
