"""
Tests for the phased dashboard loaders and the full aggregation endpoint logic.
"""

import pytest

from seller_dashboard.services.dashboard_summary_service import (
    account_finance,
    get_dashboard_phase1,
    get_dashboard_phase2,
    get_dashboard_phase3,
    get_dashboard_summary,
    get_full_dashboard_data,
)
from seller_dashboard.services.issue_summary_service import (
    calculate_and_store_issue_summary,
    mark_issue_summary_stale,
)
from seller_dashboard.services.snapshot_service import store_metrics, upsert_catalog
from factories import StaticCollector, make_snapshot

KEY = ("user-1", "US", "NA")

METRICS = {
    "economicsMetrics": {
        "totalSales": 1000,
        "fbaFees": 100,
        "storageFees": 20,
        "amazonFees": 0,
        "refunds": 30,
        "dateRange": {"startDate": "2026-09-01", "endDate": "2026-09-30"},
    },
    "buyBoxData": {"totalProducts": 10, "productsWithBuyBox": 6, "productsWithoutBuyBox": 4},
    "performanceV2": {"ahrScore": 850},
    "ppcMetrics": {
        "summary": {"totalSales": 400, "totalSpend": 80, "overallAcos": 20},
        "dateWiseMetrics": [{"date": "2026-09-01", "spend": 12, "sales": 40}],
    },
    "keywordsData": [
        {"keyword": "steel bottle", "cost": 12.5, "attributedSales30d": 0},
        {"keyword": "water bottle", "cost": 5, "attributedSales30d": 40},
    ],
    "revenueData": [
        {"orderId": "o-1", "orderStatus": "Shipped"},
        {"orderId": "o-2", "orderStatus": "Canceled"},
        {"orderId": "o-3", "orderStatus": "Unshipped"},
        {"orderId": "o-4", "orderStatus": "Pending"},
    ],
    "dataFetch": {
        "dateRange": {"startDate": "2026-09-03", "endDate": "2026-10-02"},
        "calendarMode": "custom",
    },
}

CATALOG = [
    {"asin": "A1", "sku": "SKU-1", "itemName": "Steel Water Bottle 1L", "price": 20, "status": "Active"},
    {"asin": "A2", "sku": "SKU-2", "itemName": "Bamboo Cutting Board", "price": 35, "status": "Active"},
    {"asin": "A3", "sku": "SKU-3", "itemName": "Retired Kettle", "price": 15, "status": "Inactive"},
]


async def _seed(db, metrics=METRICS):
    await upsert_catalog(db, *KEY, CATALOG)
    await store_metrics(db, *KEY, metrics)
    await db.commit()


def test_account_finance_falls_back_to_fba_plus_storage():
    class Economics:
        fba_fees = 100
        storage_fees = 20
        amazon_fees = 0
        refunds = 30

    finance = account_finance(Economics(), 1000, 80)
    assert finance["Amazon_Fees"] == 120
    assert finance["Gross_Profit"] == 850
    assert finance["Other_Amazon_Fees"] == 20
    assert finance["ProductAdsPayment"] == 80


def test_account_finance_without_economics():
    finance = account_finance(None, 0, None)
    assert finance["Gross_Profit"] == 0
    assert finance["ProductAdsPayment"] == 0


@pytest.mark.anyio
async def test_phases_zero_default_on_empty_database(session_factory):
    phase1 = await get_dashboard_phase1(session_factory, *KEY)
    assert phase1["success"] is True
    data = phase1["data"]
    assert data["totalIssues"] == 0
    assert data["hasPrecomputedIssues"] is False
    assert data["totalProductCount"] == 0
    assert data["startDate"] is None
    assert data["phase"] == 1

    phase2 = await get_dashboard_phase2(session_factory, *KEY)
    assert phase2["data"]["accountHealthPercentage"] == {"status": "Data Not Available", "Percentage": 0}
    assert phase2["data"]["buyBoxSummary"]["productsWithoutBuyBox"] == 0

    phase3 = await get_dashboard_phase3(session_factory, *KEY)
    assert phase3["data"]["GetOrderData"] == []
    assert phase3["data"]["moneyWastedInAds"] == 0


@pytest.mark.anyio
async def test_phase1_uses_fresh_issue_summary(session_factory, db):
    await _seed(db)
    await calculate_and_store_issue_summary(db, StaticCollector(make_snapshot()), *KEY)
    await db.commit()

    data = (await get_dashboard_phase1(session_factory, *KEY))["data"]
    assert data["hasPrecomputedIssues"] is True
    assert data["totalIssues"] == 10
    assert data["TotalRankingerrors"] == 2
    assert data["issueDataLastUpdated"] is not None
    assert data["totalProductCount"] == 3
    assert data["activeProductCount"] == 2
    assert data["startDate"] == "2026-09-03"
    assert data["calendarMode"] == "custom"

    await mark_issue_summary_stale(db, *KEY)
    await db.commit()
    data = (await get_dashboard_phase1(session_factory, *KEY))["data"]
    assert data["hasPrecomputedIssues"] is False
    assert data["totalIssues"] == 0


@pytest.mark.anyio
async def test_phase2_health_and_finance(session_factory, db):
    await _seed(db)
    data = (await get_dashboard_phase2(session_factory, *KEY))["data"]

    assert data["accountHealthPercentage"] == {"status": "Healthy", "Percentage": 100}
    assert data["TotalWeeklySale"] == 1000
    assert data["accountFinance"]["Amazon_Fees"] == 120
    assert data["accountFinance"]["Gross_Profit"] == 850
    assert data["accountFinance"]["ProductAdsPayment"] == 80
    assert data["sponsoredAdsMetrics"] == {"totalCost": 80, "totalSalesIn30Days": 400, "acos": 20, "tacos": 0}
    assert data["buyBoxSummary"] == {"totalProducts": 10, "productsWithBuyBox": 6, "productsWithoutBuyBox": 4}


@pytest.mark.anyio
async def test_phase3_orders_and_wasted_spend(session_factory, db):
    await _seed(db)
    data = (await get_dashboard_phase3(session_factory, *KEY))["data"]

    assert [o["orderId"] for o in data["GetOrderData"]] == ["o-1", "o-3"]
    assert data["totalOrdersCount"] == 2
    assert data["moneyWastedInAds"] == 12.5
    assert data["dateWiseTotalCosts"] == [{"date": "2026-09-01", "totalCost": 12, "sales": 40}]
    assert [p["asin"] for p in data["ActiveProducts"]] == ["A1", "A2"]
    assert len(data["TotalProduct"]) == 3


@pytest.mark.anyio
async def test_summary_approximates_counts_without_fresh_summary(session_factory, db):
    await _seed(db)
    data = (await get_dashboard_summary(session_factory, *KEY))["data"]

    assert data["isLightweightSummary"] is True
    assert data["hasPrecomputedIssues"] is False
    assert data["totalErrorInConversion"] == 4
    assert data["totalIssues"] == 4
    assert data["ppcSummary"]["moneyWastedInAds"] == 12.5
    assert data["startDate"] == "2026-09-03"
    assert data["activeProductCount"] == 2


@pytest.mark.anyio
async def test_summary_sums_datewise_sales(session_factory, db):
    metrics = {
        "economicsMetrics": {
            **METRICS["economicsMetrics"],
            "datewiseSales": [{"date": "2026-09-01", "sales": 400}, {"date": "2026-09-02", "sales": 600.5}],
        },
    }
    await _seed(db, metrics)
    data = (await get_dashboard_summary(session_factory, *KEY))["data"]

    assert data["TotalWeeklySale"] == 1000.5
    assert len(data["TotalSales"]) == 2
    # No fetch tracking row, so the economics range is used
    assert data["startDate"] == "2026-09-01"


@pytest.mark.anyio
async def test_summary_uses_fresh_issue_summary(session_factory, db):
    await _seed(db)
    await calculate_and_store_issue_summary(db, StaticCollector(make_snapshot()), *KEY)
    await db.commit()

    data = (await get_dashboard_summary(session_factory, *KEY))["data"]
    assert data["hasPrecomputedIssues"] is True
    assert data["totalIssues"] == 10
    assert data["totalErrorInAccount"] == 3


@pytest.mark.anyio
async def test_full_dashboard_data():
    result = await get_full_dashboard_data(StaticCollector(make_snapshot()), *KEY)
    assert result["success"] is True
    assert result["data"]["totalErrorInConversion"] == 2
    assert result["degraded"] == []

    failed = await get_full_dashboard_data(StaticCollector(status=404), *KEY)
    assert failed == {"success": False, "error": "No data snapshot found for this account"}
