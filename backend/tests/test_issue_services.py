"""
Tests for the issue caches: summary, issues data, product issue counts and
the combined recalculation.
"""

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import func, select

from seller_dashboard.models import AnalysisSnapshot, IssueSummary, IssuesData, SellerProduct, UserTaskList
from seller_dashboard.services.dashboard_calculation import build_dashboard_data
from seller_dashboard.services.issue_summary_service import (
    calculate_and_store_issue_summary,
    get_issue_summary,
    mark_issue_summary_stale,
    refresh_stale_summaries,
    summary_counts,
)
from seller_dashboard.services.issues_data_service import (
    get_issues_data,
    get_paginated_field_data,
    store_issues_data_from_dashboard,
)
from seller_dashboard.services.product_issues_service import (
    build_issue_count_map,
    calculate_and_store_product_issues,
    get_top_products_by_issues,
    store_product_issues_from_dashboard_data,
)
from seller_dashboard.services.recalculation_service import recalculate_all
from seller_dashboard.services.snapshot_service import store_metrics, store_snapshot, upsert_catalog
from seller_dashboard.services.task_service import TaskService, make_task_creator
from seller_dashboard.utils import utcnow
from factories import StaticCollector, make_snapshot

KEY = ("user-1", "US", "NA")
CATALOG = [
    {"asin": "A1", "sku": "SKU-1", "itemName": "Steel Water Bottle 1L", "price": "20.00", "status": "Active"},
    {"asin": "A2", "sku": "SKU-2", "itemName": "Bamboo Cutting Board", "price": 35, "status": "Active"},
    {"asin": "A3", "sku": "SKU-3", "itemName": "Retired Kettle", "price": 15, "status": "Inactive"},
]


def test_summary_counts_sum_every_category():
    counts = summary_counts(build_dashboard_data(make_snapshot()).dashboard_data)
    assert counts["total_issues"] == 10
    assert counts["number_of_products_with_issues"] == 2
    assert counts["total_active_products"] == 2


# ── Issue summary ─────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_calculate_and_store_issue_summary(db):
    result = await calculate_and_store_issue_summary(db, StaticCollector(make_snapshot()), *KEY, source="manual")
    assert result["success"] is True
    assert result["data"]["totalIssues"] == 10
    assert result["data"]["calculationSource"] == "manual"
    assert result["data"]["isStale"] is False

    row = await get_issue_summary(db, *KEY)
    assert row.total_ranking_errors == 2
    assert row.total_account_errors == 3


@pytest.mark.anyio
async def test_issue_summary_recalculation_overwrites_single_row(db):
    collector = StaticCollector(make_snapshot())
    await calculate_and_store_issue_summary(db, collector, *KEY)
    await calculate_and_store_issue_summary(db, collector, *KEY)
    count = (await db.execute(select(func.count()).select_from(IssueSummary))).scalar()
    assert count == 1


@pytest.mark.anyio
async def test_issue_summary_reports_collector_failure(db):
    result = await calculate_and_store_issue_summary(db, StaticCollector(status=404), *KEY)
    assert result["success"] is False
    assert result["error"] == "Failed to get analyse data: status 404"
    assert await get_issue_summary(db, *KEY) is None


@pytest.mark.anyio
async def test_stale_summaries_are_refreshed_by_schedule(db):
    collector = StaticCollector(make_snapshot())
    await calculate_and_store_issue_summary(db, collector, *KEY)
    assert await mark_issue_summary_stale(db, *KEY) is True
    assert (await get_issue_summary(db, *KEY)).is_stale is True

    result = await refresh_stale_summaries(db, collector, limit=5)
    assert result["success"] is True
    assert result["refreshed"] == 1
    assert result["failed"] == 0
    row = await get_issue_summary(db, *KEY)
    assert row.is_stale is False
    assert row.calculation_source == "schedule"


@pytest.mark.anyio
async def test_mark_stale_without_summary_is_a_no_op(db):
    assert await mark_issue_summary_stale(db, "nobody", "US", "NA") is True


# ── Issues data ───────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_issues_data_is_calculated_once_then_served_from_cache(db):
    collector = StaticCollector(make_snapshot())

    first = await get_issues_data(db, collector, *KEY)
    assert first["success"] is True
    assert first["source"] == "calculated"
    assert collector.calls == 1

    second = await get_issues_data(db, collector, *KEY)
    assert second["source"] == "cache"
    assert second["lastCalculatedAt"] is not None
    assert collector.calls == 1
    assert second["data"]["TotalRankingerrors"] == 2
    assert second["data"]["first"]["asin"] == "A1"
    assert second["data"]["fourth"] is None
    assert [p["asin"] for p in second["data"]["productWiseError"]] == ["A1", "A2"]

    refreshed = await get_issues_data(db, collector, *KEY, force_refresh=True)
    assert refreshed["source"] == "calculated"
    assert collector.calls == 2
    row = (await db.execute(select(IssuesData))).scalar_one()
    assert row.calculation_source == "request"


@pytest.mark.anyio
async def test_issues_data_failure_without_cache(db):
    result = await get_issues_data(db, StaticCollector(status=500), *KEY)
    assert result["success"] is False
    assert result["duration"] >= 0


@pytest.mark.anyio
async def test_store_issues_data_requires_dashboard_data(db):
    result = await store_issues_data_from_dashboard(db, *KEY, None)
    assert result["success"] is False
    assert result["error"] == "No dashboard data provided"
    assert result["duration"] >= 0


@pytest.mark.anyio
async def test_paginated_field_data(db):
    await store_issues_data_from_dashboard(db, *KEY, build_dashboard_data(make_snapshot()).dashboard_data)
    page = await get_paginated_field_data(db, *KEY, "productWiseError", skip=1, limit=1)
    assert page["total"] == 2
    assert [p["asin"] for p in page["data"]] == ["A2"]
    assert await get_paginated_field_data(db, *KEY, "nope") == {"data": [], "total": 0}
    assert await get_paginated_field_data(db, "other", "US", "NA", "productWiseError") == {"data": [], "total": 0}


# ── Product issues ────────────────────────────────────────────────────

def test_issue_count_map():
    assert build_issue_count_map([{"asin": "A1", "errors": 3}, {"errors": 9}, {"asin": "A2"}]) == {"A1": 3, "A2": 0}


@pytest.mark.anyio
async def test_product_issue_counts_are_written_to_catalog(db):
    await upsert_catalog(db, *KEY, CATALOG, brand="Acme")
    dashboard_data = build_dashboard_data(make_snapshot()).dashboard_data

    result = await store_product_issues_from_dashboard_data(db, *KEY, dashboard_data)
    assert result["success"] is True
    assert result["data"] == {"updatedCount": 3, "totalProducts": 3, "productsWithIssues": 2}

    again = await store_product_issues_from_dashboard_data(db, *KEY, dashboard_data)
    assert again["data"]["updatedCount"] == 0

    top = await get_top_products_by_issues(db, *KEY)
    assert [(p["asin"], p["issueCount"]) for p in top] == [("A1", 3), ("A2", 2)]


@pytest.mark.anyio
async def test_product_issues_need_a_seller_and_account(db):
    dashboard_data = build_dashboard_data(make_snapshot()).dashboard_data
    result = await store_product_issues_from_dashboard_data(db, *KEY, dashboard_data)
    assert result["error"] == "Seller not found"

    await upsert_catalog(db, "user-1", "UK", "EU", CATALOG)
    result = await store_product_issues_from_dashboard_data(db, *KEY, dashboard_data)
    assert result["error"] == "Seller account not found for region"

    result = await store_product_issues_from_dashboard_data(db, *KEY, {"productWiseError": None})
    assert result["error"] == "No productWiseError data provided"
    assert result["duration"] >= 0


@pytest.mark.anyio
async def test_calculate_and_store_product_issues(db):
    await upsert_catalog(db, *KEY, CATALOG)
    result = await calculate_and_store_product_issues(db, StaticCollector(make_snapshot()), *KEY)
    assert result["success"] is True
    assert result["data"]["productsWithIssues"] == 2

    failed = await calculate_and_store_product_issues(db, StaticCollector(status=500), *KEY)
    assert failed["error"] == "Failed to get analyse data: status 500"


# ── Recalculation ─────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_recalculate_all_collects_once(db):
    await upsert_catalog(db, *KEY, CATALOG)
    collector = StaticCollector(make_snapshot())
    result = await recalculate_all(db, collector, *KEY, source="manual")

    assert collector.calls == 1
    assert result["success"] is True
    assert result["summary"]["success"] is True
    assert result["issuesData"] == {"success": True, "error": None}
    assert result["productIssues"]["success"] is True
    assert result["degraded"] == []

    issues_row = (await db.execute(select(IssuesData))).scalar_one()
    summary_row = await get_issue_summary(db, *KEY)
    assert issues_row.total_ranking_errors == summary_row.total_ranking_errors
    assert len(issues_row.product_wise_error) == summary_row.number_of_products_with_issues


@pytest.mark.anyio
async def test_recalculate_all_without_snapshot(db):
    result = await recalculate_all(db, StaticCollector(status=404), *KEY)
    assert result["success"] is False
    assert "status 404" in result["error"]


# ── Snapshot ingest ───────────────────────────────────────────────────

@pytest.mark.anyio
async def test_snapshots_are_pruned_to_the_latest_three(db):
    for i in range(5):
        await store_snapshot(db, *KEY, {"run": i})
    count = (await db.execute(select(func.count()).select_from(AnalysisSnapshot))).scalar()
    assert count == 3


@pytest.mark.anyio
async def test_catalog_sync_adds_updates_and_removes(db):
    assert await upsert_catalog(db, *KEY, CATALOG) == {"added": 3, "updated": 0, "removed": 0}
    result = await upsert_catalog(db, *KEY, [{"asin": "A1", "price": "19.99", "status": "Inactive"}])
    assert result == {"added": 0, "updated": 1, "removed": 2}

    product = (await db.execute(select(SellerProduct))).scalar_one()
    assert product.asin == "A1"
    assert product.price == 19.99
    assert product.status == "Inactive"
    assert product.item_name == "Steel Water Bottle 1L"


@pytest.mark.anyio
async def test_store_metrics_reports_sections(db):
    stored = await store_metrics(db, *KEY, {
        "economicsMetrics": {"totalSales": {"amount": 100}},
        "performanceV2": {"ahrScore": 900},
        "keywordsData": [],
        "revenueData": "not-a-list",
    })
    assert stored == ["economicsMetrics", "performanceV2", "keywordsData"]


# ── Shared session failures ───────────────────────────────────────────

@pytest.mark.anyio
async def test_failed_store_keeps_earlier_writes(db):
    await upsert_catalog(db, *KEY, CATALOG)
    await store_snapshot(db, *KEY, make_snapshot())
    failing = AsyncMock(side_effect=RuntimeError("db write failed"))
    with patch("seller_dashboard.services.issues_data_service._upsert_issues_data", failing):
        result = await recalculate_all(db, StaticCollector(make_snapshot()), *KEY)
    await db.commit()

    assert result["summary"]["success"] is True
    assert result["issuesData"] == {"success": False, "error": "db write failed"}
    assert result["productIssues"]["success"] is True

    summary_row = await get_issue_summary(db, *KEY)
    assert summary_row.total_issues == 10
    assert (await db.execute(select(func.count()).select_from(IssuesData))).scalar_one() == 0
    assert (await db.execute(select(func.count()).select_from(AnalysisSnapshot))).scalar_one() == 1
    counts = (await db.execute(select(SellerProduct.asin, SellerProduct.issue_count))).all()
    assert dict(counts)["A1"] == 3


@pytest.mark.anyio
async def test_failed_task_flush_does_not_block_the_summary(db):
    async def broken_task_list(self, user_id, errors):
        self.db.add(UserTaskList(user_id=None, tasks=[], task_renewal_date=utcnow()))
        await self.db.flush()

    with patch.object(TaskService, "create_tasks_from_errors", broken_task_list):
        result = await calculate_and_store_issue_summary(
            db, StaticCollector(make_snapshot()), *KEY, task_creator=make_task_creator(db),
        )
    await db.commit()

    assert result["success"] is True
    assert (await get_issue_summary(db, *KEY)).total_issues == 10
    assert (await db.execute(select(func.count()).select_from(UserTaskList))).scalar_one() == 0
