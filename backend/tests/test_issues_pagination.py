"""
Tests for the paginated Issues pages.
"""

import pytest
from sqlalchemy import select

from seller_dashboard.models import IssuesData
from seller_dashboard.services.issues_pagination_service import (
    NO_DATA_ERROR,
    filter_by_priority,
    flatten_inventory_issues,
    flatten_ranking_issues,
    get_account_issues,
    get_conversion_issues,
    get_inventory_issues,
    get_issues_summary,
    get_products_with_issues,
    get_ranking_issues,
    group_inventory_issues,
    group_ranking_issues,
    paginate,
    search_products,
    sort_products,
)
from seller_dashboard.services.recalculation_service import recalculate_all
from factories import StaticCollector, make_snapshot

KEY = ("user-1", "US", "NA")


# ── Pure helpers ──────────────────────────────────────────────────────

def test_paginate_last_partial_page():
    items, page = paginate(list(range(25)), 3, 10)
    assert items == [20, 21, 22, 23, 24]
    assert page == {"page": 3, "limit": 10, "total": 25, "hasMore": False, "totalPages": 3}


def test_paginate_first_page_has_more():
    items, page = paginate(list(range(25)), 1, 10)
    assert len(items) == 10
    assert page["hasMore"] is True


def test_paginate_empty_and_out_of_range():
    assert paginate([], 1, 10) == ([], {"page": 1, "limit": 10, "total": 0, "hasMore": False, "totalPages": 0})
    items, page = paginate([1, 2], 5, 10)
    assert items == []
    assert page["hasMore"] is False


PRODUCTS = [
    {"asin": "B01", "name": "Yoga Mat", "sku": "YM-1", "errors": 6, "sales": 10, "price": 20},
    {"asin": "B02", "name": "Foam Roller", "sku": "FR-1", "errors": 3, "sales": 50, "price": 15},
    {"asin": "B03", "name": "yoga block", "sku": "YB-1", "errors": 1, "sales": 5, "price": 8},
    {"asin": "B04", "name": "Resistance Band", "sku": "RB-1", "errors": 2, "sales": 0, "price": 12},
]


@pytest.mark.parametrize("priority,expected", [
    ("high", ["B01"]),
    ("medium", ["B02", "B04"]),
    ("low", ["B03"]),
    (None, ["B01", "B02", "B03", "B04"]),
    ("urgent", ["B01", "B02", "B03", "B04"]),
])
def test_filter_by_priority(priority, expected):
    assert [p["asin"] for p in filter_by_priority(PRODUCTS, priority)] == expected


def test_search_matches_name_asin_or_sku_case_insensitively():
    assert [p["asin"] for p in search_products(PRODUCTS, "YOGA")] == ["B01", "B03"]
    assert [p["asin"] for p in search_products(PRODUCTS, "b02")] == ["B02"]
    assert [p["asin"] for p in search_products(PRODUCTS, "rb-")] == ["B04"]
    assert search_products(PRODUCTS, "") == PRODUCTS


def test_sort_products():
    assert [p["asin"] for p in sort_products(PRODUCTS)] == ["B01", "B02", "B04", "B03"]
    assert [p["asin"] for p in sort_products(PRODUCTS, "sales", "asc")] == ["B04", "B03", "B01", "B02"]
    assert [p["asin"] for p in sort_products(PRODUCTS, "name", "asc")] == ["B02", "B04", "B03", "B01"]
    assert [p["asin"] for p in sort_products(PRODUCTS, "unknown")] == ["B01", "B02", "B04", "B03"]


def test_ranking_issues_flatten_one_row_per_failed_check():
    ranking = [{
        "asin": "A1",
        "data": {
            "Title": "Bottle",
            "TitleResult": {"charLim": {"status": "Error"}, "RestictedWords": {"status": "Success"}},
            "BulletPoints": {"checkSpecialCharacters": {"status": "Error"}},
            "charLim": {"status": "Error", "Message": "backend too long"},
        },
    }]
    issues = flatten_ranking_issues(ranking, {"A1": {"asin": "A1", "sku": "SKU-1"}})
    assert [(i["sectionLabel"], i["checkLabel"]) for i in issues] == [
        ("Title", "Character Limit"),
        ("Bullet Points", "Special Characters"),
        ("Backend Keywords", "Character Limit"),
    ]
    assert {i["sku"] for i in issues} == {"SKU-1"}

    grouped = group_ranking_issues(issues)
    assert len(grouped) == 1
    assert set(grouped[0]["data"]) == {"Title", "TitleResult", "BulletPoints", "charLim"}


def test_inventory_issues_flatten_and_regroup():
    inventory = [{
        "asin": "A2",
        "Title": "Board",
        "inventoryPlanningErrorData": {"longTermStorageFees": {"status": "Error"}, "unfulfillable": {"status": "Ok"}},
        "strandedInventoryErrorData": {"status": "Error"},
        "replenishmentErrorData": {"status": "Error", "sku": "SKU-2b"},
    }]
    issues = flatten_inventory_issues(inventory, {})
    assert [i["issueType"] for i in issues] == ["inventoryPlanning", "stranded", "replenishment"]
    assert issues[0]["Title"] == "Board"
    assert issues[2]["sku"] == "SKU-2b"

    grouped = group_inventory_issues(issues)
    assert list(grouped[0]["inventoryPlanningErrorData"]) == ["longTermStorageFees"]
    assert grouped[0]["replenishmentErrorData"] == [{"status": "Error", "sku": "SKU-2b"}]


# ── Cached pages ──────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_missing_cache_triggers_one_fallback_calculation(db):
    collector = StaticCollector(make_snapshot())
    result = await get_ranking_issues(db, collector, *KEY, page=1, limit=10)

    assert result["success"] is True
    assert collector.calls == 1
    assert result["pagination"]["total"] == 2
    assert result["data"][0]["asin"] == "A1"
    row = (await db.execute(select(IssuesData))).scalar_one()
    assert row.calculation_source == "pagination_fallback"

    await get_inventory_issues(db, collector, *KEY)
    assert collector.calls == 1


@pytest.mark.anyio
async def test_category_pages(db):
    collector = StaticCollector(make_snapshot())
    await recalculate_all(db, collector, *KEY)

    conversion = await get_conversion_issues(db, collector, *KEY)
    assert conversion["buyBoxData"] == []
    assert [(c["asin"], sorted(k for k in c if k.endswith("ErrorData"))) for c in conversion["data"]] == [
        ("A1", ["imageResultErrorData"]),
    ]

    inventory = await get_inventory_issues(db, collector, *KEY, page=1, limit=5)
    assert inventory["pagination"]["total"] == 1
    assert inventory["data"][0]["strandedInventoryErrorData"] == {"asin": "A2", "status": "Error"}

    account = await get_account_issues(db, collector, *KEY)
    assert account["data"]["totalAccountErrors"] == 3


@pytest.mark.anyio
async def test_ranking_pages_split_issues(db):
    collector = StaticCollector(make_snapshot())
    await recalculate_all(db, collector, *KEY)

    first = await get_ranking_issues(db, collector, *KEY, page=1, limit=1)
    second = await get_ranking_issues(db, collector, *KEY, page=2, limit=1)
    assert first["pagination"] == {"page": 1, "limit": 1, "total": 2, "hasMore": True, "totalPages": 2}
    assert list(first["data"][0]["data"]["TitleResult"]) == ["charLim"]
    assert list(second["data"][0]["data"]["TitleResult"]) == ["RestictedWords"]


@pytest.mark.anyio
async def test_products_with_issues(db):
    collector = StaticCollector(make_snapshot())
    await recalculate_all(db, collector, *KEY)

    result = await get_products_with_issues(db, collector, *KEY)
    assert [p["asin"] for p in result["data"]] == ["A1", "A2"]
    assert result["pagination"]["limit"] == 6
    assert result["filters"] == {"sort": "issues", "sortOrder": "desc", "priority": None, "search": None}
    assert result["data"][1]["inventoryDetails"]["asin"] == "A2"

    medium = await get_products_with_issues(db, collector, *KEY, priority="medium")
    assert [p["asin"] for p in medium["data"]] == ["A1", "A2"]
    low = await get_products_with_issues(db, collector, *KEY, priority="low")
    assert low["data"] == []
    searched = await get_products_with_issues(db, collector, *KEY, search="bamboo", sort_order="asc")
    assert [p["asin"] for p in searched["data"]] == ["A2"]


@pytest.mark.anyio
async def test_pages_fail_cleanly_without_any_data(db):
    collector = StaticCollector(status=404)
    for loader in (get_ranking_issues, get_conversion_issues, get_inventory_issues):
        result = await loader(db, collector, *KEY)
        assert result == {"success": False, "error": NO_DATA_ERROR}
    assert (await get_products_with_issues(db, collector, *KEY))["success"] is False
    assert (await get_issues_summary(db, collector, *KEY))["error"] == NO_DATA_ERROR


@pytest.mark.anyio
async def test_issues_summary_prefers_issue_summary(db):
    collector = StaticCollector(make_snapshot())
    await recalculate_all(db, collector, *KEY)

    result = await get_issues_summary(db, collector, *KEY)
    data = result["data"]
    assert data["totalIssues"] == 10
    assert data["totalRankingErrors"] == 2
    assert data["numberOfProductsWithIssues"] == 2
    assert data["totalActiveProducts"] == 2
    assert data["TotalProduct"] == 3
    assert data["accountHealthPercentage"] == {"Percentage": 80, "status": "Healthy"}


@pytest.mark.anyio
async def test_issues_summary_fallback_uses_issues_data(db):
    collector = StaticCollector(make_snapshot())
    result = await get_issues_summary(db, collector, *KEY)
    assert collector.calls == 1
    data = result["data"]
    # ranking + conversion + inventory only when no issue summary exists
    assert data["totalIssues"] == 5
    assert data["totalAccountErrors"] == 3
