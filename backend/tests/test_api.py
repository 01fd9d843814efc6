"""
End-to-end API tests: the worker pushes data, the dashboard and Issues pages read it.
"""

import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport

from seller_dashboard.config import Settings
from seller_dashboard.database import get_db, get_session_factory
from factories import make_snapshot

API_KEY = "test-api-key"
HEADERS = {
    "Authorization": f"Bearer {API_KEY}",
    "X-User-Id": "user-1",
    "X-Country": "US",
    "X-Region": "NA",
}
CATALOG = {
    "brand": "Hydro Home",
    "products": [
        {"asin": "A1", "sku": "SKU-1", "itemName": "Steel Water Bottle 1L", "price": 20, "status": "Active"},
        {"asin": "A2", "sku": "SKU-2", "itemName": "Bamboo Cutting Board", "price": 35, "status": "Active"},
        {"asin": "A3", "sku": "SKU-3", "itemName": "Retired Kettle", "price": 15, "status": "Inactive"},
    ],
}


@pytest.fixture
async def client(session_factory):
    from seller_dashboard.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    settings = Settings(environment="development", api_key=API_KEY, cron_secret="cron-secret")
    with patch("seller_dashboard.auth.get_settings", return_value=settings), \
            patch("seller_dashboard.routers.cron.get_settings", return_value=settings):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


async def _push_everything(client):
    response = await client.put("/api/snapshots/catalog", json=CATALOG, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"success": True, "added": 3, "updated": 0, "removed": 0}

    response = await client.post("/api/snapshots?recalculate=true", json=make_snapshot(), headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["recalculation"]["success"] is True
    return body


# ── Auth and identity ─────────────────────────────────────────────────

@pytest.mark.anyio
async def test_missing_or_wrong_api_key(client):
    headers = {k: v for k, v in HEADERS.items() if k != "Authorization"}
    response = await client.get("/api/issues/summary", headers=headers)
    assert response.status_code == 401

    response = await client.get("/api/issues/summary", headers={**headers, "Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key."


@pytest.mark.anyio
async def test_identity_is_required(client):
    response = await client.get("/api/issues/summary", headers={"Authorization": f"Bearer {API_KEY}"})
    assert response.status_code == 400
    assert response.json()["detail"] == "User ID, country, and region are required"


@pytest.mark.anyio
async def test_identity_from_query_params(client):
    await _push_everything(client)
    response = await client.get(
        "/api/issues/summary",
        params={"user_id": "user-1", "country": "US", "region": "NA"},
        headers={"Authorization": f"Bearer {API_KEY}"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["totalIssues"] == 10


# ── Issues pages ──────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_issues_endpoints_after_push(client):
    await _push_everything(client)

    response = await client.get("/api/issues", headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "cache"
    assert body["data"]["TotalRankingerrors"] == 2
    assert body["data"]["first"]["asin"] == "A1"

    response = await client.get("/api/issues/ranking", params={"page": 1, "limit": 1}, headers=HEADERS)
    assert response.json()["pagination"]["totalPages"] == 2

    response = await client.get("/api/issues/inventory", headers=HEADERS)
    assert [p["asin"] for p in response.json()["data"]] == ["A2"]

    response = await client.get("/api/issues/account", headers=HEADERS)
    assert response.json()["data"]["totalAccountErrors"] == 3

    response = await client.get("/api/issues/products", params={"search": "bottle"}, headers=HEADERS)
    assert [p["asin"] for p in response.json()["data"]] == ["A1"]

    response = await client.get("/api/issues/top-products", headers=HEADERS)
    assert [(p["asin"], p["issueCount"]) for p in response.json()["data"]] == [("A1", 3), ("A2", 2)]

    response = await client.get("/api/issues/fields/productWiseError", params={"limit": 1}, headers=HEADERS)
    assert response.json()["total"] == 2
    assert len(response.json()["data"]) == 1


@pytest.mark.anyio
async def test_issues_query_validation(client):
    response = await client.get("/api/issues/fields/somethingElse", headers=HEADERS)
    assert response.status_code == 400

    response = await client.get("/api/issues/products", params={"sort": "rating"}, headers=HEADERS)
    assert response.status_code == 422

    response = await client.get("/api/issues/ranking", params={"page": 0}, headers=HEADERS)
    assert response.status_code == 422


@pytest.mark.anyio
async def test_issues_without_snapshot_are_not_found(client):
    response = await client.get("/api/issues/ranking", headers=HEADERS)
    assert response.status_code == 404
    assert response.json()["detail"] == "No issues data found and calculation failed"

    response = await client.post("/api/issues/recalculate", headers=HEADERS)
    assert response.status_code == 404


@pytest.mark.anyio
async def test_manual_recalculate_and_mark_stale(client):
    await _push_everything(client)

    response = await client.post("/api/issues/recalculate", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["summary"]["data"]["calculationSource"] == "manual"

    response = await client.post("/api/issues/mark-stale", headers=HEADERS)
    assert response.json() == {"success": True}
    response = await client.get("/api/dashboard/phase1", headers=HEADERS)
    assert response.json()["data"]["hasPrecomputedIssues"] is False


# ── Dashboard ─────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_dashboard_endpoints(client):
    await _push_everything(client)
    response = await client.post(
        "/api/snapshots/metrics",
        json={"performanceV2": {"ahrScore": 150}, "revenueData": [{"orderStatus": "Shipped"}]},
        headers=HEADERS,
    )
    assert response.json() == {"success": True, "stored": ["performanceV2", "revenueData"]}

    phase1 = (await client.get("/api/dashboard/phase1", headers=HEADERS)).json()["data"]
    assert phase1["hasPrecomputedIssues"] is True
    assert phase1["totalIssues"] == 10
    assert phase1["activeProductCount"] == 2

    phase2 = (await client.get("/api/dashboard/phase2", headers=HEADERS)).json()["data"]
    assert phase2["accountHealthPercentage"] == {"status": "At Risk", "Percentage": 50}

    phase3 = (await client.get("/api/dashboard/phase3", headers=HEADERS)).json()["data"]
    assert phase3["totalOrdersCount"] == 1

    summary = (await client.get("/api/dashboard/summary", headers=HEADERS)).json()["data"]
    assert summary["isLightweightSummary"] is True
    assert summary["totalIssues"] == 10

    full = (await client.get("/api/dashboard/full", headers=HEADERS)).json()
    assert full["data"]["totalErrorInConversion"] == 2


@pytest.mark.anyio
async def test_full_dashboard_without_snapshot(client):
    response = await client.get("/api/dashboard/full", headers=HEADERS)
    assert response.status_code == 404


# ── Tasks ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_task_endpoints(client):
    response = await client.get("/api/tasks", headers=HEADERS)
    assert response.json()["data"] == {"userId": "user-1", "tasks": [], "taskRenewalDate": None}

    await _push_everything(client)
    tasks = (await client.get("/api/tasks", headers=HEADERS)).json()["data"]["tasks"]
    assert tasks
    task_id = tasks[0]["taskId"]

    response = await client.patch(f"/api/tasks/{task_id}", json={"status": "completed"}, headers=HEADERS)
    assert response.status_code == 200
    updated = next(t for t in response.json()["data"]["tasks"] if t["taskId"] == task_id)
    assert updated["status"] == "completed"

    response = await client.patch("/api/tasks/task_missing", json={"status": "completed"}, headers=HEADERS)
    assert response.status_code == 404
    response = await client.patch(f"/api/tasks/{task_id}", json={"status": "archived"}, headers=HEADERS)
    assert response.status_code == 422


# ── Cron ──────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_cron_refresh_requires_secret(client):
    response = await client.post("/api/cron/refresh-issue-summaries")
    assert response.status_code == 401

    response = await client.post("/api/cron/refresh-issue-summaries", headers={"X-Cron-Secret": "wrong"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_cron_refreshes_stale_summaries(client):
    await _push_everything(client)
    await client.post("/api/issues/mark-stale", headers=HEADERS)

    response = await client.post(
        "/api/cron/refresh-issue-summaries", headers={"Authorization": "Bearer cron-secret"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["result"]["refreshed"] == 1

    phase1 = (await client.get("/api/dashboard/phase1", headers=HEADERS)).json()["data"]
    assert phase1["hasPrecomputedIssues"] is True
