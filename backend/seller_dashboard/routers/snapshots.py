"""
Snapshots Router: hand-off point for the integration worker.

The worker pushes the raw multi-source snapshot, the seller catalog and the
metric documents for one (user, country, region). Pushing a snapshot with
``recalculate=true`` refreshes every issue cache from it right away.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.auth import RequestContext, get_request_context
from seller_dashboard.collector import StoredSnapshotCollector
from seller_dashboard.database import get_db
from seller_dashboard.models import CalculationSource
from seller_dashboard.services.recalculation_service import recalculate_all
from seller_dashboard.services.snapshot_service import store_metrics, store_snapshot, upsert_catalog
from seller_dashboard.services.task_service import make_task_creator
from seller_dashboard.utils import safe_error_detail

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request Models ────────────────────────────────────────────────────

class CatalogRequest(BaseModel):
    brand: Optional[str] = None
    products: list[dict] = Field(default_factory=list)  # {asin, sku, itemName, price, status}


class MetricsRequest(BaseModel):
    economicsMetrics: Optional[dict] = None
    buyBoxData: Optional[dict] = None
    performanceV2: Optional[dict] = None
    performanceV1: Optional[dict] = None
    ppcMetrics: Optional[dict] = None
    keywordsData: Optional[list[Any]] = None
    revenueData: Optional[list[Any]] = None
    dataFetch: Optional[dict] = None


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("")
async def push_snapshot(
    payload: dict,
    recalculate: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Store a raw snapshot; optionally recompute the issue caches from it."""
    try:
        row = await store_snapshot(db, ctx.user_id, ctx.country, ctx.region, payload)
    except Exception as e:
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Failed to store snapshot."))

    response = {"success": True, "snapshotId": str(row.id)}
    if recalculate:
        response["recalculation"] = await recalculate_all(
            db, StoredSnapshotCollector(db), ctx.user_id, ctx.country, ctx.region,
            source=CalculationSource.INTEGRATION.value, task_creator=make_task_creator(db),
        )
    return response


@router.put("/catalog")
async def push_catalog(
    req: CatalogRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        counts = await upsert_catalog(db, ctx.user_id, ctx.country, ctx.region, req.products, req.brand)
    except Exception as e:
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Failed to sync catalog."))
    return {"success": True, **counts}


@router.post("/metrics")
async def push_metrics(
    req: MetricsRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Store the metric documents read by the phased dashboard loaders."""
    try:
        stored = await store_metrics(db, ctx.user_id, ctx.country, ctx.region, req.model_dump(exclude_none=True))
    except Exception as e:
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Failed to store metrics."))
    return {"success": True, "stored": stored}
