"""
Issues Router: cached issue aggregates for the Issues pages.

Every endpoint reads the precomputed caches; a missing cache triggers one
fallback calculation from the latest stored snapshot.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.auth import RequestContext, get_request_context
from seller_dashboard.collector import SnapshotCollector, get_collector
from seller_dashboard.database import get_db
from seller_dashboard.models import CalculationSource
from seller_dashboard.services import issues_pagination_service as pagination
from seller_dashboard.services.issue_summary_service import mark_issue_summary_stale
from seller_dashboard.services.issues_data_service import ARRAY_FIELDS, get_issues_data, get_paginated_field_data
from seller_dashboard.services.product_issues_service import get_top_products_by_issues
from seller_dashboard.services.recalculation_service import recalculate_all
from seller_dashboard.services.task_service import make_task_creator

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_FIELDS = "^(issues|sessions|conversion|sales|acos|name|asin|price)$"


def _unwrap(result: dict) -> dict:
    """Service results with success False become 404s carrying the service error."""
    if not result.get("success"):
        raise HTTPException(status_code=404, detail=result.get("error") or "Issues data not found")
    return result


@router.get("")
async def get_issues(
    force_refresh: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    """Full cached issues data; recalculated when missing or when force_refresh is set."""
    return _unwrap(await get_issues_data(db, collector, ctx.user_id, ctx.country, ctx.region, force_refresh))


@router.get("/summary")
async def get_summary(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    return _unwrap(await pagination.get_issues_summary(db, collector, ctx.user_id, ctx.country, ctx.region))


@router.get("/ranking")
async def get_ranking(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    return _unwrap(await pagination.get_ranking_issues(
        db, collector, ctx.user_id, ctx.country, ctx.region, page, limit,
    ))


@router.get("/conversion")
async def get_conversion(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    return _unwrap(await pagination.get_conversion_issues(
        db, collector, ctx.user_id, ctx.country, ctx.region, page, limit,
    ))


@router.get("/inventory")
async def get_inventory(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    return _unwrap(await pagination.get_inventory_issues(
        db, collector, ctx.user_id, ctx.country, ctx.region, page, limit,
    ))


@router.get("/account")
async def get_account(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    return _unwrap(await pagination.get_account_issues(db, collector, ctx.user_id, ctx.country, ctx.region))


@router.get("/products")
async def get_products(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    sort: str = Query("issues", pattern=SORT_FIELDS),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    priority: Optional[str] = Query(None, pattern="^(high|medium|low)$"),
    search: Optional[str] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    """Issues by product: search, priority filter, sort, then paginate."""
    return _unwrap(await pagination.get_products_with_issues(
        db, collector, ctx.user_id, ctx.country, ctx.region,
        page=page, limit=limit, sort=sort, sort_order=sort_order, priority=priority, search=search,
    ))


@router.get("/fields/{field_name}")
async def get_field_page(
    field_name: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Raw slice of one stored issue array."""
    if field_name not in ARRAY_FIELDS:
        raise HTTPException(status_code=400, detail=f"Unknown field. Use one of: {', '.join(ARRAY_FIELDS)}")
    return await get_paginated_field_data(db, ctx.user_id, ctx.country, ctx.region, field_name, skip, limit)


@router.get("/top-products")
async def top_products(
    limit: int = Query(10, ge=1, le=100),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    products = await get_top_products_by_issues(db, ctx.user_id, ctx.country, ctx.region, limit)
    return {"success": True, "data": products}


@router.post("/recalculate")
async def recalculate(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
    collector: SnapshotCollector = Depends(get_collector),
):
    """Recompute every issue cache for the key from the latest snapshot."""
    result = await recalculate_all(
        db, collector, ctx.user_id, ctx.country, ctx.region,
        source=CalculationSource.MANUAL.value, task_creator=make_task_creator(db),
    )
    return _unwrap(result)


@router.post("/mark-stale")
async def mark_stale(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Flag the issue summary for the next scheduled refresh."""
    if not await mark_issue_summary_stale(db, ctx.user_id, ctx.country, ctx.region):
        raise HTTPException(status_code=500, detail="Failed to mark issue summary stale")
    return {"success": True}
