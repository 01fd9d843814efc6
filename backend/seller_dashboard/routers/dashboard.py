"""
Dashboard Router: phased loaders for the main dashboard plus the full
aggregation for views that need every derived field.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from seller_dashboard.auth import RequestContext, get_request_context
from seller_dashboard.collector import SnapshotCollector, get_collector
from seller_dashboard.database import get_session_factory
from seller_dashboard.services import dashboard_summary_service as summary_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _loaded(result: dict) -> dict:
    if not result.get("success"):
        # Phase loaders only fail on storage errors; detail is already logged
        raise HTTPException(status_code=500, detail="Failed to load dashboard data. Please try again later.")
    return result


@router.get("/summary")
async def dashboard_summary(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return _loaded(await summary_service.get_dashboard_summary(session_factory, ctx.user_id, ctx.country, ctx.region))


@router.get("/phase1")
async def dashboard_phase1(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Precomputed issue counts and product counts for first paint."""
    return _loaded(await summary_service.get_dashboard_phase1(session_factory, ctx.user_id, ctx.country, ctx.region))


@router.get("/phase2")
async def dashboard_phase2(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return _loaded(await summary_service.get_dashboard_phase2(session_factory, ctx.user_id, ctx.country, ctx.region))


@router.get("/phase3")
async def dashboard_phase3(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return _loaded(await summary_service.get_dashboard_phase3(session_factory, ctx.user_id, ctx.country, ctx.region))


@router.get("/full")
async def dashboard_full(
    ctx: RequestContext = Depends(get_request_context),
    collector: SnapshotCollector = Depends(get_collector),
):
    """Full dashboardData from the latest snapshot."""
    result = await summary_service.get_full_dashboard_data(collector, ctx.user_id, ctx.country, ctx.region)
    if not result["success"]:
        raise HTTPException(status_code=404, detail=result["error"])
    return result
