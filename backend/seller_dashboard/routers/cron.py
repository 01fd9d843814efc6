"""
Cron / Scheduled Jobs: endpoints for Upstash QStash or an external cron.

Requests must carry the shared secret:
  X-Cron-Secret: <CRON_SECRET>   or   Authorization: Bearer <CRON_SECRET>
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.collector import StoredSnapshotCollector
from seller_dashboard.config import get_settings
from seller_dashboard.database import get_db
from seller_dashboard.services.issue_summary_service import refresh_stale_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    authorization: str | None = Header(None),
) -> None:
    """Verify the request came from the scheduler."""
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(500, "CRON_SECRET not configured")
    token = x_cron_secret
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if token != secret:
        raise HTTPException(401, "Invalid cron secret")


@router.post("/refresh-issue-summaries")
async def cron_refresh_issue_summaries(
    limit: Optional[int] = Query(None, ge=1, le=500),
    _: None = Depends(require_cron_secret),
    db: AsyncSession = Depends(get_db),
):
    """
    Recalculate stale issue summaries, oldest first. Call from QStash:
    POST https://your-app/api/cron/refresh-issue-summaries
    Header: X-Cron-Secret: <CRON_SECRET>
    """
    result = await refresh_stale_summaries(
        db, StoredSnapshotCollector(db), limit or get_settings().stale_refresh_limit,
    )
    if not result["success"]:
        logger.error(f"Cron stale summary refresh failed: {result.get('error')}")
        raise HTTPException(500, "Stale summary refresh failed")
    logger.info(f"Cron stale summary refresh: {result}")
    return {"status": "ok", "result": result}
