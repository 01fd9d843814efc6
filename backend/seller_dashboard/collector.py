"""
Snapshot collectors: where the aggregator's raw input comes from.

The integration worker fetches SP-API / Ads API data and pushes one raw snapshot
per (user, country, region) to ``POST /api/snapshots``. Services read it back
through a ``SnapshotCollector`` so tests and other workers can substitute their own.
"""

import logging
from typing import Protocol

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.database import get_db
from seller_dashboard.models import AnalysisSnapshot

logger = logging.getLogger(__name__)


class SnapshotCollector(Protocol):
    async def analyse(self, user_id: str, country: str, region: str) -> dict:
        """Return ``{"status": 200, "message": snapshot}`` or ``{"status": <code>, "message": error}``."""
        ...


class StoredSnapshotCollector:
    """Reads the most recent stored snapshot for a key."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def analyse(self, user_id: str, country: str, region: str) -> dict:
        result = await self.db.execute(
            select(AnalysisSnapshot)
            .where(
                AnalysisSnapshot.user_id == user_id,
                AnalysisSnapshot.country == country,
                AnalysisSnapshot.region == region,
            )
            .order_by(AnalysisSnapshot.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.info(f"No stored snapshot for user {user_id} ({country}/{region})")
            return {"status": 404, "message": "No data snapshot found for this account"}
        return {"status": 200, "message": row.payload}


async def get_collector(db: AsyncSession = Depends(get_db)) -> SnapshotCollector:
    """FastAPI dependency; shares the request's session."""
    return StoredSnapshotCollector(db)
