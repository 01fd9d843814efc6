"""
Seller Dashboard API: FastAPI Backend
Aggregates raw Amazon seller snapshots into dashboard data and precomputed
issue caches. All data persisted to PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from seller_dashboard.config import get_settings
from seller_dashboard.database import init_db, check_db_connection
from seller_dashboard.auth import require_api_key
from seller_dashboard.routers import cron, dashboard, issues, snapshots, tasks

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Seller Dashboard API...")
    try:
        await init_db()
        logger.info("Database initialized: all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Seller Dashboard API",
    description="Dashboard aggregation and issue caches for Amazon sellers",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(require_api_key)]
app.include_router(snapshots.router, prefix="/api/snapshots", tags=["Snapshots"], dependencies=_auth)
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"], dependencies=_auth)
app.include_router(issues.router, prefix="/api/issues", tags=["Issues"], dependencies=_auth)
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"], dependencies=_auth)
app.include_router(cron.router, prefix="/api")  # No auth: uses CRON_SECRET


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Seller Dashboard API",
        "database": "connected" if db_ok else "disconnected",
    }
