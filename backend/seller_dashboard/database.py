"""
Database configuration and session management.
Uses PostgreSQL via asyncpg with SQLAlchemy 2 async engine.
"""

import logging
import ssl
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from seller_dashboard.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

SSL_MODES = ("require", "verify-ca", "verify-full")


def engine_url_and_connect_args(database_url: str) -> tuple[URL, dict]:
    """
    Split a DATABASE_URL into the URL and connect args the async engine takes.
    asyncpg rejects libpq's ``sslmode`` query param, so it becomes an SSL context.
    """
    url = make_url(database_url)
    args = {"timeout": 30}  # Fail fast if DB unreachable
    sslmode = url.query.get("sslmode")
    if sslmode is not None:
        url = url.difference_update_query(["sslmode"])
    if sslmode in SSL_MODES or (url.host or "").endswith("rlwy.net"):
        ctx = ssl.create_default_context()
        if sslmode == "verify-ca":
            ctx.check_hostname = False
        elif sslmode != "verify-full":
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return url, args


_url, _connect_args = engine_url_and_connect_args(settings.database_url)

engine = create_async_engine(
    _url,
    echo=False,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Dependency that provides a database session with auto-commit/rollback."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Dependency for readers that open one short session per parallel query."""
    return async_session


async def init_db():
    """
    Create all tables defined in models.
    Uses create_all which is safe: it only creates tables that don't exist yet.
    """
    # Import models to ensure they are registered with Base.metadata
    import seller_dashboard.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                    f"{', '.join(Base.metadata.tables.keys())}")


async def check_db_connection() -> bool:
    """Test database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
