"""
Async SQLAlchemy engine + session factory for TiDB (MySQL-protocol).

TiDB is wire-compatible with MySQL 5.7, so we use the aiomysql driver.
The engine is created once at import and reused by the API and both workers.
Setting DATABASE_URL to a sqlite+aiosqlite URL gives a single-file local DB.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from favfeed.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite: no connection pool tuning
        return {"echo": False}
    return {
        "pool_pre_ping": True,
        "pool_size": 20,
        "max_overflow": 10,
        "echo": False,
    }


engine = create_async_engine(
    settings.database_url_resolved,
    **_engine_kwargs(settings.database_url_resolved),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables if they don't exist (idempotent)."""
    # Importing models registers them on Base.metadata
    from favfeed import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
