"""
MockExam - database engine and sessions

The engine is created on first use so that tests and the seed script can point
DATABASE_URL elsewhere before anything connects. Plain driver URLs are upgraded
to their async drivers (asyncpg, aiosqlite).

SQLite gets no pool. PostgreSQL gets a QueuePool sized by DB_POOL_SIZE and
DB_MAX_OVERFLOW, recycled after DB_POOL_RECYCLE seconds and pinged before use.
"""

from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.logging_config import logger


Base = declarative_base()

ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}

_engine: Optional[AsyncEngine] = None
_sessions: Optional[async_sessionmaker[AsyncSession]] = None


def async_database_url(url: Optional[str] = None) -> str:
    url = url or settings.DATABASE_URL
    for prefix, async_prefix in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


def engine_options(url: str) -> Dict[str, Any]:
    """create_async_engine keyword arguments for the given backend"""
    if make_url(url).get_backend_name() == "sqlite":
        return {"poolclass": NullPool, "connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = async_database_url()
        _engine = create_async_engine(url, echo=settings.DB_ECHO, **engine_options(url))
        logger.info(f"[Database] Engine created for {make_url(url).render_as_string(hide_password=True)}")
    return _engine


def AsyncSessionLocal() -> AsyncSession:
    """New session outside a request (seed script, background work)"""
    global _sessions
    if _sessions is None:
        _sessions = async_sessionmaker(get_engine(), expire_on_commit=False, autoflush=False)
    return _sessions()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; services commit their own writes"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.new or session.dirty or session.deleted:
                await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    import app.models  # noqa: F401 - register models on the metadata

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"[Database] {len(Base.metadata.tables)} tables ready")


async def close_db() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
        logger.info("[Database] Engine disposed")
    _engine = None
    _sessions = None
