"""
Database infrastructure layer for EduTrack.

One async engine per process. PostgreSQL (asyncpg) in production, SQLite
(aiosqlite) for local runs and the test-suite.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import StaticPool
from loguru import logger

from edutrack.config import settings


ASYNC_SCHEMES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")

# Process-wide engine and session factory, set by init_db()
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url(database_url: Optional[str] = None) -> str:
    """
    Resolve the database URL and force an async driver.

    Raises:
        ValueError: For URLs without an async driver we support
    """
    url = database_url or settings.database_url
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    if not url.startswith(ASYNC_SCHEMES):
        raise ValueError(f"Unsupported database URL scheme, expected one of: {', '.join(ASYNC_SCHEMES)}")
    return url


def _redacted(url: str) -> str:
    return url.rsplit("@", 1)[-1] if "@" in url else url.split("://", 1)[0]


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # In-memory databases live only as long as their single connection
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
        "echo_pool": settings.debug,
        "connect_args": {"server_settings": {"application_name": "edutrack"}},
    }


def create_database_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Build an async engine for the configured (or given) database.

    Args:
        database_url: Optional override of the configured URL

    Returns:
        AsyncEngine: Engine with pooling suited to the backend
    """
    url = get_database_url(database_url)
    logger.info(f"Creating database engine for {_redacted(url)}")
    return create_async_engine(url, echo=settings.debug, **_engine_options(url))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the application and the test-suite."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def init_db(database_url: Optional[str] = None, create_tables: bool = False) -> None:
    """
    Create the process-wide engine and session factory.

    Call once at startup. Schema changes normally go through Alembic;
    ``create_tables`` is for throwaway local databases.

    Raises:
        SQLAlchemyError: If the database does not answer the health check
    """
    global engine, AsyncSessionLocal

    engine = create_database_engine(database_url)
    AsyncSessionLocal = create_session_factory(engine)

    try:
        if create_tables:
            from edutrack.models import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")

        if not await health_check():
            raise SQLAlchemyError("Database health check failed")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        await close_db()
        raise

    logger.info("Database ready")


async def close_db() -> None:
    """Dispose of the engine and forget the session factory."""
    global engine, AsyncSessionLocal

    current, engine, AsyncSessionLocal = engine, None, None
    if current is not None:
        await current.dispose()
        logger.info("Database connections closed")


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope for one caller request.

    Services commit their own work; this scope only commits leftovers of a
    clean exit and rolls back on error.

    Example:
        async with get_db() as db:
            result = await ledger.upsert_semester(db, principal, "21CS001", 3, subjects)

    Raises:
        RuntimeError: If init_db() has not run
    """
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.new or session.dirty or session.deleted:
                await session.commit()
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise


async def health_check() -> bool:
    """
    Run a trivial query against the database.

    Returns:
        bool: True when the database answered

    Raises:
        RuntimeError: If init_db() has not run
    """
    if engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    try:
        async with engine.connect() as conn:
            healthy = (await conn.execute(text("SELECT 1"))).scalar() == 1
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False

    if not healthy:
        logger.error("Database health check returned an unexpected result")
    return healthy
