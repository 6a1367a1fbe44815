"""
Machine OEE - Database Layer

This module handles database connections and raw query execution for the
OEE analysis service. It uses SQLAlchemy with async support; each query runs
in its own session so independent loads can be awaited concurrently.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
import structlog

from machine_oee.config import settings

logger = structlog.get_logger()


# Database engine
async_engine = None
async_session_factory = None


async def init_db() -> None:
    """Initialize the database connection pool."""
    global async_engine, async_session_factory

    try:
        async_engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=settings.DATABASE_ECHO,
        )

        async_session_factory = async_sessionmaker(
            async_engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        await test_database_connection()

        logger.info("Database initialized successfully")

    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise


async def close_db() -> None:
    """Close database connections."""
    global async_engine, async_session_factory

    if async_engine:
        await async_engine.dispose()
        logger.info("Async database engine disposed")

    async_engine = None
    async_session_factory = None


async def test_database_connection() -> None:
    """Test database connectivity."""
    try:
        async with async_engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error("Database connection test failed", error=str(e))
        raise


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session with automatic cleanup."""
    if not async_session_factory:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Database utility functions
async def execute_query(query: str, params: Optional[dict] = None) -> list:
    """Execute a raw SQL query and return the rows as mappings."""
    try:
        async with get_db_session() as session:
            result = await session.execute(text(query), params or {})
            return result.mappings().all()
    except Exception as e:
        logger.error("Database query execution failed",
                     query=query[:100], params=params, error=str(e))
        raise


# Database health check
async def check_database_health() -> dict:
    """Check database health and return status information."""
    try:
        await test_database_connection()

        pool = async_engine.pool
        return {
            "status": "healthy",
            "pool_size": settings.DATABASE_POOL_SIZE,
            "max_overflow": settings.DATABASE_MAX_OVERFLOW,
            "checked_out": pool.checkedout(),
        }

    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return {
            "status": "unhealthy",
            "error": str(e)
        }
