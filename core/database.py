"""
Database session management with SQLAlchemy async
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import settings
from core.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    future=True
)

# Create session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def get_session() -> AsyncSession:
    """Get database session"""
    async with async_session_maker() as session:
        yield session


def dialect_insert(session: AsyncSession, model):
    """
    Return an INSERT construct supporting ON CONFLICT for the session's backend.

    PostgreSQL is the production store; SQLite is used by the test suite.
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


async def init_models(bind: Optional[AsyncEngine] = None):
    """Create all tables that do not exist yet."""
    from models import Base

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def wait_for_database(
    bind: Optional[AsyncEngine] = None,
    retries: int = settings.DB_STARTUP_RETRIES,
    delay: float = settings.DB_STARTUP_RETRY_DELAY
):
    """
    Block until the database answers ``SELECT 1``.

    Raises:
        DatabaseConnectionError: If the database is still unreachable after
            ``retries`` attempts. Startup treats this as fatal.
    """
    target = bind or engine
    last_exception = None

    for attempt in range(1, retries + 1):
        try:
            async with target.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info(f"Database reachable (attempt {attempt}/{retries})")
            return
        except Exception as e:
            last_exception = e
            logger.warning(
                f"Database not reachable (attempt {attempt}/{retries}): {e}"
            )
            if attempt < retries:
                await asyncio.sleep(delay)

    raise DatabaseConnectionError(
        f"Database unreachable after {retries} attempts",
        context={"retries": retries, "delay": delay},
        original_exception=last_exception
    )
