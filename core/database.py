"""
Database session management with SQLAlchemy async
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
from core.exceptions import DatabaseConnectionError
import logging

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
)

# Create session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def check_connection(db_engine: AsyncEngine) -> None:
    """
    Fail fast if the database is unreachable.

    Raises:
        DatabaseConnectionError: If a trivial query cannot be executed
    """
    try:
        async with db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        url = db_engine.url.render_as_string(hide_password=True)
        raise DatabaseConnectionError(
            "Database is not reachable",
            context={"database_url": url},
            original_exception=e
        )
    logger.info("Database connection verified")
