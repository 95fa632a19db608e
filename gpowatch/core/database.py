"""
Run history database.
Async SQLAlchemy engine and sessions for the run history tables; SQLite URLs
are served through aiosqlite.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from gpowatch.core.config import settings

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    return url.replace("sqlite:///", "sqlite+aiosqlite:///")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for a synchronous-style database URL."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(async_database_url(url), **kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    """Request-scoped session, committed when the request succeeds"""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Run history transaction rolled back: {str(e)}")
            raise


async def create_tables(target: AsyncEngine) -> None:
    # Importing the models registers DriftRun and PolicyChange on the metadata
    from gpowatch.models import drift  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def create_db_and_tables():
    """Create the run history tables if they do not exist yet"""
    try:
        await create_tables(engine)
        logger.info(f"Run history tables ready in {settings.DATABASE_URL}")
    except Exception as e:
        logger.error(f"Error creating run history tables: {str(e)}")
        raise
