import asyncio
import logging
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ytrelay.core.config import settings
from ytrelay.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create a SQLAlchemy async engine, defaulting to the configured database."""

    return create_async_engine(database_url or settings.database_url, echo=False, pool_pre_ping=True)


engine = create_engine()
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(db_engine: AsyncEngine) -> None:
    """Create the subscription tables if they are missing."""

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready", extra={"tables": sorted(Base.metadata.tables)})


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields a database session."""

    async with SessionLocal() as session:
        yield session


if __name__ == "__main__":
    asyncio.run(create_tables(engine))
