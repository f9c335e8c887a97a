# database.py - Async engine setup for the shared CRM table
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine; pool tuning only applies to server databases"""
    url = make_url(settings.database_url)
    options = {
        "echo": settings.sql_echo,
        "future": True,
        "pool_pre_ping": True,
    }
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_size=20,
            max_overflow=0,
            pool_recycle=3600,
        )
    return create_async_engine(url, **options)


async def init_db(engine: AsyncEngine, metadata) -> None:
    """Create the item tables if they do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connection pool"""
    await engine.dispose()
