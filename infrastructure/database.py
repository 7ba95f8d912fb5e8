"""
Async engine and session factory

``settings.database.url`` is already normalised to an async driver.
"""
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


engine = create_async_engine(settings.database.url, echo=settings.database.echo)

# Repositories map rows to entities before commit; nothing reads models afterwards
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables():
    """Create every table from the ORM metadata (development only)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
