"""
Database engine, session factory and declarative base.

The directory collections live in a single document table, so the engine
is only ever used through async sessions.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backoffice.fastapi.core.init_settings import global_settings


class Base(DeclarativeBase):
    pass


engine: AsyncEngine = create_async_engine(global_settings.ASYNC_DB_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create every table registered on ``Base.metadata``."""
    # Import models so they are registered with Base.metadata
    from backoffice.fastapi.models.document import Document  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
