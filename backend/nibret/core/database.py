"""
Database engine, sessions and the write helper shared by the services.

Every service write is a single-entity commit; nothing here opens a
transaction that spans entities.
"""

import logging
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from nibret.core.config import settings
from nibret.core.errors import StorageError

logger = logging.getLogger(__name__)

# Convert postgresql:// to postgresql+asyncpg:// only if not already async
raw_dsn = str(settings.DATABASE_URL)
DATABASE_URL = (
    raw_dsn
    if raw_dsn.startswith("postgresql+asyncpg://")
    else raw_dsn.replace("postgresql://", "postgresql+asyncpg://")
)

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    poolclass=NullPool if settings.ENVIRONMENT == "test" else None,
    pool_pre_ping=True,
)

# expire_on_commit=False: services return refreshed rows after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolled back when the handler raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def commit_or_raise(db: AsyncSession, resource: str, instance: Optional[Any] = None) -> None:
    """
    Commit ``db`` and refresh ``instance``.

    A storage failure is rolled back and re-raised as StorageError naming
    ``resource``, so primary-path writes fail loudly but cleanly.
    """
    try:
        await db.commit()
        if instance is not None:
            await db.refresh(instance)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("%s write failed: %s", resource.capitalize(), exc)
        raise StorageError(f"Failed to save {resource}") from exc


async def init_db():
    """Create all tables (development convenience; production uses Alembic)."""
    import nibret.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
