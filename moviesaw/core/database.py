"""Async database engine and session management.

Configures the SQLAlchemy async engine and provides dependency injection
for database sessions. Conflict-ignoring inserts are dialect specific, so
``dialect_insert`` picks the PostgreSQL or SQLite construct for the bound
engine.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from moviesaw.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def dialect_insert(db: AsyncSession, table: Any) -> Any:
    """Build an INSERT that supports ``on_conflict_do_nothing`` for this dialect.

    Args:
        db: Async session bound to the target engine.
        table: ORM model or Table to insert into.

    Returns:
        A PostgreSQL or SQLite Insert construct.

    Raises:
        NotImplementedError: If the bound dialect has no conflict clause support.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    msg = f"Conflict-ignoring insert is not supported for dialect: {dialect}"
    raise NotImplementedError(msg)


async def create_all(bind: AsyncEngine) -> None:
    """Create all tables for the registered models (idempotent)."""
    from moviesaw.models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
