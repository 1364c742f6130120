"""Purge revocation entries past their retention window.

Standalone script for deployments that run housekeeping from cron instead
of the in-process purge worker (REVOCATION_PURGE_ENABLED=false).

Usage:
    python -m scripts.purge_revoked_tokens
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.services import revocation

logger = logging.getLogger(__name__)


async def run_purge(db: AsyncSession) -> int:
    """Delete expired revocation entries and commit.

    Args:
        db: Async database session.

    Returns:
        Number of entries removed.
    """
    removed = await revocation.purge_expired(db)
    await db.commit()
    logger.info("Revocation purge complete: %d entries removed", removed)
    return removed


async def main() -> None:
    """CLI entry point: purge against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from moviesaw.core.config import settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        await run_purge(session)

    await engine.dispose()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
