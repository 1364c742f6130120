"""Revocation purge background worker.

asyncio background task started from the FastAPI lifespan. Deletes
revocation entries past their retention window on a fixed interval.
Purging is housekeeping only; revoked tokens are rejected whether or not
the purge has run.
"""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from moviesaw.services import revocation

logger = logging.getLogger(__name__)

# Default interval: 1 hour
DEFAULT_INTERVAL_SECONDS = 60 * 60


class RevocationPurgeWorker:
    """Background worker that periodically purges expired revocation entries.

    Lifecycle:
    - start() creates an asyncio task that runs the purge loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single pass (for testing).

    Args:
        session_factory: Async session factory for DB access.
        interval_seconds: Seconds between purge passes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background purge loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Revocation purge worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Revocation purge worker started (interval=%ds)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop the background purge loop.

        Cancels the task and waits for it to finish.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Revocation purge worker stopped")

    async def run_once(self) -> int:
        """Execute a single purge pass in its own transaction.

        Returns:
            Number of entries removed.
        """
        async with self._session_factory() as db:
            removed = await revocation.purge_expired(db)
            await db.commit()
        self._last_run_at = datetime.now(UTC)
        return removed

    async def _run_loop(self) -> None:
        """Background loop: purge → sleep → repeat."""
        try:
            while self._running:
                try:
                    await self.run_once()
                except Exception:  # noqa: BLE001
                    logger.exception("Error in revocation purge pass")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Revocation purge loop cancelled")
            raise
