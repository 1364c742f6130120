"""Repository for RevokedToken operations."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.database import dialect_insert
from moviesaw.models.revoked_token import RevokedToken


class RevokedTokenRepository:
    """Stateless repository for RevokedToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def insert_if_absent(
        db: AsyncSession,
        *,
        token_hash: str,
        expires_at: datetime,
    ) -> bool:
        """Record a revoked token. Re-revoking is a no-op.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the token.
            expires_at: The token's own expiry.

        Returns:
            True if a new entry was written, False if it already existed.
        """
        stmt = (
            dialect_insert(db, RevokedToken)
            .values(token_hash=token_hash, expires_at=expires_at)
            .on_conflict_do_nothing(index_elements=["token_hash"])
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def exists(db: AsyncSession, token_hash: str) -> bool:
        """Check whether a token hash is in the registry."""
        found = await db.scalar(
            select(RevokedToken.token_hash).where(
                RevokedToken.token_hash == token_hash
            )
        )
        return found is not None

    @staticmethod
    async def delete_expired_before(db: AsyncSession, cutoff: datetime) -> int:
        """Delete entries whose token expired before the cutoff.

        Args:
            db: Async database session.
            cutoff: Entries with expires_at strictly before this are removed.

        Returns:
            Number of entries deleted.
        """
        result = await db.execute(
            delete(RevokedToken)
            .where(RevokedToken.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]
