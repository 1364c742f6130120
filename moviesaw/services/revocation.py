"""Revocation registry: explicitly invalidated session tokens.

Tokens are stored by fingerprint with their own expiry. An entry is kept
until the token has been expired for the retention window, so a revoked
token is always rejected for its whole natural lifetime.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core import tokens
from moviesaw.core.config import settings
from moviesaw.repositories.revoked_token_repository import RevokedTokenRepository

logger = logging.getLogger(__name__)


async def revoke(db: AsyncSession, token: str, expires_at: datetime) -> None:
    """Add a token to the registry. Revoking twice is a no-op.

    Args:
        db: Async database session.
        token: Encoded session token.
        expires_at: The token's own expiry.
    """
    created = await RevokedTokenRepository.insert_if_absent(
        db, token_hash=tokens.fingerprint(token), expires_at=expires_at
    )
    if created:
        logger.info("Session token revoked")


async def is_revoked(db: AsyncSession, token: str) -> bool:
    """Check whether a token has been revoked."""
    return await RevokedTokenRepository.exists(db, tokens.fingerprint(token))


async def purge_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Delete entries whose token expired more than the retention window ago.

    Args:
        db: Async database session.
        now: Reference time (defaults to the current time).

    Returns:
        Number of entries removed.
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=settings.revocation_retention_days)
    removed = await RevokedTokenRepository.delete_expired_before(db, cutoff)
    if removed:
        logger.info("Purged revoked tokens", extra={"removed": removed})
    return removed
