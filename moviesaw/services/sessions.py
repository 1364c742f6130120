"""Session lifecycle: sign-in and sign-out.

start_session() issues a token and admits it into the account's membership
list (possibly evicting the oldest session). end_session() revokes a token
and drops it from the list. Both are safe to retry.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core import tokens
from moviesaw.core.errors import TokenExpiredError
from moviesaw.core.tokens import IssuedToken
from moviesaw.models.account import Account
from moviesaw.services import revocation, session_membership

logger = logging.getLogger(__name__)


async def start_session(db: AsyncSession, account: Account) -> IssuedToken:
    """Issue a session token for an authenticated account and admit it.

    Args:
        db: Async database session.
        account: Account that just authenticated.

    Returns:
        IssuedToken for the new session.
    """
    issued = tokens.issue(account.id)
    await session_membership.admit(db, account.id, issued.token)
    logger.info(
        "Session started",
        extra={"account_id": str(account.id), "auth_method": account.auth_method},
    )
    return issued


async def end_session(db: AsyncSession, token: str) -> None:
    """Revoke a session token and remove it from membership.

    Idempotent: ending an already-ended session is a no-op. Expired tokens
    need no write since expiry already rejects them.

    Args:
        db: Async database session.
        token: Encoded session token.

    Raises:
        InvalidSignatureError: If the token was not issued by this service.
    """
    try:
        claims = tokens.decode(token)
    except TokenExpiredError:
        logger.debug("Sign-out with expired token")
        return

    await revocation.revoke(db, token, claims.expires_at)
    await session_membership.remove(db, claims.account_id, token)
    logger.info("Session ended", extra={"account_id": str(claims.account_id)})
