"""Email verification workflow for local accounts.

Each unverified local account holds at most one pending token (stored as a
SHA-256 hash with an expiry). Requesting a new token overwrites the old one.
Confirmation is a single conditional UPDATE, so a token is consumed at most
once and a replaced token can never succeed.
"""

import hashlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.config import settings
from moviesaw.core.errors import (
    AlreadyVerifiedError,
    InvalidVerificationTokenError,
    UnsupportedAuthMethodError,
)
from moviesaw.models.account import Account, AuthMethod
from moviesaw.repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)

# 32 random bytes, URL-safe
_TOKEN_BYTES = 32

# (email, plain token) -> None
VerificationNotify = Callable[[str, str], None]


@dataclass(frozen=True)
class PendingToken:
    """A generated verification token and what gets stored for it."""

    token: str
    token_hash: str
    expires_at: datetime


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def new_pending_token() -> PendingToken:
    """Generate a fresh verification token with its hash and expiry."""
    token = secrets.token_urlsafe(_TOKEN_BYTES)
    return PendingToken(
        token=token,
        token_hash=_hash_token(token),
        expires_at=datetime.now(UTC)
        + timedelta(hours=settings.verification_token_ttl_hours),
    )


async def request_verification(
    db: AsyncSession,
    account: Account,
    notify: VerificationNotify | None = None,
) -> str:
    """Issue a new verification token for an account, replacing any prior one.

    Args:
        db: Async database session.
        account: Local account awaiting verification.
        notify: Called with (email, token) to dispatch the token. Routes pass
            a callback that schedules the email as a background task, so it
            is only sent once the response (and its commit) has completed.

    Returns:
        Plain verification token.

    Raises:
        UnsupportedAuthMethodError: If the account is provider-backed.
        AlreadyVerifiedError: If the account is already verified.
    """
    if account.auth_method != AuthMethod.LOCAL.value:
        msg = "Email verification only applies to local accounts"
        raise UnsupportedAuthMethodError(msg)

    pending = new_pending_token()
    stored = await AccountRepository.replace_verification_token(
        db,
        account.id,
        token_hash=pending.token_hash,
        expires_at=pending.expires_at,
    )
    if not stored:
        raise AlreadyVerifiedError()

    logger.info(
        "Verification token issued", extra={"account_id": str(account.id)}
    )
    if notify is not None:
        notify(account.email, pending.token)
    return pending.token


async def confirm_verification(db: AsyncSession, email: str, token: str) -> Account:
    """Mark a local account verified if the token is its current one.

    Args:
        db: Async database session.
        email: Email of the local account.
        token: Plain verification token from the link.

    Returns:
        The now-verified Account.

    Raises:
        AlreadyVerifiedError: If the account was already verified.
        InvalidVerificationTokenError: If the token is unknown, replaced,
            or expired, or no local account exists for the email.
    """
    account_id = await AccountRepository.consume_verification_token(
        db,
        email=email,
        token_hash=_hash_token(token),
        now=datetime.now(UTC),
    )
    if account_id is not None:
        account = await AccountRepository.get_by_id(db, account_id)
        if account is not None:
            logger.info("Email verified", extra={"account_id": str(account.id)})
            return account

    existing = await AccountRepository.get_by_email_and_method(
        db, email, AuthMethod.LOCAL
    )
    if existing is not None and existing.email_verified:
        raise AlreadyVerifiedError()
    raise InvalidVerificationTokenError()
