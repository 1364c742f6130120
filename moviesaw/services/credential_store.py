"""Credential store: local account creation and password checks.

Local accounts are created unverified with a pending verification token.
Provider-backed accounts never carry a password hash, so password
verification against them is an error rather than a silent mismatch.

Login decisions are returned as LoginOutcome values. The email-verified
check is applied before the password result is revealed, and bcrypt runs
even when no account exists (DUMMY_HASH), so response timing does not
distinguish the cases.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core import auth
from moviesaw.core.errors import (
    AlreadyVerifiedError,
    DuplicateAccountError,
    UnsupportedAuthMethodError,
)
from moviesaw.models.account import Account, AuthMethod
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.services import verification

logger = logging.getLogger(__name__)


class LoginOutcome(StrEnum):
    """Result of evaluating a local login attempt."""

    ACCEPTED = "accepted"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_VERIFIED = "email_not_verified"


@dataclass(frozen=True)
class CreatedAccount:
    """A newly registered local account and its first verification token.

    Attributes:
        account: The persisted account (unverified).
        verification_token: Plain verification token to send by email.
            Only its hash is stored.
    """

    account: Account
    verification_token: str


def verify_password(account: Account, raw_password: str) -> bool:
    """Check a password against a local account.

    Args:
        account: Account to check.
        raw_password: Plain-text password attempt.

    Returns:
        True if the password matches.

    Raises:
        UnsupportedAuthMethodError: If the account is provider-backed.
    """
    if account.auth_method != AuthMethod.LOCAL.value:
        msg = f"Password verification is not supported for {account.auth_method} accounts"
        raise UnsupportedAuthMethodError(msg)
    return auth.verify_password(raw_password, account.password_hash)


async def find_by_email_and_method(
    db: AsyncSession, email: str, method: AuthMethod
) -> Account | None:
    """Look up an account by email under one auth method."""
    return await AccountRepository.get_by_email_and_method(db, email, method)


async def create_local_account(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    raw_password: str,
) -> CreatedAccount:
    """Register a new local account.

    The password is hashed off the event loop. The insert is conflict-safe:
    of two concurrent registrations for one email, exactly one succeeds.

    Args:
        db: Async database session.
        name: Display name.
        email: Email address (normalized to lowercase).
        raw_password: Plain-text password (already strength-checked).

    Returns:
        CreatedAccount with the unverified account and its verification token.

    Raises:
        DuplicateAccountError: If a local account already holds the email.
    """
    email = email.strip().lower()
    if await AccountRepository.get_by_email_and_method(db, email, AuthMethod.LOCAL):
        raise DuplicateAccountError()

    password_hash = await asyncio.to_thread(auth.hash_password, raw_password)
    pending = verification.new_pending_token()

    account = await AccountRepository.insert_local_if_absent(
        db,
        name=name,
        email=email,
        password_hash=password_hash,
        verification_token_hash=pending.token_hash,
        verification_expires_at=pending.expires_at,
    )
    if account is None:
        raise DuplicateAccountError()

    logger.info("Local account created", extra={"account_id": str(account.id)})
    return CreatedAccount(account=account, verification_token=pending.token)


async def evaluate_login(account: Account | None, raw_password: str) -> LoginOutcome:
    """Decide a local login attempt.

    Args:
        account: Local account found for the email, or None.
        raw_password: Plain-text password attempt.

    Returns:
        EMAIL_NOT_VERIFIED if the account exists but is unverified (whatever
        the password), INVALID_CREDENTIALS if the account is missing or the
        password is wrong, ACCEPTED otherwise.
    """
    if account is None:
        # Timing parity with a real check
        await asyncio.to_thread(auth.verify_password, raw_password, None)
        return LoginOutcome.INVALID_CREDENTIALS

    password_ok = await asyncio.to_thread(verify_password, account, raw_password)

    if not account.email_verified:
        return LoginOutcome.EMAIL_NOT_VERIFIED
    if not password_ok:
        return LoginOutcome.INVALID_CREDENTIALS
    return LoginOutcome.ACCEPTED


@dataclass(frozen=True)
class Registration:
    """Outcome of a registration request.

    Attributes:
        account: The local account for the email.
        verification_token: Fresh plain verification token to email.
        created: False when an unverified account already existed and only
            its verification token was replaced.
    """

    account: Account
    verification_token: str
    created: bool


async def register(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    raw_password: str,
    notify: verification.VerificationNotify | None = None,
) -> Registration:
    """Register a local account, or re-send verification for a pending one.

    An existing unverified local account keeps its original password; only
    its verification token is replaced and re-sent, so registering cannot be
    used to take over a pending account.

    Args:
        db: Async database session.
        name: Display name.
        email: Email address.
        raw_password: Plain-text password (already strength-checked).
        notify: Verification dispatch callback, called with (email, token).

    Returns:
        Registration describing what happened.

    Raises:
        DuplicateAccountError: If a verified local account holds the email.
    """
    existing = await AccountRepository.get_by_email_and_method(
        db, email, AuthMethod.LOCAL
    )
    if existing is not None:
        if existing.email_verified:
            raise DuplicateAccountError()
        try:
            token = await verification.request_verification(db, existing, notify)
        except AlreadyVerifiedError as exc:
            # Verified between the lookup and the token write
            raise DuplicateAccountError() from exc
        logger.info(
            "Registration re-sent verification",
            extra={"account_id": str(existing.id)},
        )
        return Registration(account=existing, verification_token=token, created=False)

    created = await create_local_account(
        db, name=name, email=email, raw_password=raw_password
    )
    if notify is not None:
        notify(created.account.email, created.verification_token)
    return Registration(
        account=created.account,
        verification_token=created.verification_token,
        created=True,
    )
