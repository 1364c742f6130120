"""Session membership: the bounded, ordered list of an account's live tokens.

Admitting a token appends its fingerprint and trims the list to SESSION_CAP
from the oldest end. Each write is a compare-and-swap on the account's
session_version, retried on contention, so concurrent logins never lose an
entry or leave the list longer than the cap.
"""

import logging
import uuid
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core import tokens
from moviesaw.core.config import settings
from moviesaw.core.errors import ConflictError, NotFoundError
from moviesaw.repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)

# Compare-and-swap attempts before giving up on a contended account
_MAX_SWAP_ATTEMPTS = 5


class SessionContentionError(ConflictError):
    """Membership update kept losing to concurrent writers (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="SESSION_UPDATE_CONFLICT",
            message="Too many concurrent sign-ins. Please try again.",
        )


async def _swap(
    db: AsyncSession,
    account_id: uuid.UUID,
    change: Callable[[list[str]], list[str]],
) -> tuple[list[str], list[str]]:
    """Apply change(list) -> list under compare-and-swap.

    Returns:
        (previous list, stored list).
    """
    for _ in range(_MAX_SWAP_ATTEMPTS):
        state = await AccountRepository.get_session_state(db, account_id)
        if state is None:
            raise NotFoundError("Account", str(account_id))
        current, version = state
        updated = change(current)
        if updated == current:
            return current, current
        if await AccountRepository.swap_session_tokens(
            db, account_id, expected_version=version, session_tokens=updated
        ):
            return current, updated
    logger.warning(
        "Session membership update contended",
        extra={"account_id": str(account_id)},
    )
    raise SessionContentionError()


async def admit(db: AsyncSession, account_id: uuid.UUID, token: str) -> list[str]:
    """Add a token as the newest live session, evicting the oldest over the cap.

    Args:
        db: Async database session.
        account_id: Account the token belongs to.
        token: Encoded session token.

    Returns:
        Fingerprints evicted by this admission (oldest first).

    Raises:
        NotFoundError: If the account does not exist.
        SessionContentionError: If the update kept losing to other writers.
    """
    fp = tokens.fingerprint(token)
    cap = settings.session_cap

    def push(current: list[str]) -> list[str]:
        kept = [existing for existing in current if existing != fp]
        kept.append(fp)
        return kept[-cap:]

    previous, stored = await _swap(db, account_id, push)
    evicted = [existing for existing in previous if existing not in stored]
    if evicted:
        logger.info(
            "Session superseded by newer sign-in",
            extra={"account_id": str(account_id), "evicted": len(evicted)},
        )
    return evicted


async def is_member(db: AsyncSession, account_id: uuid.UUID, token: str) -> bool:
    """Check whether a token is in the account's live session list."""
    state = await AccountRepository.get_session_state(db, account_id)
    if state is None:
        return False
    return tokens.fingerprint(token) in state[0]


async def remove(db: AsyncSession, account_id: uuid.UUID, token: str) -> None:
    """Drop a token from the live session list. Absent tokens are a no-op.

    Args:
        db: Async database session.
        account_id: Account the token belongs to.
        token: Encoded session token.
    """
    fp = tokens.fingerprint(token)
    try:
        await _swap(db, account_id, lambda current: [t for t in current if t != fp])
    except NotFoundError:
        logger.debug(
            "Session removal for missing account", extra={"account_id": str(account_id)}
        )


async def list_members(db: AsyncSession, account_id: uuid.UUID) -> list[str]:
    """Return the live session fingerprints for an account, oldest first."""
    state = await AccountRepository.get_session_state(db, account_id)
    return state[0] if state is not None else []
