"""Authentication gate: decide whether a request's session token is live.

Checks run in a fixed order and stop at the first failure:
1. Extract token (cookie first, then Authorization: Bearer) → NO_TOKEN
2. Revocation registry → REVOKED
3. Signature and claims → INVALID_SIGNATURE / EXPIRED
4. Account lookup → ACCOUNT_NOT_FOUND
5. Session membership → SESSION_SUPERSEDED

Rejection variants are for logs and tests only. Clients always receive the
same 401 body (see moviesaw.api.deps).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from moviesaw.core import tokens
from moviesaw.core.config import settings
from moviesaw.core.errors import InvalidSignatureError, TokenExpiredError
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.services import revocation, session_membership


class GateRejection(StrEnum):
    """Why a request was not authenticated."""

    NO_TOKEN = "no_token"
    REVOKED = "revoked"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    ACCOUNT_NOT_FOUND = "account_not_found"
    SESSION_SUPERSEDED = "session_superseded"


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to an authenticated request.

    Attributes:
        account_id: Authenticated account.
        token: The session token that authenticated the request.
        expires_at: The token's expiry.
    """

    account_id: uuid.UUID
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class GateResult:
    """Terminal gate decision: exactly one of context or rejection is set."""

    context: AuthContext | None = None
    rejection: GateRejection | None = None

    @property
    def accepted(self) -> bool:
        return self.context is not None


def extract_token(connection: HTTPConnection) -> str | None:
    """Read the session token from the cookie, else the bearer header.

    Args:
        connection: Incoming request.

    Returns:
        Token string, or None if neither source carries one.
    """
    token = connection.cookies.get(settings.auth_cookie_name)
    if token:
        return token

    scheme, _, credentials = connection.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def authenticate(db: AsyncSession, token: str | None) -> GateResult:
    """Run the gate checks for a presented token.

    Args:
        db: Async database session.
        token: Token from extract_token(), or None.

    Returns:
        GateResult with an AuthContext on acceptance, otherwise the first
        failing rejection variant.
    """
    if not token:
        return GateResult(rejection=GateRejection.NO_TOKEN)

    if await revocation.is_revoked(db, token):
        return GateResult(rejection=GateRejection.REVOKED)

    try:
        claims = tokens.decode(token)
    except TokenExpiredError:
        return GateResult(rejection=GateRejection.EXPIRED)
    except InvalidSignatureError:
        return GateResult(rejection=GateRejection.INVALID_SIGNATURE)

    account = await AccountRepository.get_by_id(db, claims.account_id)
    if account is None:
        return GateResult(rejection=GateRejection.ACCOUNT_NOT_FOUND)

    if not await session_membership.is_member(db, account.id, token):
        return GateResult(rejection=GateRejection.SESSION_SUPERSEDED)

    return GateResult(
        context=AuthContext(
            account_id=account.id,
            token=token,
            expires_at=claims.expires_at,
        )
    )
