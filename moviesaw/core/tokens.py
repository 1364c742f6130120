"""Session token issuance and decoding.

Tokens are HS256 JWTs bound to an account id with an absolute expiry.
Decoding is stateless (signature + claims only); callers must still consult
the revocation registry and the session membership list before trusting a
token. See ``moviesaw.core.session_gate``.

Tokens are also fingerprinted (SHA-256) before they are persisted anywhere,
so a database leak does not expose usable bearer credentials.
"""

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from moviesaw.core.config import settings
from moviesaw.core.errors import InvalidSignatureError, TokenExpiredError

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted session token.

    Attributes:
        token: Encoded JWT string (bearer credential).
        account_id: Account the token is bound to.
        expires_at: Absolute expiry (UTC, whole seconds).
    """

    token: str
    account_id: uuid.UUID
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims extracted from a session token."""

    account_id: uuid.UUID
    expires_at: datetime


def _secret() -> str:
    return settings.auth_secret.get_secret_value()


def issue(account_id: uuid.UUID, ttl: timedelta | None = None) -> IssuedToken:
    """Mint a signed session token for an account.

    Args:
        account_id: Account UUID for the sub claim.
        ttl: Time until expiration. Defaults to AUTH_TOKEN_TTL_SECONDS.

    Returns:
        IssuedToken with the encoded JWT and its expiry.
    """
    # PyJWT encodes exp/iat as integer seconds
    now = datetime.now(UTC).replace(microsecond=0)
    expires_at = now + (ttl or timedelta(seconds=settings.auth_token_ttl_seconds))
    payload = {
        "sub": str(account_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": expires_at,
        "iat": now,
        # Two tokens minted in the same second must still differ
        "jti": secrets.token_urlsafe(16),
    }
    token = jwt.encode(payload, _secret(), algorithm=_ALGORITHM)
    return IssuedToken(token=token, account_id=account_id, expires_at=expires_at)


def decode(token: str) -> TokenClaims:
    """Verify a session token and return its claims.

    Args:
        token: Encoded JWT string.

    Returns:
        TokenClaims with the account id and expiry.

    Raises:
        TokenExpiredError: Signature valid but exp has passed.
        InvalidSignatureError: Any other verification failure (bad signature,
            malformed token, wrong audience/issuer, missing or non-UUID sub).
    """
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[_ALGORITHM],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidSignatureError("Token failed verification") from exc

    try:
        account_id = uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidSignatureError("Token subject is not an account id") from exc

    return TokenClaims(
        account_id=account_id,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
    )


def fingerprint(token: str) -> str:
    """SHA-256 hex digest of a token, used as its storage key."""
    return hashlib.sha256(token.encode()).hexdigest()
