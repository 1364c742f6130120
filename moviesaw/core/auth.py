"""Password hashing, password rules, and session cookie helpers.

Shared utilities used by the credential store and auth endpoints.

Pipeline:
- hash_password / verify_password: bcrypt (sync, CPU-bound)
- validate_password_strength: Format rules (sync, no network)
- check_password_breached: HIBP k-anonymity check (async, network)
- set_auth_cookie / clear_auth_cookie: httpOnly session cookie
- DUMMY_HASH: Timing-safe constant for account enumeration defense
"""

import hashlib
import logging
from datetime import UTC, datetime

import bcrypt
import httpx
from fastapi import Response

from moviesaw.core.config import settings
from moviesaw.core.errors import ValidationError

logger = logging.getLogger(__name__)

# HIBP API timeout in seconds
_HIBP_TIMEOUT = 5.0

# bcrypt only reads the first 72 bytes; longer inputs are rejected outright
_BCRYPT_MAX_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on account-not-found.
# Security: prevents account enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def hash_password(password: str) -> str:
    """Hash a plain-text password with bcrypt.

    Args:
        password: Plain-text password (already validated).

    Returns:
        bcrypt hash as a UTF-8 string.
    """
    salt = bcrypt.gensalt(rounds=settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str | bytes | None) -> bool:
    """Check a plain-text password against a bcrypt hash.

    A missing hash is compared against DUMMY_HASH so the call costs the same
    whether or not a real hash exists, and always fails.

    Args:
        password: Plain-text password attempt.
        password_hash: Stored bcrypt hash, or None.

    Returns:
        True only if a real hash exists and matches.
    """
    encoded = password.encode()
    if len(encoded) > _BCRYPT_MAX_BYTES:
        return False
    if password_hash is None:
        bcrypt.checkpw(encoded, DUMMY_HASH)
        return False
    if isinstance(password_hash, str):
        password_hash = password_hash.encode()
    try:
        return bcrypt.checkpw(encoded, password_hash)
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def validate_password_strength(password: str) -> None:
    """Validate password meets length requirements.

    Minimum length comes from PASSWORD_MIN_LENGTH. The upper bound is
    bcrypt's 72-byte input limit.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < settings.password_min_length:
        raise ValidationError(
            f"Password must be at least {settings.password_min_length} characters"
        )
    if len(password.encode()) > _BCRYPT_MAX_BYTES:
        raise ValidationError(
            f"Password must be at most {_BCRYPT_MAX_BYTES} bytes"
        )


async def _fetch_hibp_range(prefix: str) -> str | None:
    """Fetch HIBP range response for a SHA-1 prefix.

    Uses k-anonymity: only the first 5 chars of the SHA-1 hash are sent.
    The API returns all suffixes matching that prefix, and we check locally.

    Args:
        prefix: First 5 chars of SHA-1 hex digest (uppercase).

    Returns:
        Response text or None on error.
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"https://api.pwnedpasswords.com/range/{prefix}",
                headers={"Add-Padding": "true"},
                timeout=_HIBP_TIMEOUT,
            )
            response.raise_for_status()
            return response.text
    except httpx.HTTPError:
        logger.warning("HIBP API request failed")
        return None


async def check_password_breached(password: str) -> bool:
    """Check if password appears in HIBP breach database.

    Only the first 5 characters of the SHA-1 hash are sent to HIBP. The full
    hash never leaves the server.

    Fails open: if HIBP is unavailable, allows the password. This prevents
    HIBP outages from blocking registration.

    Args:
        password: Plain-text password to check.

    Returns:
        True if password found in breach database, False otherwise.
    """
    if not settings.password_breach_check_enabled:
        return False

    sha1 = hashlib.sha1(password.encode()).hexdigest().upper()  # nosec B324
    prefix = sha1[:5]
    suffix = sha1[5:]

    text = await _fetch_hibp_range(prefix)
    if text is None:
        return False

    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) == 2 and parts[0] == suffix:
            return True

    return False


def set_auth_cookie(response: Response, token: str, expires_at: datetime) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security. The
    cookie lifetime never exceeds the token's own expiry.

    Args:
        response: FastAPI response object.
        token: Session token string.
        expires_at: The token's absolute expiry.
    """
    max_age = max(0, int((expires_at - datetime.now(UTC)).total_seconds()))
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=max_age,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the session cookie with the attributes it was set with."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        domain=settings.auth_cookie_domain or None,
    )
