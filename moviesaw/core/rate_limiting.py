"""Rate limiting configuration using slowapi.

Security: Slows down credential stuffing and verification-token guessing
on the auth endpoints.

Requests carrying a valid session token are keyed per account so users
behind a shared IP do not throttle each other. Unauthenticated requests
fall back to IP-based keying.

Storage is pluggable through RATE_LIMIT_STORAGE_URI ("memory://" for one
process, "redis://..." when several workers must share counters).

Usage in routers:
    from moviesaw.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit("10/15minute")
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from moviesaw.core import tokens
from moviesaw.core.config import settings
from moviesaw.core.errors import TokenError


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session token (cookie or bearer): "account:{id}"
    - No/invalid token: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Note: No revocation or membership check here. Rate limiting only needs
    # the subject for keying; the auth gate does full validation.
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer":
            token = credentials.strip()
    if token:
        try:
            return f"account:{tokens.decode(token).account_id}"
        except TokenError:
            pass

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
    storage_uri=settings.rate_limit_storage_uri,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
