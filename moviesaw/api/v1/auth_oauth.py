"""Provider sign-in endpoints.

Browser flow: OAuth authorization code with PKCE for Google and Facebook
(initiation + callback). Native/SPA flow: POST a provider access token
directly. Both resolve the identity through the sign-in merge and start a
session exactly like a password login.
"""

import logging
import secrets
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from moviesaw.api.deps import DbSession
from moviesaw.api.v1.auth import account_to_response
from moviesaw.core.account_linking import ExternalIdentity, sign_in_with_provider
from moviesaw.core.auth import set_auth_cookie
from moviesaw.core.config import settings
from moviesaw.core.errors import UnauthorizedError, ValidationError
from moviesaw.core.oauth import (
    STATE_COOKIE_NAME,
    OAuthProviderConfig,
    create_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    get_provider_config,
    read_state_cookie,
)
from moviesaw.core.oauth_client import (
    ProviderProfileError,
    access_token_matches_client,
    exchange_code_for_tokens,
    fetch_userinfo,
    to_external_identity,
)
from moviesaw.core.rate_limiting import limiter
from moviesaw.core.responses import DataResponse
from moviesaw.services import sessions

logger = logging.getLogger(__name__)

router = APIRouter()

# State cookie is only sent back to the callback route
_STATE_COOKIE_PATH = "/api/v1/auth/callback"
_STATE_COOKIE_MAX_AGE = 600


class ProviderTokenRequest(BaseModel):
    """Request body for POST /auth/providers/{provider}/token."""

    model_config = ConfigDict(extra="forbid")

    access_token: str = Field(min_length=1, max_length=4096)


def _configured_provider(provider: str) -> OAuthProviderConfig:
    """Resolve a provider name to a usable configuration.

    Raises:
        ValidationError: If the provider is unknown or has no credentials.
    """
    try:
        config = get_provider_config(provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if not config.is_configured:
        raise ValidationError(f"OAuth provider {provider} is not configured")
    return config


def _get_api_callback_url(request: Request, provider: str) -> str:
    """Build the OAuth callback URL from the request's base URL."""
    base = str(request.base_url).rstrip("/")
    return f"{base}/api/v1/auth/callback/{provider}"


async def _identity_from_access_token(
    provider: str, access_token: str
) -> ExternalIdentity:
    """Fetch and map the provider profile behind an access token.

    Raises:
        UnauthorizedError: If the provider rejects the token.
        ValidationError: If the profile lacks an id or email.
    """
    try:
        userinfo = await fetch_userinfo(provider=provider, access_token=access_token)
    except httpx.HTTPError:
        logger.warning("Provider userinfo fetch failed", extra={"provider": provider})
        raise UnauthorizedError("Provider sign-in failed") from None

    try:
        return to_external_identity(provider, userinfo)
    except ProviderProfileError as exc:
        raise ValidationError(
            "Sign-in provider did not return an email address"
        ) from exc


# ===================================================================
# GET /auth/providers/{provider} - OAuth Initiation
# ===================================================================


@router.get("/providers/{provider}")
@limiter.limit("10/hour")
async def oauth_initiate(
    provider: str,
    request: Request,
) -> Response:
    """Redirect to the provider's authorization URL.

    Generates PKCE code verifier + challenge and a state parameter for CSRF
    protection, stores both in a signed cookie, and redirects.

    Rate limit: 10 per hour per IP.
    """
    config = _configured_provider(provider)

    code_verifier = generate_code_verifier()
    state = secrets.token_urlsafe(32)
    state_cookie = create_state_cookie(
        provider=provider, state=state, code_verifier=code_verifier
    )

    params = {
        "client_id": config.client_id,
        "redirect_uri": _get_api_callback_url(request, provider),
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": generate_code_challenge(code_verifier),
        "code_challenge_method": "S256",
    }
    if provider == "google":
        params["prompt"] = "select_account"

    redirect = RedirectResponse(
        url=f"{config.authorization_url}?{urlencode(params)}", status_code=307
    )
    redirect.set_cookie(
        key=STATE_COOKIE_NAME,
        value=state_cookie,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=_STATE_COOKIE_MAX_AGE,
        path=_STATE_COOKIE_PATH,
    )
    return redirect


# ===================================================================
# GET /auth/callback/{provider} - OAuth Callback
# ===================================================================


@router.get("/callback/{provider}")
@limiter.limit("20/hour")
async def oauth_callback(
    provider: str,
    request: Request,
    db: DbSession,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Handle the provider callback after user consent.

    Validates state, exchanges code for tokens, fetches the profile, runs the
    sign-in merge, starts a session, and redirects to the frontend with the
    session cookie set.
    """
    if not code:
        raise ValidationError("Missing authorization code")
    if not state:
        raise ValidationError("Missing state parameter")

    _configured_provider(provider)

    state_cookie = request.cookies.get(STATE_COOKIE_NAME)
    if not state_cookie:
        raise ValidationError("Missing OAuth state cookie")

    code_verifier = read_state_cookie(
        cookie_value=state_cookie, provider=provider, expected_state=state
    )
    if not code_verifier:
        raise ValidationError("Invalid or expired OAuth state")

    try:
        provider_tokens = await exchange_code_for_tokens(
            provider=provider,
            code=code,
            code_verifier=code_verifier,
            redirect_uri=_get_api_callback_url(request, provider),
        )
    except httpx.HTTPError:
        logger.warning("OAuth token exchange failed", extra={"provider": provider})
        raise ValidationError("OAuth authentication failed") from None

    access_token = provider_tokens.get("access_token")
    if not access_token:
        raise ValidationError("OAuth provider did not return access token")

    identity = await _identity_from_access_token(provider, access_token)
    account, _created = await sign_in_with_provider(db, identity)
    issued = await sessions.start_session(db, account)
    await db.commit()

    redirect = RedirectResponse(url=settings.frontend_url, status_code=307)
    set_auth_cookie(redirect, issued.token, issued.expires_at)
    redirect.delete_cookie(key=STATE_COOKIE_NAME, path=_STATE_COOKIE_PATH)
    return redirect


# ===================================================================
# POST /auth/providers/{provider}/token - Access token sign-in
# ===================================================================


@router.post("/providers/{provider}/token")
@limiter.limit("20/15minute")
async def provider_token_sign_in(
    provider: str,
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ProviderTokenRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Sign in with an access token obtained by a native or SPA client.

    The token must have been issued to this application's client id.

    Rate limit: 20 per 15 minutes per IP.
    """
    _configured_provider(provider)

    try:
        issued_to_us = await access_token_matches_client(
            provider=provider, access_token=body.access_token
        )
    except httpx.HTTPError:
        logger.warning("Provider token lookup failed", extra={"provider": provider})
        raise UnauthorizedError("Provider sign-in failed") from None
    if not issued_to_us:
        logger.warning(
            "Provider token issued to another client", extra={"provider": provider}
        )
        raise UnauthorizedError("Provider sign-in failed")

    identity = await _identity_from_access_token(provider, body.access_token)
    account, created = await sign_in_with_provider(db, identity)
    issued = await sessions.start_session(db, account)
    await db.commit()

    if created:
        response.status_code = 201

    set_auth_cookie(response, issued.token, issued.expires_at)
    return DataResponse(
        data={
            "token": issued.token,
            "token_type": "bearer",
            "expires_at": issued.expires_at.isoformat(),
            "created": created,
            "account": account_to_response(account),
        }
    )
