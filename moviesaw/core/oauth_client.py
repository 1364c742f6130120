"""OAuth HTTP client: token exchange, profile fetch, identity mapping.

Exchanges authorization codes for access tokens, fetches the provider
profile, and maps each provider's profile shape onto ExternalIdentity.
"""

import logging
from typing import Any

import httpx

from moviesaw.core.account_linking import ExternalIdentity
from moviesaw.core.oauth import get_provider_config

logger = logging.getLogger(__name__)

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0


class ProviderProfileError(Exception):
    """Provider profile lacks the fields needed to sign in."""


async def exchange_code_for_tokens(
    *,
    provider: str,
    code: str,
    code_verifier: str,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange authorization code for OAuth tokens.

    Args:
        provider: Provider name.
        code: Authorization code from callback.
        code_verifier: PKCE code verifier.
        redirect_uri: Callback URL used in initiation.

    Returns:
        Token response dict (access_token, id_token, etc.).

    Raises:
        httpx.HTTPError: If token exchange fails.
    """
    config = get_provider_config(provider)

    async with httpx.AsyncClient() as client:
        resp = await client.post(
            config.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "code_verifier": code_verifier,
            },
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


async def fetch_userinfo(
    *,
    provider: str,
    access_token: str,
) -> dict[str, Any]:
    """Fetch the user's profile from the provider.

    Args:
        provider: Provider name.
        access_token: OAuth access token.

    Returns:
        Raw profile dict in the provider's own shape.

    Raises:
        httpx.HTTPError: If the profile request fails.
    """
    config = get_provider_config(provider)

    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.userinfo_url,
            params=config.userinfo_params or None,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


def to_external_identity(provider: str, userinfo: dict[str, Any]) -> ExternalIdentity:
    """Map a provider profile onto ExternalIdentity.

    Google (OpenID Connect userinfo): sub, email, email_verified, name,
    picture. Facebook (Graph /me): id, email, name, picture.data.url.
    Facebook makes no email verification claim, so its identities never
    auto-link to an existing account.

    Args:
        provider: Provider name.
        userinfo: Raw profile dict from fetch_userinfo().

    Returns:
        ExternalIdentity for the sign-in merge.

    Raises:
        ProviderProfileError: If the subject id or email is missing.
    """
    if provider == "facebook":
        subject = userinfo.get("id")
        picture = userinfo.get("picture")
        avatar = picture.get("data", {}).get("url") if isinstance(picture, dict) else None
        verified = False
    else:
        subject = userinfo.get("sub")
        avatar = userinfo.get("picture")
        verified = userinfo.get("email_verified") is True

    email = userinfo.get("email")
    if not subject or not email:
        logger.warning(
            "Provider profile missing required fields",
            extra={
                "provider": provider,
                "has_subject": bool(subject),
                "has_email": bool(email),
            },
        )
        msg = f"{provider} profile is missing a subject id or email"
        raise ProviderProfileError(msg)

    email = str(email).strip().lower()
    return ExternalIdentity(
        provider=provider,
        subject_id=str(subject),
        email=email,
        display_name=userinfo.get("name") or email.split("@", 1)[0],
        avatar_url=avatar,
        email_verified_by_provider=verified,
    )


async def access_token_matches_client(*, provider: str, access_token: str) -> bool:
    """Check that an access token was issued to this application.

    Security: a token minted for another app by the same user must not be
    accepted as a sign-in here (token substitution).

    Args:
        provider: Provider name.
        access_token: OAuth access token presented by the client.

    Returns:
        True if the provider reports the token as issued to our client id.

    Raises:
        httpx.HTTPError: If the provider lookup fails.
    """
    config = get_provider_config(provider)

    async with httpx.AsyncClient() as client:
        if provider == "facebook":
            resp = await client.get(
                config.token_info_url,
                params={
                    "input_token": access_token,
                    "access_token": f"{config.client_id}|{config.client_secret}",
                },
                timeout=_OAUTH_HTTP_TIMEOUT,
            )
            resp.raise_for_status()
            data = resp.json().get("data") or {}
            return bool(data.get("is_valid")) and str(data.get("app_id")) == config.client_id

        resp = await client.get(
            config.token_info_url,
            params={"access_token": access_token},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        info = resp.json()
        return config.client_id in (info.get("aud"), info.get("azp"))
