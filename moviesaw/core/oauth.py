"""OAuth utilities: PKCE, state cookies, and provider configuration.

PKCE code verifier/challenge generation, state parameter management via
signed JWT cookies bound to the provider, and endpoint configuration for
the Google and Facebook sign-in providers.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import jwt

from moviesaw.core.config import settings

# token_urlsafe(96) yields 128 characters, the RFC 7636 maximum
_VERIFIER_BYTES = 96

# OAuth state cookie lifetime
_STATE_TTL = timedelta(minutes=10)

# Audience for state cookies, so they can never pass as session tokens
_STATE_AUDIENCE = "moviesaw-oauth-state"

STATE_COOKIE_NAME = "moviesaw.oauth-state"


def generate_code_verifier() -> str:
    """Generate a 128-character PKCE code verifier (RFC 7636 §4.1)."""
    return secrets.token_urlsafe(_VERIFIER_BYTES)


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 code challenge: BASE64URL(SHA256(verifier)), unpadded."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_state_cookie(*, provider: str, state: str, code_verifier: str) -> str:
    """Sign the OAuth state and PKCE verifier for the round trip.

    Stored as a cookie between the initiation redirect and callback. The
    provider is part of the payload so a state minted for one provider is
    rejected by another provider's callback.

    Args:
        provider: Provider name.
        state: Random state parameter for CSRF protection.
        code_verifier: PKCE code verifier to use in token exchange.

    Returns:
        Signed JWT string.
    """
    payload = {
        "aud": _STATE_AUDIENCE,
        "provider": provider,
        "state": state,
        "code_verifier": code_verifier,
        "exp": datetime.now(UTC) + _STATE_TTL,
    }
    return jwt.encode(
        payload, settings.auth_secret.get_secret_value(), algorithm="HS256"
    )


def read_state_cookie(
    *, cookie_value: str, provider: str, expected_state: str
) -> str | None:
    """Validate a state cookie and return its PKCE code verifier.

    Args:
        cookie_value: JWT string from the state cookie.
        provider: Provider whose callback is being handled.
        expected_state: State parameter from the callback query string.

    Returns:
        Code verifier if signature, expiry, provider, and state all check
        out; None otherwise.
    """
    try:
        payload = jwt.decode(
            cookie_value,
            settings.auth_secret.get_secret_value(),
            algorithms=["HS256"],
            audience=_STATE_AUDIENCE,
        )
    except jwt.InvalidTokenError:
        return None

    if payload.get("provider") != provider:
        return None
    if not secrets.compare_digest(str(payload.get("state", "")), expected_state):
        return None
    return payload.get("code_verifier")


# ===================================================================
# Provider configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Endpoints and credentials for one sign-in provider.

    Attributes:
        name: Provider name, also its auth method tag.
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's profile endpoint.
        token_info_url: Endpoint that reports which app an access token was
            issued to.
        scopes: OAuth scopes to request.
        client_id_setting: Settings attribute holding the client id.
        client_secret_setting: Settings attribute holding the client secret.
        userinfo_params: Extra query parameters for the profile request.
    """

    name: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    token_info_url: str
    scopes: tuple[str, ...]
    client_id_setting: str
    client_secret_setting: str
    userinfo_params: dict[str, str] = field(default_factory=dict)

    @property
    def client_id(self) -> str:
        return getattr(settings, self.client_id_setting)

    @property
    def client_secret(self) -> str:
        return getattr(settings, self.client_secret_setting).get_secret_value()

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "google": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        name="google",
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        token_info_url="https://oauth2.googleapis.com/tokeninfo",
        scopes=("openid", "email", "profile"),
        client_id_setting="google_client_id",
        client_secret_setting="google_client_secret",
    ),
    "facebook": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        name="facebook",
        authorization_url="https://www.facebook.com/v19.0/dialog/oauth",
        token_url="https://graph.facebook.com/v19.0/oauth/access_token",
        userinfo_url="https://graph.facebook.com/v19.0/me",
        token_info_url="https://graph.facebook.com/v19.0/debug_token",
        scopes=("email", "public_profile"),
        client_id_setting="facebook_client_id",
        client_secret_setting="facebook_client_secret",
        userinfo_params={"fields": "id,name,email,picture.type(large)"},
    ),
}


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name ("google" or "facebook").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config
