"""Application configuration loaded from environment variables.

Settings for the database, the session lifecycle (token TTL, device cap,
revocation retention), OAuth providers, email delivery, and rate limiting.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# Tokens live for 7 days unless revoked or evicted
_DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = (
        "postgresql+asyncpg://moviesaw_user:moviesaw_dev_password"
        "@localhost:5432/moviesaw"
    )
    database_echo: bool = False
    # Create tables at startup (development and tests; production uses DDL scripts)
    database_auto_create: bool = False

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session tokens
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "moviesaw"
    auth_audience: str = "moviesaw-web"
    auth_token_ttl_seconds: int = _DEFAULT_TOKEN_TTL_SECONDS
    auth_cookie_name: str = "moviesaw.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # Session membership and revocation
    session_cap: int = 2
    revocation_retention_days: int = 7
    revocation_purge_enabled: bool = True
    revocation_purge_interval_seconds: int = 60 * 60

    # Email verification
    verification_token_ttl_hours: int = 24

    # Passwords
    password_min_length: int = 6
    password_hash_rounds: int = 12
    password_breach_check_enabled: bool = True

    # OAuth providers
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    facebook_client_id: str = ""
    facebook_client_secret: SecretStr = SecretStr("")

    # Email (Resend)
    email_from: str = "noreply@moviesaw.app"
    resend_api_key: SecretStr = SecretStr("")
    email_max_retries: int = 3
    email_retry_base_delay_ms: int = 500
    email_retry_max_delay_ms: int = 8000

    # Frontend URL (OAuth redirects, verification links)
    frontend_url: str = "http://localhost:3000"

    # Rate Limiting (Security)
    # Storage is pluggable: "memory://" for a single process,
    # "redis://host:6379" when several workers must share counters.
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires the Secure flag (all environments)
        - CORS must not use wildcard origin (all environments)
        - Session cap and retention must be positive (all environments)
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Session cookies are incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.session_cap < 1:
            msg = f"SESSION_CAP must be at least 1. Got: {self.session_cap}"
            raise ValueError(msg)

        if self.revocation_retention_days < 0:
            msg = (
                "REVOCATION_RETENTION_DAYS cannot be negative. "
                f"Got: {self.revocation_retention_days}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
