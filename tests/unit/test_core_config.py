"""Tests for application configuration.

Defaults for the session lifecycle and the cross-field security checks.
"""

import pytest
from pydantic import ValidationError

from moviesaw.core.config import Settings

_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


class TestSessionDefaults:
    """Session lifecycle settings have the documented defaults."""

    def test_session_cap_defaults_to_two(self):
        """Two concurrent sessions per account."""
        assert Settings().session_cap == 2

    def test_token_ttl_defaults_to_seven_days(self):
        """Tokens live for 7 days."""
        assert Settings().auth_token_ttl_seconds == 7 * 24 * 60 * 60

    def test_revocation_retention_defaults_to_seven_days(self):
        """Revocation entries are kept 7 days past token expiry."""
        assert Settings().revocation_retention_days == 7

    def test_verification_token_ttl_defaults_to_24_hours(self):
        """Verification links expire after a day."""
        assert Settings().verification_token_ttl_hours == 24

    def test_rate_limit_storage_defaults_to_memory(self):
        """Single-process storage unless a shared backend is configured."""
        assert Settings().rate_limit_storage_uri == "memory://"


class TestSecurityValidation:
    """Tests for the model validator."""

    def test_rejects_samesite_none_without_secure(self):
        """SameSite=None cookies need the Secure flag."""
        with pytest.raises(ValidationError, match="AUTH_COOKIE_SECURE"):
            Settings(auth_cookie_samesite="none", auth_cookie_secure=False)

    def test_rejects_wildcard_cors(self):
        """Credentialed CORS cannot use a wildcard origin."""
        with pytest.raises(ValidationError, match="wildcard"):
            Settings(allowed_origins=["*"])

    def test_rejects_zero_session_cap(self):
        """An account must be allowed at least one session."""
        with pytest.raises(ValidationError, match="SESSION_CAP"):
            Settings(session_cap=0)

    def test_rejects_negative_retention(self):
        """Retention window cannot be negative."""
        with pytest.raises(ValidationError, match="REVOCATION_RETENTION_DAYS"):
            Settings(revocation_retention_days=-1)

    def test_production_requires_auth_secret(self):
        """An empty AUTH_SECRET is rejected in production."""
        with pytest.raises(ValidationError, match="AUTH_SECRET must be set"):
            Settings(environment=_PRODUCTION)

    def test_production_rejects_short_auth_secret(self):
        """AUTH_SECRET must be at least 32 characters in production."""
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(environment=_PRODUCTION, auth_secret="short")

    def test_production_accepts_strong_secret(self):
        """A long secret passes validation."""
        s = Settings(environment=_PRODUCTION, auth_secret=_TEST_AUTH_SECRET)
        assert s.auth_secret.get_secret_value() == _TEST_AUTH_SECRET

    def test_development_allows_empty_secret(self):
        """Local development runs without a secret."""
        s = Settings(environment="development")
        assert s.auth_secret.get_secret_value() == ""
