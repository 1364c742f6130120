"""Tests for the password auth and session endpoints.

POST /auth/register, /auth/login, /auth/logout, /auth/verify-email,
/auth/resend-verification; GET /auth/me; PATCH /auth/profile.
"""

from unittest.mock import AsyncMock

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.config import settings
from moviesaw.models import Account
from tests.conftest import TEST_PASSWORD, make_local_account

_REGISTER = "/api/v1/auth/register"
_LOGIN = "/api/v1/auth/login"
_LOGOUT = "/api/v1/auth/logout"
_ME = "/api/v1/auth/me"
_PROFILE = "/api/v1/auth/profile"
_VERIFY = "/api/v1/auth/verify-email"
_RESEND = "/api/v1/auth/resend-verification"

_UNAUTHORIZED_BODY = {
    "error": {
        "code": "UNAUTHORIZED",
        "message": "Authentication required",
        "details": None,
    }
}


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def _login(client: AsyncClient, email: str = "viewer@example.com") -> str:
    response = await client.post(_LOGIN, json={"email": email, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return response.json()["data"]["token"]


# ===================================================================
# POST /auth/register
# ===================================================================


class TestRegister:
    """Tests for POST /api/v1/auth/register."""

    async def test_creates_unverified_account(
        self, client: AsyncClient, sent_verification_emails: AsyncMock
    ):
        """201 with the new account; a verification email is queued."""
        response = await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "Ada@Example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["email"] == "ada@example.com"
        assert data["email_verified"] is False
        assert data["auth_method"] == "local"
        assert "password_hash" not in data
        sent_verification_emails.assert_called_once()
        assert sent_verification_emails.call_args.kwargs["to_email"] == "ada@example.com"

    async def test_registration_does_not_sign_in(self, client: AsyncClient):
        """No session cookie until the email is verified and the user logs in."""
        response = await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "ada@example.com", "password": TEST_PASSWORD},
        )

        assert settings.auth_cookie_name not in response.cookies

    async def test_verified_email_conflicts(
        self, client: AsyncClient, verified_account: Account
    ):
        """409 EMAIL_ALREADY_EXISTS for a verified local account."""
        response = await client.post(
            _REGISTER,
            json={
                "name": "Again",
                "email": verified_account.email,
                "password": TEST_PASSWORD,
            },
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"

    async def test_unverified_email_resends(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        sent_verification_emails: AsyncMock,
    ):
        """200 and a fresh verification email for a pending account."""
        await make_local_account(db_session, email="pending@example.com", verified=False)

        response = await client.post(
            _REGISTER,
            json={
                "name": "Pending",
                "email": "pending@example.com",
                "password": "another-password",
            },
        )

        assert response.status_code == 200
        sent_verification_emails.assert_called_once()

    async def test_pending_account_details_not_disclosed(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        """Re-registering a pending email reveals nothing about the account."""
        await make_local_account(
            db_session, email="pending@example.com", name="Pending", verified=False
        )

        response = await client.post(
            _REGISTER,
            json={
                "name": "Someone Else",
                "email": "pending@example.com",
                "password": "another-password",
            },
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "message": "Check your inbox for a verification link."
        }

    async def test_short_password(self, client: AsyncClient):
        """Passwords under the minimum length are rejected."""
        response = await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "ada@example.com", "password": "abc"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_invalid_email(self, client: AsyncClient):
        """Malformed emails fail request validation."""
        response = await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "not-an-email", "password": TEST_PASSWORD},
        )

        assert response.status_code == 400

    async def test_breached_password(self, client: AsyncClient, monkeypatch):
        """422 PASSWORD_BREACHED when HIBP reports the password."""
        monkeypatch.setattr(
            "moviesaw.api.v1.auth.check_password_breached",
            AsyncMock(return_value=True),
        )

        response = await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "ada@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "PASSWORD_BREACHED"


# ===================================================================
# POST /auth/verify-email, POST /auth/resend-verification
# ===================================================================


class TestVerifyEmail:
    """Tests for POST /api/v1/auth/verify-email."""

    async def test_register_verify_login(
        self, client: AsyncClient, sent_verification_emails: AsyncMock
    ):
        """The emailed token verifies the account, which can then sign in."""
        await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "ada@example.com", "password": TEST_PASSWORD},
        )
        token = sent_verification_emails.call_args.kwargs["token"]

        blocked = await client.post(
            _LOGIN, json={"email": "ada@example.com", "password": TEST_PASSWORD}
        )
        verified = await client.post(
            _VERIFY, json={"email": "ada@example.com", "token": token}
        )
        login = await client.post(
            _LOGIN, json={"email": "ada@example.com", "password": TEST_PASSWORD}
        )

        assert blocked.status_code == 403
        assert blocked.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"
        assert verified.status_code == 200
        assert verified.json()["data"]["email_verified"] is True
        assert login.status_code == 200

    async def test_invalid_token(self, client: AsyncClient, db_session: AsyncSession):
        """400 INVALID_VERIFICATION_TOKEN for a wrong token."""
        await make_local_account(db_session, email="pending@example.com", verified=False)

        response = await client.post(
            _VERIFY, json={"email": "pending@example.com", "token": "guess"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_VERIFICATION_TOKEN"

    async def test_replaced_token(
        self, client: AsyncClient, sent_verification_emails: AsyncMock
    ):
        """After a resend only the newest token works."""
        await client.post(
            _REGISTER,
            json={"name": "Ada", "email": "ada@example.com", "password": TEST_PASSWORD},
        )
        first = sent_verification_emails.call_args.kwargs["token"]
        await client.post(_RESEND, json={"email": "ada@example.com"})
        second = sent_verification_emails.call_args.kwargs["token"]

        stale = await client.post(
            _VERIFY, json={"email": "ada@example.com", "token": first}
        )
        fresh = await client.post(
            _VERIFY, json={"email": "ada@example.com", "token": second}
        )

        assert first != second
        assert stale.status_code == 400
        assert fresh.status_code == 200

    async def test_already_verified(
        self, client: AsyncClient, verified_account: Account
    ):
        """409 ALREADY_VERIFIED once the account is verified."""
        response = await client.post(
            _VERIFY, json={"email": verified_account.email, "token": "anything"}
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_VERIFIED"


class TestResendVerification:
    """Tests for POST /api/v1/auth/resend-verification."""

    async def test_pending_account_gets_email(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        sent_verification_emails: AsyncMock,
    ):
        """202 and a new email for an unverified account."""
        await make_local_account(db_session, email="pending@example.com", verified=False)

        response = await client.post(_RESEND, json={"email": "pending@example.com"})

        assert response.status_code == 202
        sent_verification_emails.assert_called_once()

    async def test_same_response_for_unknown_and_verified(
        self,
        client: AsyncClient,
        verified_account: Account,
        sent_verification_emails: AsyncMock,
    ):
        """Unknown and verified emails look identical and send nothing."""
        unknown = await client.post(_RESEND, json={"email": "nobody@example.com"})
        verified = await client.post(_RESEND, json={"email": verified_account.email})

        assert unknown.status_code == verified.status_code == 202
        assert unknown.json() == verified.json()
        sent_verification_emails.assert_not_called()


# ===================================================================
# POST /auth/login
# ===================================================================


class TestLogin:
    """Tests for POST /api/v1/auth/login."""

    async def test_returns_token_and_sets_cookie(
        self, client: AsyncClient, verified_account: Account
    ):
        """200 with a bearer token in the body and the session cookie."""
        response = await client.post(
            _LOGIN, json={"email": verified_account.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["account"]["id"] == str(verified_account.id)
        assert response.cookies[settings.auth_cookie_name] == data["token"]
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie

    async def test_wrong_password(self, client: AsyncClient, verified_account: Account):
        """401 with a generic message."""
        response = await client.post(
            _LOGIN, json={"email": verified_account.email, "password": "wrong-pass"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid email or password"

    async def test_unknown_email_matches_wrong_password(
        self, client: AsyncClient, verified_account: Account
    ):
        """An unknown email is indistinguishable from a bad password."""
        unknown = await client.post(
            _LOGIN, json={"email": "nobody@example.com", "password": TEST_PASSWORD}
        )
        wrong = await client.post(
            _LOGIN, json={"email": verified_account.email, "password": "wrong-pass"}
        )

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    async def test_unverified_even_with_wrong_password(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        """The unverified response does not depend on the password."""
        await make_local_account(db_session, email="pending@example.com", verified=False)

        response = await client.post(
            _LOGIN, json={"email": "pending@example.com", "password": "wrong-pass"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

    async def test_email_is_case_insensitive(
        self, client: AsyncClient, verified_account: Account
    ):
        """Login accepts the email in any case."""
        response = await client.post(
            _LOGIN,
            json={"email": verified_account.email.upper(), "password": TEST_PASSWORD},
        )

        assert response.status_code == 200


# ===================================================================
# Session lifecycle through the gate
# ===================================================================


class TestSessionLifecycle:
    """Authenticated access, the device cap, and logout."""

    async def test_me_with_bearer(self, client: AsyncClient, verified_account: Account):
        """A fresh token reads the profile."""
        token = await _login(client)

        response = await client.get(_ME, headers=_bearer(token))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == verified_account.email

    async def test_me_with_cookie(self, client: AsyncClient, verified_account: Account):
        """The cookie set at login authenticates follow-up requests."""
        await client.post(
            _LOGIN, json={"email": verified_account.email, "password": TEST_PASSWORD}
        )

        response = await client.get(_ME)

        assert response.status_code == 200

    async def test_third_login_supersedes_first(
        self, client: AsyncClient, verified_account: Account
    ):
        """With a cap of 2, the oldest session is signed out by the third."""
        first = await _login(client)
        second = await _login(client)
        third = await _login(client)

        assert (await client.get(_ME, headers=_bearer(first))).status_code == 401
        assert (await client.get(_ME, headers=_bearer(second))).status_code == 200
        assert (await client.get(_ME, headers=_bearer(third))).status_code == 200

    async def test_rejections_share_one_body(
        self, client: AsyncClient, verified_account: Account
    ):
        """No token, superseded, revoked and garbage all return the same 401."""
        first = await _login(client)
        await _login(client)
        await _login(client)
        revoked = await _login(client)
        await client.post(_LOGOUT, headers=_bearer(revoked))

        responses = [
            await client.get(_ME),
            await client.get(_ME, headers=_bearer(first)),
            await client.get(_ME, headers=_bearer(revoked)),
            await client.get(_ME, headers=_bearer("garbage")),
        ]

        for response in responses:
            assert response.status_code == 401
            assert response.json() == _UNAUTHORIZED_BODY

    async def test_logout_revokes_token(
        self, client: AsyncClient, verified_account: Account
    ):
        """After logout the token no longer authenticates."""
        token = await _login(client)

        response = await client.post(_LOGOUT, headers=_bearer(token))

        assert response.status_code == 200
        assert (await client.get(_ME, headers=_bearer(token))).status_code == 401

    async def test_logout_twice_succeeds(
        self, client: AsyncClient, verified_account: Account
    ):
        """Logging out an already revoked token is a no-op success."""
        token = await _login(client)

        first = await client.post(_LOGOUT, headers=_bearer(token))
        second = await client.post(_LOGOUT, headers=_bearer(token))

        assert first.status_code == second.status_code == 200

    async def test_logout_superseded_token_succeeds(
        self, client: AsyncClient, verified_account: Account
    ):
        """A session already evicted by the cap can still be logged out."""
        first = await _login(client)
        await _login(client)
        await _login(client)

        response = await client.post(_LOGOUT, headers=_bearer(first))

        assert response.status_code == 200

    async def test_logout_keeps_other_sessions(
        self, client: AsyncClient, verified_account: Account
    ):
        """Logging out one device leaves the other signed in."""
        phone = await _login(client)
        laptop = await _login(client)

        await client.post(_LOGOUT, headers=_bearer(phone))

        assert (await client.get(_ME, headers=_bearer(laptop))).status_code == 200

    async def test_logout_clears_cookie(
        self, client: AsyncClient, verified_account: Account
    ):
        """The logout response expires the session cookie."""
        await client.post(
            _LOGIN, json={"email": verified_account.email, "password": TEST_PASSWORD}
        )

        response = await client.post(_LOGOUT)

        assert response.status_code == 200
        assert settings.auth_cookie_name in response.headers["set-cookie"]
        assert (await client.get(_ME)).status_code == 401

    async def test_logout_without_token(self, client: AsyncClient):
        """401 when no token is presented."""
        response = await client.post(_LOGOUT)

        assert response.status_code == 401

    async def test_logout_with_forged_token(self, client: AsyncClient):
        """401 for a token this service did not sign."""
        response = await client.post(_LOGOUT, headers=_bearer("not.a.token"))

        assert response.status_code == 401


# ===================================================================
# PATCH /auth/profile
# ===================================================================


class TestUpdateProfile:
    """Tests for PATCH /api/v1/auth/profile."""

    async def test_updates_name(self, client: AsyncClient, verified_account: Account):
        """The display name is changed and returned."""
        token = await _login(client)

        response = await client.patch(
            _PROFILE, json={"name": "Renamed"}, headers=_bearer(token)
        )
        me = await client.get(_ME, headers=_bearer(token))

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Renamed"
        assert me.json()["data"]["name"] == "Renamed"

    async def test_rejects_other_fields(
        self, client: AsyncClient, verified_account: Account
    ):
        """Role and email cannot be set through the profile endpoint."""
        token = await _login(client)

        response = await client.patch(
            _PROFILE, json={"name": "X", "role": "admin"}, headers=_bearer(token)
        )

        assert response.status_code == 400

    async def test_requires_auth(self, client: AsyncClient):
        """401 without a session."""
        response = await client.patch(_PROFILE, json={"name": "X"})

        assert response.status_code == 401
