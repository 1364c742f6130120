"""Authentication endpoints for password-based auth and sessions.

register, login, logout, me, profile, verify-email, resend-verification.

Security considerations:
- register: bcrypt off the event loop, HIBP breach check, one local account
  per email, verification email sent after commit
- login: DUMMY_HASH timing parity, email verification checked before the
  password result is revealed
- logout: revokes the presented token and drops it from the session list;
  repeating it is a no-op
- resend-verification: same response whether or not the email is known
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from moviesaw.api.deps import CurrentAccount, DbSession
from moviesaw.core.auth import (
    check_password_breached,
    clear_auth_cookie,
    set_auth_cookie,
    validate_password_strength,
)
from moviesaw.core.email import send_verification_email
from moviesaw.core.errors import (
    AlreadyVerifiedError,
    APIError,
    EmailNotVerifiedError,
    InvalidSignatureError,
    UnauthorizedError,
)
from moviesaw.core.rate_limiting import limiter
from moviesaw.core.responses import DataResponse
from moviesaw.core.session_gate import extract_token
from moviesaw.models import Account
from moviesaw.models.account import AuthMethod
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.services import credential_store, sessions, verification
from moviesaw.services.credential_store import LoginOutcome
from moviesaw.services.verification import VerificationNotify

logger = logging.getLogger(__name__)

_PASSWORD_BREACHED_MSG = (  # nosec B105
    "This password has appeared in a data breach. Please choose a different one."
)

_RESEND_MSG = (
    "If an unverified account exists for this email, a new verification "
    "link has been sent."
)

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /auth/profile."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    token: str = Field(min_length=1, max_length=256)


class ResendVerificationRequest(BaseModel):
    """Request body for POST /auth/resend-verification."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


# ===================================================================
# Helpers
# ===================================================================


def account_to_response(account: Account) -> dict:
    """Build standard account payload. Never includes credentials."""
    return {
        "id": str(account.id),
        "email": account.email,
        "name": account.name,
        "avatar_url": account.avatar_url,
        "auth_method": account.auth_method,
        "role": account.role,
        "email_verified": account.email_verified,
    }


def _schedule_verification_email(
    background_tasks: BackgroundTasks,
) -> VerificationNotify:
    """Return a notify callback that queues the verification email."""

    def notify(email: str, token: str) -> None:
        background_tasks.add_task(send_verification_email, to_email=email, token=token)

    return notify


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit("5/hour")
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: DbSession,
) -> DataResponse[dict]:
    """Register a local account and send a verification email.

    An existing unverified local account gets a fresh verification link
    instead (200). A verified one is a 409 conflict.

    Rate limit: 5 per hour per IP.
    """
    validate_password_strength(body.password)

    if await check_password_breached(body.password):
        raise APIError(
            code="PASSWORD_BREACHED",
            message=_PASSWORD_BREACHED_MSG,
            status_code=422,
        )

    registration = await credential_store.register(
        db,
        name=body.name,
        email=body.email,
        raw_password=body.password,
        notify=_schedule_verification_email(background_tasks),
    )
    await db.commit()

    message = "Check your inbox for a verification link."
    if not registration.created:
        # The caller has not proven they own this address
        response.status_code = 200
        return DataResponse(data={"message": message})

    return DataResponse(
        data={**account_to_response(registration.account), "message": message}
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit("10/15minute")
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Verify email + password and start a session.

    The token is returned in the body and set as an httpOnly cookie.
    Starting a session may end the account's oldest one (device cap).

    Rate limit: 10 per 15 minutes per IP.
    """
    account = await credential_store.find_by_email_and_method(
        db, body.email, AuthMethod.LOCAL
    )
    outcome = await credential_store.evaluate_login(account, body.password)

    if outcome is LoginOutcome.EMAIL_NOT_VERIFIED:
        raise EmailNotVerifiedError()
    if outcome is not LoginOutcome.ACCEPTED or account is None:
        logger.info("Login rejected", extra={"outcome": outcome.value})
        raise UnauthorizedError("Invalid email or password")

    issued = await sessions.start_session(db, account)
    await db.commit()

    set_auth_cookie(response, issued.token, issued.expires_at)
    return DataResponse(
        data={
            "token": issued.token,
            "token_type": "bearer",
            "expires_at": issued.expires_at.isoformat(),
            "account": account_to_response(account),
        }
    )


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Revoke the presented session token.

    Requires a token this service issued. Logging out a token that is
    already revoked, superseded, or expired succeeds without changes.
    Cookie attributes must match set_auth_cookie() for browser to delete.
    """
    token = extract_token(request)
    if not token:
        raise UnauthorizedError()

    try:
        await sessions.end_session(db, token)
    except InvalidSignatureError:
        logger.info("Logout with unverifiable token")
        raise UnauthorizedError() from None
    await db.commit()

    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# GET /auth/me, PATCH /auth/profile
# ===================================================================


@router.get("/me")
async def get_me(account: CurrentAccount) -> DataResponse[dict]:
    """Return the authenticated account's profile."""
    return DataResponse(data=account_to_response(account))


@router.patch("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    account: CurrentAccount,
    db: DbSession,
) -> DataResponse[dict]:
    """Update the authenticated account's display name."""
    updated = await AccountRepository.update_profile(db, account.id, name=body.name)
    if updated is None:
        raise UnauthorizedError()
    await db.commit()
    return DataResponse(data=account_to_response(updated))


# ===================================================================
# POST /auth/verify-email, POST /auth/resend-verification
# ===================================================================


@router.post("/verify-email")
@limiter.limit("10/15minute")
async def verify_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyEmailRequest,
    db: DbSession,
) -> DataResponse[dict]:
    """Confirm a local account's email with its current verification token.

    Rate limit: 10 per 15 minutes per IP.
    """
    account = await verification.confirm_verification(db, body.email, body.token)
    await db.commit()
    return DataResponse(
        data={**account_to_response(account), "message": "Email verified"}
    )


@router.post("/resend-verification", status_code=202)
@limiter.limit("3/hour")
async def resend_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
) -> DataResponse[dict]:
    """Replace and re-send the verification link for an unverified account.

    Security: The response is identical whether the email is unknown,
    already verified, or pending, to prevent account enumeration.

    Rate limit: 3 per hour per IP.
    """
    account = await AccountRepository.get_by_email_and_method(
        db, body.email, AuthMethod.LOCAL
    )
    if account is not None and not account.email_verified:
        try:
            await verification.request_verification(
                db, account, _schedule_verification_email(background_tasks)
            )
        except AlreadyVerifiedError:
            # Verified concurrently; nothing to send
            logger.debug("Resend skipped for verified account")
        await db.commit()

    return DataResponse(data={"message": _RESEND_MSG})
