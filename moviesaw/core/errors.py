"""Errors raised by the auth API and rendered as the error envelope.

Each class fixes an HTTP status and a machine-readable code; main.py turns
any APIError into {"error": {code, message, details}}.

Errors that never reach a client directly (token decode failures,
unsupported auth method) are plain exceptions and are translated at the
boundary.
"""


class APIError(Exception):
    """Base class for errors that reach the client.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Input rejected by a domain rule (400), e.g. a weak password."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided. The message must stay
    generic: the reason a token was rejected is for server logs only.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but the account lacks permission.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class AdminRequiredError(ForbiddenError):
    """Admin access required (403).

    Raised by the require_admin dependency when the account role is not admin.
    """

    def __init__(self) -> None:
        APIError.__init__(
            self,
            code="ADMIN_REQUIRED",
            message="Access denied. Admins only.",
            status_code=403,
        )


class EmailNotVerifiedError(ForbiddenError):
    """Login blocked until the email address is verified (403)."""

    def __init__(self) -> None:
        APIError.__init__(
            self,
            code="EMAIL_NOT_VERIFIED",
            message=(
                "Please verify your email before signing in. "
                "Check your inbox for the verification link."
            ),
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Request conflicts with stored state (409).

    Subclasses pin the code; callers may pass their own for one-off cases.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class DuplicateAccountError(ConflictError):
    """A local account with this email already exists (409)."""

    def __init__(self, message: str = "Email already registered") -> None:
        super().__init__(code="EMAIL_ALREADY_EXISTS", message=message)


class AlreadyLinkedError(ConflictError):
    """Provider identity is already linked to a different account (409).

    Also raised when the account already holds a link for the provider
    under another subject id.
    """

    def __init__(
        self, message: str = "This sign-in identity is already linked"
    ) -> None:
        super().__init__(code="ALREADY_LINKED", message=message)


class LinkingRequiresVerificationError(ConflictError):
    """Automatic linking refused because one side has not verified the email.

    Pre-hijack defense: an account with the same email exists under another
    sign-in method, so the user must sign in with that method first.
    """

    def __init__(
        self,
        message: str = (
            "An account with this email already exists. "
            "Please sign in with your original method first."
        ),
    ) -> None:
        super().__init__(code="LINKING_REQUIRES_VERIFICATION", message=message)


class AlreadyVerifiedError(ConflictError):
    """Email address was already verified (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="ALREADY_VERIFIED",
            message="Email address is already verified",
        )


class InvalidVerificationTokenError(APIError):
    """Verification token is unknown, replaced, or expired (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_VERIFICATION_TOKEN",
            message="Invalid or expired verification link",
            status_code=400,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


# =============================================================================
# Non-HTTP domain errors
# =============================================================================


class UnsupportedAuthMethodError(Exception):
    """Operation is only valid for a different auth method.

    E.g., password verification against a provider-backed account.
    """


class TokenError(Exception):
    """Base class for session token decode failures."""


class InvalidSignatureError(TokenError):
    """Token is malformed, tampered with, or signed for another audience."""


class TokenExpiredError(TokenError):
    """Token signature is valid but its expiry has passed."""
