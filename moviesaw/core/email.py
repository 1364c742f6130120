"""Email delivery via the Resend API.

EmailNotifier.send() posts a plain-text message and retries transient
failures (timeouts, connection errors, 429 and 5xx responses) with
exponential backoff. Other 4xx responses are permanent and fail at once.

send_verification_email() runs as a FastAPI background task, so it logs
final failures instead of raising them.
"""

import logging
from functools import lru_cache
from urllib.parse import quote, urlencode

import httpx

from moviesaw.core.config import settings
from moviesaw.core.retry import RetryPolicy, with_retries

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class EmailDeliveryError(Exception):
    """Base class for email delivery failures."""


class TransientEmailError(EmailDeliveryError):
    """Delivery failed in a way that may succeed on retry."""


class PermanentEmailError(EmailDeliveryError):
    """Delivery was rejected and retrying will not help."""


class EmailNotifier:
    """Sends email through Resend with bounded retries.

    Args:
        api_key: Resend API key.
        sender: From address.
        policy: Retry bounds for transient failures.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        policy: RetryPolicy,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._policy = policy
        self._transport = transport

    async def send(self, to_email: str, subject: str, body: str) -> None:
        """Send a plain-text email.

        Args:
            to_email: Recipient address.
            subject: Subject line.
            body: Plain-text body.

        Raises:
            TransientEmailError: If every attempt failed transiently.
            PermanentEmailError: If the API rejected the message.
        """
        await with_retries(
            lambda: self._send_once(to_email, subject, body),
            self._policy,
            retryable_errors=(TransientEmailError,),
        )

    async def _send_once(self, to_email: str, subject: str, body: str) -> None:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._sender,
                        "to": to_email,
                        "subject": subject,
                        "text": body,
                    },
                    timeout=_RESEND_TIMEOUT,
                )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise TransientEmailError(f"Email API unreachable: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            msg = f"Email API returned {resp.status_code}"
            raise TransientEmailError(msg)
        if resp.status_code >= 400:
            msg = f"Email API rejected message with {resp.status_code}"
            raise PermanentEmailError(msg)


@lru_cache
def get_email_notifier() -> EmailNotifier:
    """Build the process-wide notifier from settings."""
    return EmailNotifier(
        api_key=settings.resend_api_key.get_secret_value(),
        sender=settings.email_from,
        policy=RetryPolicy(
            max_retries=settings.email_max_retries,
            base_delay_ms=settings.email_retry_base_delay_ms,
            max_delay_ms=settings.email_retry_max_delay_ms,
        ),
    )


def build_verification_url(*, to_email: str, token: str) -> str:
    """Link to the frontend page that posts the token to /auth/verify-email."""
    params = urlencode({"email": to_email, "token": token}, quote_via=quote)
    return f"{settings.frontend_url}/verify-email?{params}"


async def send_verification_email(*, to_email: str, token: str) -> None:
    """Send an email verification link.

    Args:
        to_email: Recipient email address.
        token: Plain (unhashed) verification token.
    """
    verify_url = build_verification_url(to_email=to_email, token=token)
    body = (
        f"Confirm your email address to start using MovieSaw:\n\n{verify_url}\n\n"
        f"This link expires in {settings.verification_token_ttl_hours} hours. "
        "If you didn't create an account, you can safely ignore this email."
    )
    try:
        await get_email_notifier().send(to_email, "Verify your MovieSaw email", body)
    except EmailDeliveryError:
        logger.warning("Failed to send verification email", exc_info=True)
