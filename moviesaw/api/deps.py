"""Shared dependencies for API endpoints.

Authentication dependencies built on the session gate.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Admin capability layers on top of authentication as a second dependency
- Testable with dependency overrides
"""

import logging
import uuid
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.database import get_db
from moviesaw.core.errors import AdminRequiredError, UnauthorizedError
from moviesaw.core.session_gate import AuthContext, authenticate, extract_token
from moviesaw.models import Account
from moviesaw.repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)


async def get_auth_context(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthContext:
    """Authenticate the request through the session gate.

    Security: Every rejection produces the same 401 body. The specific
    reason (expired, revoked, superseded, ...) is only logged.

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session (injected).

    Returns:
        AuthContext for the authenticated account.

    Raises:
        UnauthorizedError: 401 for any gate rejection.
    """
    result = await authenticate(db, extract_token(request))
    if result.context is None:
        logger.info(
            "Request rejected by auth gate",
            extra={
                "reason": result.rejection.value if result.rejection else None,
                "path": request.url.path,
            },
        )
        raise UnauthorizedError()
    return result.context


async def get_current_account_id(
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> uuid.UUID:
    """Get the authenticated account's id."""
    return context.account_id


async def get_current_account(
    account_id: Annotated[uuid.UUID, Depends(get_current_account_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Account:
    """Get full Account object for the current request.

    Use this when you need the Account object, not just the ID.

    Raises:
        UnauthorizedError: 401 if the account disappeared after the gate ran.
    """
    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise UnauthorizedError()
    return account


async def require_admin(
    account: Annotated[Account, Depends(get_current_account)],
) -> Account:
    """Require the admin role on top of authentication.

    Raises:
        AdminRequiredError: 403 if the account is not an admin.
    """
    if not account.is_admin:
        logger.warning(
            "Non-admin access to admin route",
            extra={"account_id": str(account.id)},
        )
        raise AdminRequiredError()
    return account


# Reusable type aliases for dependency injection
CurrentAccountId = Annotated[uuid.UUID, Depends(get_current_account_id)]
CurrentAccount = Annotated[Account, Depends(get_current_account)]
AdminAccount = Annotated[Account, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
