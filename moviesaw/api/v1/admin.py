"""Admin API router.

Account inspection and manual revocation maintenance.

All endpoints require the AdminAccount dependency, which layers the admin
role check on top of the normal session gate.
"""

import uuid

from fastapi import APIRouter

from moviesaw.api.deps import AdminAccount, DbSession
from moviesaw.api.v1.auth import account_to_response
from moviesaw.core.errors import NotFoundError
from moviesaw.core.responses import DataResponse
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.repositories.identity_link_repository import IdentityLinkRepository
from moviesaw.services import revocation, session_membership

router = APIRouter()


@router.get("/accounts/{account_id}")
async def get_account(
    account_id: uuid.UUID,
    _admin: AdminAccount,
    db: DbSession,
) -> DataResponse[dict]:
    """Account summary with linked providers and live session count."""
    account = await AccountRepository.get_by_id(db, account_id)
    if account is None:
        raise NotFoundError("Account", str(account_id))

    links = await IdentityLinkRepository.list_for_account(db, account.id)
    live_sessions = await session_membership.list_members(db, account.id)

    return DataResponse(
        data={
            **account_to_response(account),
            "created_at": account.created_at.isoformat(),
            "linked_providers": [link.provider for link in links],
            "active_sessions": len(live_sessions),
        }
    )


@router.post("/revoked-tokens/purge")
async def purge_revoked_tokens(
    _admin: AdminAccount,
    db: DbSession,
) -> DataResponse[dict]:
    """Run the revocation retention purge now."""
    removed = await revocation.purge_expired(db)
    await db.commit()
    return DataResponse(data={"removed": removed})
