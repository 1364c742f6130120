"""Identity link table: provider identity to account resolution.

A (provider, subject) pair resolves to at most one account, and an account
holds at most one link per provider. Both rules are enforced by unique
constraints; link() inserts with conflicts ignored and reads the winner back.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.errors import AlreadyLinkedError
from moviesaw.models.account import Account
from moviesaw.models.identity_link import IdentityLink
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.repositories.identity_link_repository import IdentityLinkRepository

logger = logging.getLogger(__name__)


async def find_linked_account(
    db: AsyncSession, provider: str, provider_subject_id: str
) -> Account | None:
    """Resolve a provider identity to its linked account.

    Args:
        db: Async database session.
        provider: Provider name.
        provider_subject_id: Provider's unique user id.

    Returns:
        The linked Account, or None if the identity is unlinked.
    """
    link = await IdentityLinkRepository.get_by_provider_subject(
        db, provider, provider_subject_id
    )
    if link is None:
        return None
    return await AccountRepository.get_by_id(db, link.account_id)


async def link(
    db: AsyncSession,
    *,
    account_id: uuid.UUID,
    provider: str,
    provider_subject_id: str,
) -> IdentityLink:
    """Attach a provider identity to an account.

    Idempotent when the same pair is already linked to the same account.

    Args:
        db: Async database session.
        account_id: Account to link to.
        provider: Provider name.
        provider_subject_id: Provider's unique user id.

    Returns:
        The stored IdentityLink.

    Raises:
        AlreadyLinkedError: If the pair belongs to another account, or the
            account already has a different subject for this provider.
    """
    created = await IdentityLinkRepository.insert_if_absent(
        db,
        account_id=account_id,
        provider=provider,
        provider_subject_id=provider_subject_id,
    )

    stored = await IdentityLinkRepository.get_by_provider_subject(
        db, provider, provider_subject_id
    )
    if stored is None or stored.account_id != account_id:
        logger.warning(
            "Identity link conflict",
            extra={
                "account_id": str(account_id),
                "provider": provider,
                "pair_taken": stored is not None,
            },
        )
        raise AlreadyLinkedError()

    if created:
        logger.info(
            "Identity linked",
            extra={"account_id": str(account_id), "provider": provider},
        )
    return stored
