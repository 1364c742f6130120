"""Provider sign-in merge: resolve an external identity to an account.

Shared between the browser OAuth callback and the provider token endpoint.

Rules:
1. If provider+subject is already linked → returning account (LOGIN)
2. If the email exists under a different sign-in method → link only when the
   provider asserts the email is verified and, for a local account, the
   account has verified it too; otherwise REJECT (pre-hijack defense)
3. Otherwise → create a provider account and link it (REGISTER)

Concurrent first sign-ins with the same identity converge on one account:
the loser of the link insert deletes the account it just created and
re-resolves through rule 1.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.errors import AlreadyLinkedError, LinkingRequiresVerificationError
from moviesaw.models.account import Account, AuthMethod
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.services import identity_links

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by an external sign-in provider.

    Attributes:
        provider: Provider name ("google", "facebook").
        subject_id: Provider's unique user id.
        email: Email address from the provider.
        display_name: Display name from the provider.
        avatar_url: Profile picture URL, if any.
        email_verified_by_provider: Whether the provider vouches for the email.
    """

    provider: str
    subject_id: str
    email: str
    display_name: str
    avatar_url: str | None = None
    email_verified_by_provider: bool = False

    @property
    def method(self) -> AuthMethod:
        return AuthMethod(self.provider)


async def _refresh_cached_profile(
    db: AsyncSession, account: Account, identity: ExternalIdentity
) -> Account:
    """Copy the provider's current name and avatar onto a provider account.

    Local accounts keep their own profile; the provider is only a second way
    in for them.
    """
    if account.auth_method != identity.provider:
        return account

    changes: dict[str, str | None] = {}
    if identity.display_name and identity.display_name != account.name:
        changes["name"] = identity.display_name
    if identity.avatar_url and identity.avatar_url != account.avatar_url:
        changes["avatar_url"] = identity.avatar_url
    if not changes:
        return account

    updated = await AccountRepository.update_profile(db, account.id, **changes)
    return updated or account


async def sign_in_with_provider(
    db: AsyncSession, identity: ExternalIdentity
) -> tuple[Account, bool]:
    """Find, link, or create the account for a provider identity.

    Args:
        db: Async database session.
        identity: Identity asserted by the provider.

    Returns:
        Tuple of (Account, created) where created is True if a new account
        was registered.

    Raises:
        LinkingRequiresVerificationError: If the email belongs to an account
            under another method and either the provider or a local target
            has not verified it.
        AlreadyLinkedError: If the target account already holds a different
            identity for this provider.
    """
    email = identity.email.strip().lower()

    # Step 1: Returning identity
    account = await identity_links.find_linked_account(
        db, identity.provider, identity.subject_id
    )
    if account is not None:
        logger.info(
            "Returning provider sign-in",
            extra={"account_id": str(account.id), "provider": identity.provider},
        )
        return await _refresh_cached_profile(db, account, identity), False

    # Step 2: Same email under another sign-in method
    candidates = [
        existing
        for existing in await AccountRepository.list_by_email(db, email)
        if existing.auth_method != identity.provider
    ]
    if candidates:
        # Prefer the local account; otherwise the oldest
        target = next(
            (c for c in candidates if c.auth_method == AuthMethod.LOCAL.value),
            candidates[0],
        )
        # A pending local account may hold a password set by whoever typed
        # the address first, so it must be verified before it can be joined
        target_unverified = (
            target.auth_method == AuthMethod.LOCAL.value and not target.email_verified
        )
        if not identity.email_verified_by_provider or target_unverified:
            logger.warning(
                "Provider linking blocked by email verification",
                extra={
                    "provider": identity.provider,
                    "existing_method": target.auth_method,
                    "provider_verified": identity.email_verified_by_provider,
                    "existing_verified": target.email_verified,
                },
            )
            raise LinkingRequiresVerificationError()

        await identity_links.link(
            db,
            account_id=target.id,
            provider=identity.provider,
            provider_subject_id=identity.subject_id,
        )
        logger.info(
            "Linked provider identity to existing account",
            extra={"account_id": str(target.id), "provider": identity.provider},
        )
        return target, False

    # Step 3: New provider account
    new_account = await AccountRepository.create_provider_account(
        db,
        name=identity.display_name or email.split("@", 1)[0],
        email=email,
        method=identity.method,
        provider_subject_id=identity.subject_id,
        avatar_url=identity.avatar_url,
        email_verified=identity.email_verified_by_provider,
    )
    try:
        await identity_links.link(
            db,
            account_id=new_account.id,
            provider=identity.provider,
            provider_subject_id=identity.subject_id,
        )
    except AlreadyLinkedError:
        # A concurrent sign-in linked this identity first
        await AccountRepository.delete(db, new_account.id)
        winner = await identity_links.find_linked_account(
            db, identity.provider, identity.subject_id
        )
        if winner is None:
            raise
        logger.info(
            "Provider sign-in lost registration race",
            extra={"account_id": str(winner.id), "provider": identity.provider},
        )
        return winner, False

    logger.info(
        "Created new provider account",
        extra={"account_id": str(new_account.id), "provider": identity.provider},
    )
    return new_account, True
