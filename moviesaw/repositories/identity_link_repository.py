"""Repository for IdentityLink operations.

Links are written with INSERT ... ON CONFLICT DO NOTHING and then read back,
so concurrent sign-ins with the same provider identity converge on whichever
row was committed first.
"""

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.database import dialect_insert
from moviesaw.models.identity_link import IdentityLink


class IdentityLinkRepository:
    """Stateless repository for IdentityLink table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def get_by_provider_subject(
        db: AsyncSession,
        provider: str,
        provider_subject_id: str,
    ) -> IdentityLink | None:
        """Look up a link by its (provider, subject) key.

        Args:
            db: Async database session.
            provider: Provider name.
            provider_subject_id: Provider's unique user id.

        Returns:
            IdentityLink if found, None otherwise.
        """
        stmt = select(IdentityLink).where(
            IdentityLink.provider == provider,
            IdentityLink.provider_subject_id == provider_subject_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_account(
        db: AsyncSession, account_id: uuid.UUID
    ) -> Sequence[IdentityLink]:
        """List all provider links for an account, oldest first."""
        stmt = (
            select(IdentityLink)
            .where(IdentityLink.account_id == account_id)
            .order_by(IdentityLink.created_at, IdentityLink.provider)
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def insert_if_absent(
        db: AsyncSession,
        *,
        account_id: uuid.UUID,
        provider: str,
        provider_subject_id: str,
    ) -> bool:
        """Insert a link unless either uniqueness key is already taken.

        Args:
            db: Async database session.
            account_id: Account to link to.
            provider: Provider name.
            provider_subject_id: Provider's unique user id.

        Returns:
            True if a new row was written, False if it conflicted.
        """
        stmt = (
            dialect_insert(db, IdentityLink)
            .values(
                id=uuid.uuid4(),
                account_id=account_id,
                provider=provider,
                provider_subject_id=provider_subject_id,
            )
            .on_conflict_do_nothing()
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]
