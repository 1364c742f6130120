"""Repository for Account operations.

Provides database access for the accounts table. Every write that can race
with another request is a single conditional statement:
- local account creation is a conflict-ignoring insert against the partial
  unique index on email
- email confirmation is an UPDATE guarded by the current token hash
- session membership writes are compare-and-swap on session_version
"""

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.database import dialect_insert
from moviesaw.models.account import Account, AuthMethod, Role

# Fields that may be updated via AccountRepository.update_profile().
# Security: credentials, auth method, role, verification state and the
# session list each have a dedicated write path.
_UPDATABLE_FIELDS: frozenset[str] = frozenset({"name", "avatar_url"})


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key.

        Always reloads column values so writes issued as Core statements
        earlier in the same session are visible.

        Args:
            db: Async database session.
            account_id: UUID primary key.

        Returns:
            Account if found, None otherwise.
        """
        return await db.get(Account, account_id, populate_existing=True)

    @staticmethod
    async def get_by_email_and_method(
        db: AsyncSession, email: str, method: AuthMethod
    ) -> Account | None:
        """Fetch the oldest account for an email under one auth method.

        Args:
            db: Async database session.
            email: Email address (matched case-insensitively).
            method: Auth method to match.

        Returns:
            Account if found, None otherwise.
        """
        stmt = (
            select(Account)
            .where(
                Account.email == email.strip().lower(),
                Account.auth_method == method.value,
            )
            .order_by(Account.created_at, Account.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_email(db: AsyncSession, email: str) -> Sequence[Account]:
        """List every account sharing an email, oldest first.

        Args:
            db: Async database session.
            email: Email address (matched case-insensitively).

        Returns:
            Accounts across all auth methods (may be empty).
        """
        stmt = (
            select(Account)
            .where(Account.email == email.strip().lower())
            .order_by(Account.created_at, Account.id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def insert_local_if_absent(
        db: AsyncSession,
        *,
        name: str,
        email: str,
        password_hash: str,
        verification_token_hash: str,
        verification_expires_at: datetime,
    ) -> Account | None:
        """Insert a local account unless one already exists for the email.

        Uses INSERT ... ON CONFLICT DO NOTHING so two concurrent registrations
        for the same email cannot both succeed.

        Args:
            db: Async database session.
            name: Display name.
            email: Email address (normalized to lowercase).
            password_hash: bcrypt hash.
            verification_token_hash: SHA-256 of the initial verification token.
            verification_expires_at: Expiry of the verification token.

        Returns:
            Created Account, or None if a local account already holds the email.
        """
        account_id = uuid.uuid4()
        stmt = (
            dialect_insert(db, Account)
            .values(
                id=account_id,
                name=name,
                email=email.strip().lower(),
                password_hash=password_hash,
                auth_method=AuthMethod.LOCAL.value,
                provider_subject_id=None,
                role=Role.USER.value,
                email_verified=False,
                verification_token_hash=verification_token_hash,
                verification_expires_at=verification_expires_at,
                session_tokens=[],
                session_version=0,
            )
            .on_conflict_do_nothing()
        )
        result = await db.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None
        return await db.get(Account, account_id)

    @staticmethod
    async def create_provider_account(
        db: AsyncSession,
        *,
        name: str,
        email: str,
        method: AuthMethod,
        provider_subject_id: str,
        avatar_url: str | None = None,
        email_verified: bool = False,
    ) -> Account:
        """Create an account backed by an external provider.

        Provider accounts carry no password hash; password verification can
        never succeed against them.

        Args:
            db: Async database session.
            name: Display name from the provider.
            email: Email from the provider (normalized to lowercase).
            method: Provider auth method (must not be LOCAL).
            provider_subject_id: Provider's unique user id.
            avatar_url: Profile picture URL.
            email_verified: Whether the provider asserted the email is verified.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            ValueError: If method is LOCAL.
        """
        if method is AuthMethod.LOCAL:
            msg = "Provider accounts cannot use the local auth method"
            raise ValueError(msg)

        account = Account(
            name=name,
            email=email.strip().lower(),
            password_hash=None,
            auth_method=method.value,
            provider_subject_id=provider_subject_id,
            avatar_url=avatar_url,
            email_verified=email_verified,
            session_tokens=[],
            session_version=0,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update_profile(
        db: AsyncSession,
        account_id: uuid.UUID,
        **kwargs: str | None,
    ) -> Account | None:
        """Update profile fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            account_id: UUID of the account to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated Account if found, None if the account does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        account = await AccountRepository.get_by_id(db, account_id)
        if account is None:
            return None

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def replace_verification_token(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        token_hash: str,
        expires_at: datetime,
    ) -> bool:
        """Overwrite the pending verification token of an unverified account.

        Args:
            db: Async database session.
            account_id: UUID of the account.
            token_hash: SHA-256 of the new token.
            expires_at: Expiry of the new token.

        Returns:
            True if the token was stored, False if the account is missing or
            already verified.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.email_verified.is_(False))
            .values(
                verification_token_hash=token_hash,
                verification_expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def consume_verification_token(
        db: AsyncSession,
        *,
        email: str,
        token_hash: str,
        now: datetime,
    ) -> uuid.UUID | None:
        """Mark a local account verified if the token matches.

        Single conditional UPDATE: the token is consumed at most once even
        under concurrent confirmations.

        Args:
            db: Async database session.
            email: Email of the local account.
            token_hash: SHA-256 of the presented token.
            now: Current time (tokens expiring at or before it are rejected).

        Returns:
            Id of the verified account, or None if nothing matched.
        """
        account_id = await db.scalar(
            select(Account.id).where(
                Account.email == email.strip().lower(),
                Account.auth_method == AuthMethod.LOCAL.value,
            )
        )
        if account_id is None:
            return None

        stmt = (
            update(Account)
            .where(
                Account.id == account_id,
                Account.email_verified.is_(False),
                Account.verification_token_hash == token_hash,
                Account.verification_expires_at > now,
            )
            .values(
                email_verified=True,
                verification_token_hash=None,
                verification_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if not result.rowcount:  # type: ignore[attr-defined]
            return None
        return account_id

    @staticmethod
    async def get_session_state(
        db: AsyncSession, account_id: uuid.UUID
    ) -> tuple[list[str], int] | None:
        """Read the session membership list and its version.

        Args:
            db: Async database session.
            account_id: UUID of the account.

        Returns:
            (session_tokens, session_version), or None if the account is missing.
        """
        row = (
            await db.execute(
                select(Account.session_tokens, Account.session_version).where(
                    Account.id == account_id
                )
            )
        ).one_or_none()
        if row is None:
            return None
        return list(row.session_tokens or []), row.session_version

    @staticmethod
    async def swap_session_tokens(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        expected_version: int,
        session_tokens: list[str],
    ) -> bool:
        """Compare-and-swap the session membership list.

        Args:
            db: Async database session.
            account_id: UUID of the account.
            expected_version: session_version observed when the list was read.
            session_tokens: New list to store.

        Returns:
            True if the write won, False if another writer changed the list
            first (or the account is gone).
        """
        stmt = (
            update(Account)
            .where(
                Account.id == account_id,
                Account.session_version == expected_version,
            )
            .values(
                session_tokens=session_tokens,
                session_version=Account.session_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def set_role(
        db: AsyncSession, account_id: uuid.UUID, role: Role
    ) -> Account | None:
        """Set the capability role for an account.

        Separated from update_profile() to prevent mass-assignment privilege
        escalation. Only call from explicit admin promotion paths.

        Args:
            db: Async database session.
            account_id: UUID of the account.
            role: New role.

        Returns:
            Updated Account if found, None if the account does not exist.
        """
        account = await AccountRepository.get_by_id(db, account_id)
        if account is None:
            return None
        account.role = role.value
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def delete(db: AsyncSession, account_id: uuid.UUID) -> None:
        """Delete an account row.

        Identity links cascade at the database level. Revocation entries are
        keyed by token and are left for the retention purge.

        Args:
            db: Async database session.
            account_id: UUID of the account.
        """
        await db.execute(
            delete(Account)
            .where(Account.id == account_id)
            .execution_options(synchronize_session="fetch")
        )
