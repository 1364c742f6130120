"""Account model - one user identity, local or provider-backed.

The account row owns its session membership list and its pending email
verification token. Identity links and revocation entries live in their own
tables and reference accounts by id.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moviesaw.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from moviesaw.models.identity_link import IdentityLink


class AuthMethod(StrEnum):
    """How an account signs in."""

    LOCAL = "local"
    GOOGLE = "google"
    FACEBOOK = "facebook"


class Role(StrEnum):
    """Capability level checked by admin-gated routes."""

    USER = "user"
    ADMIN = "admin"


class Account(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key (generated at creation).
        name: Display name.
        email: Lower-cased email. Unique only among local accounts.
        password_hash: bcrypt hash. Present iff auth_method is local.
        auth_method: "local", "google" or "facebook".
        provider_subject_id: Provider's user id. Present iff auth_method is a
            provider.
        avatar_url: Profile picture URL (cached from the provider).
        role: "user" or "admin".
        email_verified: Whether the email address has been confirmed.
        verification_token_hash: SHA-256 of the pending verification token.
        verification_expires_at: Expiry of the pending verification token.
        session_tokens: Fingerprints of currently valid session tokens,
            oldest first. Never longer than SESSION_CAP.
        session_version: Incremented on every session_tokens write; used as
            the compare-and-swap guard for membership updates.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint(
            "(auth_method = 'local' AND password_hash IS NOT NULL "
            "AND provider_subject_id IS NULL) OR "
            "(auth_method <> 'local' AND password_hash IS NULL "
            "AND provider_subject_id IS NOT NULL)",
            name="ck_accounts_credentials_match_method",
        ),
        CheckConstraint(
            "auth_method IN ('local', 'google', 'facebook')",
            name="ck_accounts_auth_method",
        ),
        CheckConstraint("role IN ('user', 'admin')", name="ck_accounts_role"),
        # One local account per email; provider accounts may share it
        Index(
            "uq_accounts_local_email",
            "email",
            unique=True,
            postgresql_where=text("auth_method = 'local'"),
            sqlite_where=text("auth_method = 'local'"),
        ),
        Index("ix_accounts_email_method", "email", "auth_method"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    auth_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuthMethod.LOCAL.value,
    )
    provider_subject_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Role.USER.value,
        server_default=text("'user'"),
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    verification_token_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    verification_expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    session_tokens: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    session_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    # Relationships
    identity_links: Mapped[list["IdentityLink"]] = relationship(
        "IdentityLink",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value
