"""Identity link model - external provider identity to account mapping.

One row per (provider, provider_subject_id). Created on the first successful
provider sign-in, never mutated afterwards. An account holds at most one link
per provider.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from moviesaw.models.base import Base

if TYPE_CHECKING:
    from moviesaw.models.account import Account


class IdentityLink(Base):
    """Link from a provider identity to an account.

    Attributes:
        id: UUID primary key.
        account_id: FK to accounts table.
        provider: Provider name ("google", "facebook").
        provider_subject_id: Provider's unique user id.
        created_at: Record creation timestamp.
    """

    __tablename__ = "identity_links"
    __table_args__ = (
        UniqueConstraint(
            "provider",
            "provider_subject_id",
            name="uq_identity_links_provider_subject",
        ),
        UniqueConstraint(
            "account_id",
            "provider",
            name="uq_identity_links_account_provider",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    account: Mapped["Account"] = relationship(
        "Account", back_populates="identity_links"
    )
