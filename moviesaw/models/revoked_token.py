"""Revoked token model - explicitly invalidated session tokens.

Entries outlive the token's own expiry by a retention window and are purged
in the background. The revocation record and the token's exp claim are
independent checks, so an entry is never removed early.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from moviesaw.models.base import Base


class RevokedToken(Base):
    """Blacklisted session token.

    No account FK: the registry references tokens, not accounts, and
    survives account deletion.

    Attributes:
        token_hash: SHA-256 hex digest of the token string (primary key).
        expires_at: The token's original expiry.
        revoked_at: When the token was revoked.
    """

    __tablename__ = "revoked_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
