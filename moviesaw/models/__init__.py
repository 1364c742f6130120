"""SQLAlchemy ORM models for the MovieSaw auth backend.

All models are exported from this module for convenient imports:
    from moviesaw.models import Account, IdentityLink, RevokedToken

Three independently keyed stores:
- account.py: Account (credentials, verification state, session membership)
- identity_link.py: IdentityLink (provider identity -> account)
- revoked_token.py: RevokedToken (explicit logout blacklist)
"""

from moviesaw.models.account import Account, AuthMethod, Role
from moviesaw.models.base import Base, TimestampMixin
from moviesaw.models.identity_link import IdentityLink
from moviesaw.models.revoked_token import RevokedToken

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Accounts
    "Account",
    "AuthMethod",
    "Role",
    # Side tables
    "IdentityLink",
    "RevokedToken",
]
