"""Grant or revoke the admin role for a local account.

Admin capability is never assignable through the API; it is granted by an
operator with database access.

Usage:
    python -m scripts.promote_admin someone@example.com
    python -m scripts.promote_admin someone@example.com --revoke
"""

import logging
import sys

from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.models.account import AuthMethod, Role
from moviesaw.repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)


async def set_admin(db: AsyncSession, email: str, *, admin: bool = True) -> bool:
    """Set the role of the local account registered under an email.

    Args:
        db: Async database session.
        email: Email of the local account.
        admin: True to grant admin, False to revoke it.

    Returns:
        True if an account was updated, False if none exists.
    """
    account = await AccountRepository.get_by_email_and_method(
        db, email, AuthMethod.LOCAL
    )
    if account is None:
        logger.error("No local account for %s", email)
        return False

    role = Role.ADMIN if admin else Role.USER
    await AccountRepository.set_role(db, account.id, role)
    await db.commit()
    logger.info("Account %s role set to %s", account.id, role.value)
    return True


async def main() -> None:
    """CLI entry point: update the role against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from moviesaw.core.config import settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    args = sys.argv[1:]
    if not args:
        logger.error("Usage: python -m scripts.promote_admin EMAIL [--revoke]")
        sys.exit(2)

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        updated = await set_admin(session, args[0], admin="--revoke" not in args)

    await engine.dispose()
    sys.exit(0 if updated else 1)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
