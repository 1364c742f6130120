"""Tests for the provider sign-in merge.

Returning identities, linking to an account under another sign-in method,
the pre-hijack defense, and convergence when two first sign-ins race.
"""

from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from moviesaw.core.account_linking import ExternalIdentity, sign_in_with_provider
from moviesaw.core.errors import LinkingRequiresVerificationError
from moviesaw.models.account import AuthMethod
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.repositories.identity_link_repository import IdentityLinkRepository
from moviesaw.services import identity_links
from tests.conftest import make_local_account


def _google(
    *,
    subject_id: str = "google-sub-1",
    email: str = "viewer@example.com",
    name: str = "Google Viewer",
    avatar_url: str | None = "https://example.com/a.jpg",
    verified: bool = True,
) -> ExternalIdentity:
    return ExternalIdentity(
        provider="google",
        subject_id=subject_id,
        email=email,
        display_name=name,
        avatar_url=avatar_url,
        email_verified_by_provider=verified,
    )


def _facebook(
    *, subject_id: str = "fb-sub-1", email: str = "viewer@example.com"
) -> ExternalIdentity:
    return ExternalIdentity(
        provider="facebook",
        subject_id=subject_id,
        email=email,
        display_name="Facebook Viewer",
    )


class TestNewAccount:
    """Unknown identity and unknown email registers a provider account."""

    async def test_creates_provider_account(self, db_session: AsyncSession):
        """A new Google account is created and linked."""
        account, created = await sign_in_with_provider(db_session, _google())

        assert created is True
        assert account.auth_method == AuthMethod.GOOGLE.value
        assert account.provider_subject_id == "google-sub-1"
        assert account.password_hash is None
        assert account.name == "Google Viewer"
        assert account.avatar_url == "https://example.com/a.jpg"
        assert account.email_verified is True

        link = await IdentityLinkRepository.get_by_provider_subject(
            db_session, "google", "google-sub-1"
        )
        assert link is not None
        assert link.account_id == account.id

    async def test_unverified_provider_email(self, db_session: AsyncSession):
        """Facebook makes no verification claim; the account is unverified."""
        account, created = await sign_in_with_provider(db_session, _facebook())

        assert created is True
        assert account.email_verified is False

    async def test_email_is_normalized(self, db_session: AsyncSession):
        """Provider emails are stored lower-case."""
        account, _ = await sign_in_with_provider(
            db_session, _google(email="Mixed@Example.COM")
        )

        assert account.email == "mixed@example.com"


class TestReturningIdentity:
    """A linked identity signs straight back in."""

    async def test_returns_same_account(self, db_session: AsyncSession):
        """The second sign-in finds the first account."""
        first, _ = await sign_in_with_provider(db_session, _google())

        second, created = await sign_in_with_provider(db_session, _google())

        assert created is False
        assert second.id == first.id

    async def test_refreshes_cached_profile(self, db_session: AsyncSession):
        """Provider name and avatar changes are copied onto the account."""
        first, _ = await sign_in_with_provider(db_session, _google())

        again, _ = await sign_in_with_provider(
            db_session,
            _google(name="Renamed", avatar_url="https://example.com/b.jpg"),
        )

        assert again.id == first.id
        assert again.name == "Renamed"
        assert again.avatar_url == "https://example.com/b.jpg"

    async def test_missing_avatar_keeps_cached_one(self, db_session: AsyncSession):
        """A profile without a picture does not clear the stored avatar."""
        await sign_in_with_provider(db_session, _google())

        again, _ = await sign_in_with_provider(db_session, _google(avatar_url=None))

        assert again.avatar_url == "https://example.com/a.jpg"

    async def test_email_change_at_provider_is_ignored(
        self, db_session: AsyncSession
    ):
        """Resolution is by subject id; the email is not consulted."""
        first, _ = await sign_in_with_provider(db_session, _google())

        again, created = await sign_in_with_provider(
            db_session, _google(email="changed@example.com")
        )

        assert created is False
        assert again.id == first.id

    async def test_linked_local_account_keeps_its_profile(
        self, db_session: AsyncSession
    ):
        """A local account signing in through Google keeps its own name."""
        local = await make_local_account(db_session)
        await sign_in_with_provider(db_session, _google())

        again, _ = await sign_in_with_provider(db_session, _google(name="Other"))

        assert again.id == local.id
        assert again.name == "Viewer"


class TestLinkToExistingAccount:
    """Same email under another sign-in method."""

    async def test_links_verified_provider_to_local_account(
        self, db_session: AsyncSession
    ):
        """A verified Google email links to the local account."""
        local = await make_local_account(db_session)

        account, created = await sign_in_with_provider(db_session, _google())

        assert created is False
        assert account.id == local.id
        assert account.auth_method == AuthMethod.LOCAL.value
        found = await identity_links.find_linked_account(
            db_session, "google", "google-sub-1"
        )
        assert found.id == local.id

    async def test_pending_local_account_is_not_linked(
        self, db_session: AsyncSession
    ):
        """Pre-registration takeover: an unverified local account is not joined."""
        await make_local_account(db_session, verified=False)

        with pytest.raises(LinkingRequiresVerificationError):
            await sign_in_with_provider(db_session, _google())

        assert (
            await identity_links.find_linked_account(
                db_session, "google", "google-sub-1"
            )
            is None
        )

    async def test_unverified_provider_email_is_rejected(
        self, db_session: AsyncSession
    ):
        """Pre-hijack defense: no link without provider verification."""
        await make_local_account(db_session)

        with pytest.raises(LinkingRequiresVerificationError):
            await sign_in_with_provider(db_session, _facebook())

        assert (
            await identity_links.find_linked_account(db_session, "facebook", "fb-sub-1")
            is None
        )
        accounts = await AccountRepository.list_by_email(
            db_session, "viewer@example.com"
        )
        assert len(accounts) == 1

    async def test_links_to_other_provider_account(self, db_session: AsyncSession):
        """A verified Google email links to an existing Facebook account."""
        fb_account, _ = await sign_in_with_provider(db_session, _facebook())

        account, created = await sign_in_with_provider(db_session, _google())

        assert created is False
        assert account.id == fb_account.id

    async def test_prefers_local_account(self, db_session: AsyncSession):
        """With local and Facebook accounts for the email, local is chosen."""
        await sign_in_with_provider(db_session, _facebook())
        local = await make_local_account(db_session)

        account, _ = await sign_in_with_provider(db_session, _google())

        assert account.id == local.id


class TestConcurrentFirstSignIn:
    """Two first sign-ins for one identity converge on one account."""

    async def test_loser_adopts_winner(self, db_session: AsyncSession):
        """If the identity gets linked mid-flight, the new account is dropped."""
        winner, _ = await sign_in_with_provider(
            db_session, _google(subject_id="racy", email="first@example.com")
        )
        real_find = identity_links.find_linked_account
        calls: list[str] = []

        async def miss_once(db, provider, subject):
            calls.append(subject)
            if len(calls) == 1:
                # The other request has not committed yet when we look
                return None
            return await real_find(db, provider, subject)

        with patch(
            "moviesaw.core.account_linking.identity_links.find_linked_account",
            miss_once,
        ):
            account, created = await sign_in_with_provider(
                db_session, _google(subject_id="racy", email="second@example.com")
            )

        assert created is False
        assert account.id == winner.id
        assert await AccountRepository.list_by_email(db_session, "second@example.com") == []
