"""Tests for linking, listing and unlinking Drive accounts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select

from conftest import USER_ID, reload_account
from drivehub.core.config import settings
from drivehub.core.security import get_token_cipher
from drivehub.db.models import ConnectionStatus, MirroredFile
from drivehub.services.accounts import (
    REVOKE_URI,
    AccountNotFoundError,
    AccountService,
    GoogleOAuthError,
    GoogleProfile,
    OAuthNotConfiguredError,
)
from drivehub.services.token_guard import TokenSet


def profile(remote_id: str = "google-123", email: str = "alice@example.com") -> GoogleProfile:
    return GoogleProfile(remote_account_id=remote_id, email=email, display_name="Alice")


class TestLinkAccount:
    """Creating and re-linking accounts."""

    @pytest.mark.asyncio
    async def test_new_account(self, db_session, session_factory):
        expires = datetime.now(timezone.utc) + timedelta(hours=1)
        account = await AccountService(db_session).link_account(
            USER_ID, profile(), TokenSet("access", "refresh", expires)
        )
        await db_session.commit()

        stored = await reload_account(session_factory, account.id)
        cipher = get_token_cipher()
        assert stored.email == "alice@example.com"
        assert stored.display_name == "Alice"
        assert stored.connection_status == ConnectionStatus.ACTIVE
        assert cipher.decrypt(stored.access_token_encrypted) == "access"
        assert cipher.decrypt(stored.refresh_token_encrypted) == "refresh"
        # Never stored in clear text
        assert stored.refresh_token_encrypted != "refresh"

    @pytest.mark.asyncio
    async def test_relink_revoked_account(self, db_session, session_factory, make_account):
        existing = await make_account(
            remote_account_id="google-123",
            status=ConnectionStatus.REVOKED,
            access_token=None,
            refresh_token=None,
            last_error="invalid_grant",
        )

        account = await AccountService(db_session).link_account(
            USER_ID, profile(), TokenSet("new-access", "new-refresh")
        )
        await db_session.commit()

        assert account.id == existing.id
        stored = await reload_account(session_factory, existing.id)
        assert stored.connection_status == ConnectionStatus.ACTIVE
        assert stored.last_error is None
        assert get_token_cipher().decrypt(stored.refresh_token_encrypted) == "new-refresh"

    @pytest.mark.asyncio
    async def test_relink_without_refresh_token_keeps_old_one(
        self, db_session, session_factory, make_account
    ):
        existing = await make_account(remote_account_id="google-123")

        await AccountService(db_session).link_account(
            USER_ID, profile(), TokenSet("new-access", None)
        )
        await db_session.commit()

        stored = await reload_account(session_factory, existing.id)
        assert get_token_cipher().decrypt(stored.refresh_token_encrypted) == "refresh-token"

    @pytest.mark.asyncio
    async def test_same_google_account_for_two_users(self, db_session):
        service = AccountService(db_session)
        first = await service.link_account(USER_ID, profile(), TokenSet("a", "r"))
        second = await service.link_account("user-2", profile(), TokenSet("a", "r"))

        assert first.id != second.id


class TestOAuthFlow:
    """Consent URL and code exchange."""

    def test_authorization_url(self):
        url = AccountService(MagicMock()).get_oauth_url(state="csrf-state")

        assert url.startswith("https://accounts.google.com/o/oauth2/auth")
        assert "client_id=test-client-id" in url
        assert "access_type=offline" in url
        assert "prompt=consent" in url
        assert "state=csrf-state" in url

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id", None)

        with pytest.raises(OAuthNotConfiguredError):
            AccountService(MagicMock()).get_oauth_url()

    @pytest.mark.asyncio
    async def test_callback_links_account(self, db_session):
        credentials = SimpleNamespace(
            token="access",
            refresh_token="refresh",
            expiry=datetime(2030, 1, 1, 12, 0),
            scopes=["https://www.googleapis.com/auth/drive"],
        )
        flow = MagicMock(credentials=credentials)
        user_info = {"id": "google-999", "email": "carol@example.com", "name": "Carol"}

        with (
            patch.object(AccountService, "_build_flow", return_value=flow),
            patch.object(AccountService, "_fetch_user_info", return_value=user_info),
        ):
            account = await AccountService(db_session).handle_oauth_callback(USER_ID, "auth-code")

        flow.fetch_token.assert_called_once_with(code="auth-code")
        assert account.remote_account_id == "google-999"
        assert account.email == "carol@example.com"
        assert account.token_expires_at == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_callback_failure(self, db_session):
        flow = MagicMock()
        flow.fetch_token.side_effect = ValueError("invalid_grant: Bad Request")

        with patch.object(AccountService, "_build_flow", return_value=flow):
            with pytest.raises(GoogleOAuthError):
                await AccountService(db_session).handle_oauth_callback(USER_ID, "bad-code")


class TestListAndGet:
    @pytest.mark.asyncio
    async def test_list_own_accounts(self, db_session, make_account):
        await make_account(email="alice@example.com")
        await make_account(email="bob@example.com", status=ConnectionStatus.ERROR)
        await make_account(email="mallory@example.com", user_id="user-2")

        service = AccountService(db_session)

        assert [a.email for a in await service.list_accounts(USER_ID)] == [
            "alice@example.com",
            "bob@example.com",
        ]
        errored = await service.list_accounts(USER_ID, statuses=[ConnectionStatus.ERROR])
        assert [a.email for a in errored] == ["bob@example.com"]

    @pytest.mark.asyncio
    async def test_get_other_users_account(self, db_session, make_account):
        theirs = await make_account(email="mallory@example.com", user_id="user-2")

        with pytest.raises(AccountNotFoundError):
            await AccountService(db_session).get_account(USER_ID, theirs.id)


class TestUnlinkAccount:
    """Removing an account and its mirror."""

    @pytest.mark.asyncio
    async def test_removes_account_and_files(
        self, db_session, session_factory, make_account, make_file
    ):
        alice = await make_account(email="alice@example.com")
        bob = await make_account(email="bob@example.com")
        await make_file(alice, "a.txt")
        await make_file(alice, "b.txt")
        await make_file(bob, "c.txt")

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
            removed = await AccountService(db_session).unlink_account(USER_ID, alice.id)
            await db_session.commit()

        assert removed == 2
        post.assert_awaited_once()
        assert post.await_args.args[0] == REVOKE_URI
        assert post.await_args.kwargs["params"] == {"token": "refresh-token"}
        assert await reload_account(session_factory, alice.id) is None
        async with session_factory() as session:
            remaining = await session.scalar(select(func.count()).select_from(MirroredFile))
        assert remaining == 1

    @pytest.mark.asyncio
    async def test_revoke_failure_still_unlinks(self, db_session, session_factory, make_account):
        account = await make_account()

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=OSError("network down")
        ):
            await AccountService(db_session).unlink_account(USER_ID, account.id)
            await db_session.commit()

        assert await reload_account(session_factory, account.id) is None

    @pytest.mark.asyncio
    async def test_revoked_account_skips_remote_call(self, db_session, make_account):
        account = await make_account(
            status=ConnectionStatus.REVOKED, access_token=None, refresh_token=None
        )

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
            await AccountService(db_session).unlink_account(USER_ID, account.id)

        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session):
        with pytest.raises(AccountNotFoundError):
            await AccountService(db_session).unlink_account(USER_ID, "missing")
