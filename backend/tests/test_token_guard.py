"""Tests for the token refresh guard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import FakeRefresher, invalid_grant_error, reload_account
from drivehub.core.security import get_token_cipher
from drivehub.db.models import ConnectionStatus, MirroredFile
from drivehub.services.errors import (
    DriveAccountRevokedError,
    DriveAuthError,
    DriveTransientError,
)
from drivehub.services.token_guard import DatabaseTokenStore, TokenRefreshGuard, TokenSet


class TestAuthorized:
    """Handing out clients."""

    @pytest.mark.asyncio
    async def test_valid_token_skips_refresh(self, db_session, make_account, client_factory, refresher):
        account = await make_account()
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        async with guard.authorized(account) as client:
            assert client.credentials.token == "access-token"

        assert refresher.calls == 0
        assert client_factory.calls == ["alice@example.com"]

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_persisted(
        self, db_session, session_factory, make_account, client_factory, refresher
    ):
        account = await make_account(expires_in=-60)
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        async with guard.authorized(account) as client:
            assert client.credentials.token == "rotated-token"

        assert refresher.calls == 1
        stored = await reload_account(session_factory, account.id)
        cipher = get_token_cipher()
        assert cipher.decrypt(stored.access_token_encrypted) == "rotated-token"
        # Refresh token untouched
        assert cipher.decrypt(stored.refresh_token_encrypted) == "refresh-token"
        assert stored.token_expires_at is not None

    @pytest.mark.asyncio
    async def test_missing_access_token_is_refreshed(self, db_session, make_account, client_factory, refresher):
        account = await make_account(access_token=None)
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        async with guard.authorized(account):
            pass

        assert refresher.calls == 1

    @pytest.mark.asyncio
    async def test_token_rotated_mid_operation_is_persisted(
        self, db_session, session_factory, make_account, client_factory, refresher
    ):
        account = await make_account()
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        async with guard.authorized(account) as client:
            # What AuthorizedHttp does after a 401
            client.credentials.token = "silently-rotated"
            client.credentials.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

        stored = await reload_account(session_factory, account.id)
        assert get_token_cipher().decrypt(stored.access_token_encrypted) == "silently-rotated"


class TestFailures:
    """Revoked accounts and refresh failures."""

    @pytest.mark.asyncio
    async def test_revoked_account_short_circuits(self, db_session, make_account, client_factory, refresher):
        account = await make_account(status=ConnectionStatus.REVOKED, access_token=None, refresh_token=None)
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAccountRevokedError) as exc_info:
            async with guard.authorized(account):
                pass

        assert exc_info.value.account_id == account.id
        assert refresher.calls == 0
        assert client_factory.calls == []

    @pytest.mark.asyncio
    async def test_disconnected_account_short_circuits(self, db_session, make_account, client_factory):
        account = await make_account(status=ConnectionStatus.DISCONNECTED, expires_in=-60)
        refresher = FakeRefresher(error=invalid_grant_error())
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAccountRevokedError):
            async with guard.authorized(account):
                pass

        assert refresher.calls == 0
        assert client_factory.calls == []
        assert account.connection_status == ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_invalid_grant_revokes_account(self, db_session, session_factory, make_account, client_factory):
        account = await make_account(expires_in=-60)
        refresher = FakeRefresher(error=invalid_grant_error())
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAuthError) as exc_info:
            async with guard.authorized(account):
                pass

        assert exc_info.value.email == "alice@example.com"
        stored = await reload_account(session_factory, account.id)
        assert stored.connection_status == ConnectionStatus.REVOKED
        assert stored.access_token_encrypted is None
        assert stored.refresh_token_encrypted is None
        assert client_factory.calls == []

    @pytest.mark.asyncio
    async def test_transient_refresh_failure_keeps_account(
        self, db_session, session_factory, make_account, client_factory
    ):
        account = await make_account(expires_in=-60)
        refresher = FakeRefresher(error=TimeoutError("timed out"))
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveTransientError):
            async with guard.authorized(account):
                pass

        stored = await reload_account(session_factory, account.id)
        assert stored.connection_status == ConnectionStatus.ACTIVE
        assert stored.refresh_token_encrypted is not None

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token_revokes(
        self, db_session, session_factory, make_account, client_factory, refresher
    ):
        account = await make_account(refresh_token=None, expires_in=-60)
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAuthError):
            async with guard.authorized(account):
                pass

        stored = await reload_account(session_factory, account.id)
        assert stored.connection_status == ConnectionStatus.REVOKED

    @pytest.mark.asyncio
    async def test_undecryptable_token_revokes(self, db_session, session_factory, make_account, client_factory, refresher):
        account = await make_account()
        account.refresh_token_encrypted = "not-a-fernet-token"
        await db_session.commit()
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAuthError):
            async with guard.authorized(account):
                pass

        stored = await reload_account(session_factory, account.id)
        assert stored.connection_status == ConnectionStatus.REVOKED


class TestDatabaseTokenStore:
    @pytest.mark.asyncio
    async def test_set_without_refresh_token_keeps_existing(self, db_session, make_account):
        account = await make_account()
        store = DatabaseTokenStore(db_session)

        await store.set(account.id, TokenSet(access_token="new", refresh_token=None))
        tokens = await store.get(account.id)

        assert tokens.access_token == "new"
        assert tokens.refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_clear(self, db_session, make_account):
        account = await make_account()
        store = DatabaseTokenStore(db_session)

        await store.clear(account.id)
        tokens = await store.get(account.id)

        assert tokens.access_token is None
        assert tokens.refresh_token is None


class TestRevocationKeepsMirror:
    @pytest.mark.asyncio
    async def test_invalid_grant_leaves_mirrored_files(
        self, db_session, session_factory, make_account, make_file, client_factory
    ):
        account = await make_account(expires_in=-60)
        for name in ("a.txt", "b.txt", "c.txt"):
            await make_file(account, name)
        refresher = FakeRefresher(error=invalid_grant_error())
        guard = TokenRefreshGuard(db_session, client_factory=client_factory, refresher=refresher)

        with pytest.raises(DriveAuthError):
            async with guard.authorized(account):
                pass

        stored = await reload_account(session_factory, account.id)
        assert stored.connection_status == ConnectionStatus.REVOKED
        assert stored.refresh_token_encrypted is None
        assert stored.last_error == "invalid_grant: Token has been expired or revoked."
        async with session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(MirroredFile).where(MirroredFile.account_id == account.id)
            )
        assert count == 3
