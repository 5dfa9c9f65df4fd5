"""Tests for the storage quota cache."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from conftest import USER_ID, FakeClientFactory, FakeDriveClient, FakeRefresher, reload_account
from drivehub.db.models import ConnectionStatus
from drivehub.services.quota import QuotaService

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def quota_service(session_factory, clients: dict[str, FakeDriveClient], ttl: int = 300) -> QuotaService:
    return QuotaService(
        session_factory=session_factory,
        client_factory=FakeClientFactory(clients),
        refresher=FakeRefresher(),
        ttl=ttl,
        clock=lambda: NOW,
    )


class TestRefreshAll:
    """TTL handling across accounts."""

    @pytest.mark.asyncio
    async def test_never_fetched_is_refreshed(self, session_factory, make_account):
        account = await make_account()
        service = quota_service(
            session_factory,
            {"alice@example.com": FakeDriveClient(quota={"usage": "1234", "limit": "5000"})},
        )

        assert await service.refresh_all(USER_ID) == 1

        stored = await reload_account(session_factory, account.id)
        assert stored.used == 1234
        assert stored.total == 5000
        assert stored.last_fetched is not None

    @pytest.mark.asyncio
    async def test_fresh_cache_is_kept(self, session_factory, make_account):
        await make_account(used=10, total=20, last_fetched=NOW - timedelta(seconds=60))
        service = quota_service(session_factory, {})

        assert await service.refresh_all(USER_ID) == 0
        assert service.client_factory.calls == []

    @pytest.mark.asyncio
    async def test_stale_cache_is_refreshed(self, session_factory, make_account):
        account = await make_account(used=10, total=20, last_fetched=NOW - timedelta(seconds=301))
        client = FakeDriveClient(quota={"usage": "777", "limit": "9000"})
        service = quota_service(session_factory, {"alice@example.com": client})

        assert await service.refresh_all(USER_ID) == 1

        assert client.quota_calls == 1
        stored = await reload_account(session_factory, account.id)
        assert stored.used == 777
        assert stored.total == 9000
        assert stored.last_fetched.replace(tzinfo=timezone.utc) == NOW

    @pytest.mark.asyncio
    async def test_force_ignores_ttl(self, session_factory, make_account):
        await make_account(last_fetched=NOW)
        service = quota_service(session_factory, {})

        assert await service.refresh_all(USER_ID, force=True) == 1

    @pytest.mark.asyncio
    async def test_revoked_accounts_are_skipped(self, session_factory, make_account):
        await make_account(status=ConnectionStatus.REVOKED, access_token=None, refresh_token=None)
        service = quota_service(session_factory, {})

        assert await service.refresh_all(USER_ID) == 0
        assert service.client_factory.calls == []

    @pytest.mark.asyncio
    async def test_unlimited_quota(self, session_factory, make_account):
        account = await make_account()
        service = quota_service(
            session_factory, {"alice@example.com": FakeDriveClient(quota={"usage": "42"})}
        )

        await service.refresh_all(USER_ID)

        stored = await reload_account(session_factory, account.id)
        assert stored.used == 42
        assert stored.total == 0


class TestRefreshFailures:
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_values(self, session_factory, make_account):
        account = await make_account(used=10, total=20)
        client = FakeDriveClient()
        client.quota_error = TimeoutError("timed out")
        service = quota_service(session_factory, {"alice@example.com": client})

        assert await service.refresh_account(account.id) is False

        stored = await reload_account(session_factory, account.id)
        assert stored.used == 10
        assert stored.total == 20
        assert stored.last_fetched is None
        assert stored.connection_status == ConnectionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_missing_account(self, session_factory):
        assert await quota_service(session_factory, {}).refresh_account("missing") is False


class TestIsStale:
    def test_naive_timestamp_is_utc(self):
        service = QuotaService(ttl=300, clock=lambda: NOW)
        account = SimpleNamespace(last_fetched=NOW.replace(tzinfo=None) - timedelta(seconds=10))

        assert service.is_stale(account) is False
