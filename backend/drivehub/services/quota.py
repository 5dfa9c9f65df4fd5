"""Storage quota cache for linked accounts.

``used``/``total`` on each account are refreshed from ``about.get`` at most
once per ``quota_cache_ttl``. Dashboard and account listings read the cached
values; a failed refresh keeps the previous ones.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drivehub.core.config import settings
from drivehub.core.logging import get_logger
from drivehub.db.models import ConnectionStatus, LinkedAccount
from drivehub.db.session import async_session_maker
from drivehub.services.errors import classify_error
from drivehub.services.token_guard import ClientFactory, Refresher, TokenRefreshGuard

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaService:
    """Refreshes the cached storage quota of a user's accounts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        client_factory: ClientFactory | None = None,
        refresher: Refresher | None = None,
        ttl: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the quota service.

        Args:
            session_factory: Opens one session per refreshed account.
            client_factory: Passed to the TokenRefreshGuard.
            refresher: Passed to the TokenRefreshGuard.
            ttl: Cache lifetime in seconds (defaults to settings.quota_cache_ttl).
            clock: Returns the current aware UTC time.
        """
        self.session_factory = session_factory or async_session_maker
        self.client_factory = client_factory
        self.refresher = refresher
        self.ttl = settings.quota_cache_ttl if ttl is None else ttl
        self.clock = clock

    def is_stale(self, account: LinkedAccount) -> bool:
        """Whether the account's cached quota is older than the TTL."""
        if account.last_fetched is None:
            return True
        last_fetched = account.last_fetched
        if last_fetched.tzinfo is None:
            last_fetched = last_fetched.replace(tzinfo=timezone.utc)
        return self.clock() - last_fetched >= timedelta(seconds=self.ttl)

    async def refresh_all(self, user_id: str, force: bool = False) -> int:
        """Refresh every stale quota of a user concurrently.

        Revoked and disconnected accounts are never refreshed.

        Returns:
            Number of accounts whose quota was updated.
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(LinkedAccount).where(
                    LinkedAccount.user_id == user_id,
                    LinkedAccount.connection_status.in_(
                        [ConnectionStatus.ACTIVE, ConnectionStatus.ERROR]
                    ),
                )
            )
            accounts = result.scalars().all()
            stale = [account.id for account in accounts if force or self.is_stale(account)]

        if not stale:
            return 0

        outcomes = await asyncio.gather(
            *(self.refresh_account(account_id) for account_id in stale),
            return_exceptions=True,
        )
        refreshed = sum(1 for outcome in outcomes if outcome is True)
        logger.debug("quota_refreshed", user_id=user_id, accounts=len(stale), refreshed=refreshed)
        return refreshed

    async def refresh_account(self, account_id: str) -> bool:
        """Refresh one account's quota in its own session.

        Returns:
            True if the cached values were updated.
        """
        async with self.session_factory() as db:
            account = await db.get(LinkedAccount, account_id)
            if account is None or account.connection_status in (
                ConnectionStatus.REVOKED,
                ConnectionStatus.DISCONNECTED,
            ):
                return False

            guard = TokenRefreshGuard(
                db, client_factory=self.client_factory, refresher=self.refresher
            )
            try:
                async with guard.authorized(account) as client:
                    quota = await client.get_storage_quota()
            except Exception as e:
                error = classify_error(e, account)
                logger.warning(
                    "quota_refresh_failed",
                    account_id=account_id,
                    email=account.email,
                    error=error.message,
                    error_type=type(error).__name__,
                )
                return False

            account.used = int(quota.get("usage") or 0)
            account.total = int(quota.get("limit") or 0)
            account.last_fetched = self.clock()
            await db.commit()
            return True
