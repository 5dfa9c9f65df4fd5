"""Multi-account sync orchestrator.

A sync runs one pipeline per linked account:

    SyncLock -> TokenRefreshGuard -> DriveListingFetcher -> MirrorUpsertEngine

Pipelines run concurrently (bounded by ``sync_max_concurrency``), each with
its own database session and transaction. A failing account is rolled back
and its health updated; it never affects its siblings. The caller always
gets a SyncReport, never an exception, for per-account failures.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drivehub.core.config import settings
from drivehub.core.logging import get_logger
from drivehub.db.models import ConnectionStatus, LinkedAccount
from drivehub.db.session import async_session_maker
from drivehub.services.account_health import AccountHealthService
from drivehub.services.accounts import AccountNotFoundError
from drivehub.services.drive_listing import DriveListingFetcher
from drivehub.services.errors import DriveAuthError, DriveError, classify_error
from drivehub.services.mirror import MirrorUpsertEngine
from drivehub.services.token_guard import ClientFactory, Refresher, TokenRefreshGuard

logger = get_logger(__name__)


class SyncLock:
    """Process-local set of accounts with a pipeline in flight.

    A second request for a locked account is skipped rather than queued.
    """

    _instance: SyncLock | None = None

    def __init__(self) -> None:
        self._active: set[str] = set()

    @classmethod
    def get_instance(cls) -> SyncLock:
        """Get the singleton instance of SyncLock."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    def try_acquire(self, account_id: str) -> bool:
        """Claim ``account_id``; False if a pipeline already holds it."""
        if account_id in self._active:
            return False
        self._active.add(account_id)
        return True

    def release(self, account_id: str) -> None:
        self._active.discard(account_id)

    def is_locked(self, account_id: str) -> bool:
        return account_id in self._active


class SyncSkipped(Exception):
    """Raised by a pipeline that did not run."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class RevokedAccount:
    id: str
    email: str


@dataclass
class SyncFailure:
    account_id: str
    email: str
    error: str


@dataclass
class SkippedAccount:
    account_id: str
    email: str
    reason: str


@dataclass
class SyncReport:
    """Outcome of one sync request across accounts."""

    success_count: int = 0
    failed_count: int = 0
    files_synced: int = 0
    revoked_accounts: list[RevokedAccount] = field(default_factory=list)
    errors: list[SyncFailure] = field(default_factory=list)
    skipped: list[SkippedAccount] = field(default_factory=list)

    def record_success(self, files: int) -> None:
        self.success_count += 1
        self.files_synced += files

    def record_failure(self, account_id: str, email: str, error: BaseException) -> None:
        """Count a failed account; auth failures are listed for reconnection."""
        self.failed_count += 1
        if isinstance(error, DriveAuthError):
            self.revoked_accounts.append(
                RevokedAccount(id=error.account_id or account_id, email=error.email or email)
            )
        else:
            message = getattr(error, "message", None) or str(error) or "Unknown error"
            self.errors.append(SyncFailure(account_id=account_id, email=email, error=message))

    def record_skipped(self, account_id: str, email: str, reason: str) -> None:
        self.skipped.append(SkippedAccount(account_id=account_id, email=email, reason=reason))

    @property
    def success(self) -> bool:
        return self.success_count > 0 or self.failed_count == 0

    @property
    def message(self) -> str:
        """Human readable summary, e.g. for a toast in the UI."""
        if not (self.success_count or self.failed_count or self.skipped):
            return "No active drive accounts found"
        message = f"Sync completed: {self.success_count} account(s) synced successfully"
        if self.failed_count > 0:
            message += f", {self.failed_count} failed"
        if self.revoked_accounts:
            message += f". {len(self.revoked_accounts)} account(s) need reconnection."
        if self.skipped:
            if not message.endswith("."):
                message += "."
            message += f" {len(self.skipped)} account(s) skipped."
        return message


class SyncOrchestrator:
    """Runs per-account sync pipelines and aggregates their outcomes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        client_factory: ClientFactory | None = None,
        refresher: Refresher | None = None,
        fetcher: DriveListingFetcher | None = None,
        lock: SyncLock | None = None,
        max_concurrency: int | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Opens one session per account pipeline.
            client_factory: Passed to each TokenRefreshGuard.
            refresher: Passed to each TokenRefreshGuard.
            fetcher: Listing fetcher shared by all pipelines.
            lock: Per-account lock (defaults to the process-wide one).
            max_concurrency: Pipelines allowed to run at once.
        """
        self.session_factory = session_factory or async_session_maker
        self.client_factory = client_factory
        self.refresher = refresher
        self.fetcher = fetcher or DriveListingFetcher()
        self.lock = lock or SyncLock.get_instance()
        self.max_concurrency = max_concurrency or settings.sync_max_concurrency

    async def sync_all(self, user_id: str, include_errored: bool = False) -> SyncReport:
        """Sync every syncable account of a user.

        Args:
            user_id: Owner of the accounts.
            include_errored: Also retry accounts currently in ``error``.

        Returns:
            Report of the settled pipelines.
        """
        statuses = [ConnectionStatus.ACTIVE]
        if include_errored:
            statuses.append(ConnectionStatus.ERROR)

        async with self.session_factory() as db:
            result = await db.execute(
                select(LinkedAccount.id, LinkedAccount.email)
                .where(
                    LinkedAccount.user_id == user_id,
                    LinkedAccount.connection_status.in_(statuses),
                )
                .order_by(LinkedAccount.created_at, LinkedAccount.id)
            )
            targets = [(row.id, row.email) for row in result]

        logger.info("sync_started", user_id=user_id, accounts=len(targets))

        report = SyncReport()
        if not targets:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(account_id: str) -> int:
            async with semaphore:
                return await self._run_pipeline(account_id)

        outcomes = await asyncio.gather(
            *(bounded(account_id) for account_id, _ in targets),
            return_exceptions=True,
        )
        for (account_id, email), outcome in zip(targets, outcomes):
            self._record(report, account_id, email, outcome)

        logger.info(
            "sync_completed",
            user_id=user_id,
            succeeded=report.success_count,
            failed=report.failed_count,
            revoked=len(report.revoked_accounts),
            skipped=len(report.skipped),
            files=report.files_synced,
        )
        return report

    async def sync_account(self, user_id: str, account_id: str) -> SyncReport:
        """Sync a single account on explicit request.

        Accounts in ``error`` are allowed and recover on success; revoked
        accounts are reported for reconnection without any network call.

        Raises:
            AccountNotFoundError: If the account does not belong to the user.
        """
        async with self.session_factory() as db:
            account = await db.scalar(
                select(LinkedAccount).where(
                    LinkedAccount.id == account_id, LinkedAccount.user_id == user_id
                )
            )
            if account is None:
                raise AccountNotFoundError(account_id)
            email = account.email
            status = ConnectionStatus(account.connection_status)

        report = SyncReport()
        if status == ConnectionStatus.DISCONNECTED:
            report.record_skipped(account_id, email, "Account is disconnected")
            return report

        try:
            outcome: int | BaseException = await self._run_pipeline(account_id)
        except Exception as e:
            outcome = e
        self._record(report, account_id, email, outcome)
        return report

    async def _run_pipeline(self, account_id: str) -> int:
        """Sync one account in its own session.

        Returns:
            Number of files written.

        Raises:
            SyncSkipped: If another pipeline holds the account.
            DriveError: Classified failure (already applied to the account's health).
        """
        if not self.lock.try_acquire(account_id):
            raise SyncSkipped("Sync already in progress for this account")

        try:
            async with self.session_factory() as db:
                account = await db.get(LinkedAccount, account_id)
                if account is None:
                    raise SyncSkipped("Account was removed")
                return await self._sync(db, account)
        finally:
            self.lock.release(account_id)

    async def _sync(self, db: AsyncSession, account: LinkedAccount) -> int:
        account_id = account.id
        email = account.email
        health = AccountHealthService(db)
        guard = TokenRefreshGuard(
            db,
            health=health,
            client_factory=self.client_factory,
            refresher=self.refresher,
        )
        recovering = account.connection_status == ConnectionStatus.ERROR

        logger.debug("account_sync_started", account_id=account_id, email=email)
        try:
            async with guard.authorized(account) as client:
                records = await self.fetcher.fetch(account, client)
            written = await MirrorUpsertEngine(db).upsert(account, records)
            account.last_sync = datetime.now(timezone.utc)
            await db.commit()
        except Exception as e:
            await db.rollback()
            await db.refresh(account)
            error = classify_error(e, account)
            logger.warning(
                "account_sync_failed",
                account_id=account_id,
                email=email,
                error=error.message,
                error_type=type(error).__name__,
            )
            if isinstance(error, DriveAuthError):
                await health.mark_revoked(account, reason=error.message)
            else:
                await health.mark_error(account, reason=error.message)
            raise error from e

        if recovering:
            await health.mark_active(account)

        logger.info("account_synced", account_id=account_id, email=email, files=written)
        return written

    @staticmethod
    def _record(
        report: SyncReport, account_id: str, email: str, outcome: int | BaseException
    ) -> None:
        if isinstance(outcome, SyncSkipped):
            report.record_skipped(account_id, email, outcome.reason)
        elif isinstance(outcome, BaseException):
            if not isinstance(outcome, DriveError):
                logger.error(
                    "account_sync_crashed",
                    account_id=account_id,
                    email=email,
                    error=str(outcome),
                    exc_info=outcome,
                )
            report.record_failure(account_id, email, outcome)
        else:
            report.record_success(outcome)
