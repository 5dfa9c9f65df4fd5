"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Create a temporary directory for test paths
_test_tmp_dir = tempfile.mkdtemp(prefix="drivehub_test_")

# Set config BEFORE importing drivehub modules
os.environ["DRIVEHUB_CONFIG_PATH"] = _test_tmp_dir
os.environ.setdefault("DRIVEHUB_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DRIVEHUB_GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("DRIVEHUB_GOOGLE_CLIENT_SECRET", "test-client-secret")

from drivehub.core.security import get_token_cipher
from drivehub.db.base import Base
from drivehub.db.models import ConnectionStatus, LinkedAccount, MirroredFile
from drivehub.services.sync import SyncLock

USER_ID = "user-1"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def db_engine(tmp_path: Path):
    """Create a file-backed test database engine.

    Sync pipelines open their own sessions concurrently, so the database has
    to be shared between connections (an in-memory one is not).
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_drivehub.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_sync_lock():
    """Give every test a fresh process-wide sync lock."""
    SyncLock.reset_instance()
    yield
    SyncLock.reset_instance()


async def reload_account(session_factory, account_id: str) -> LinkedAccount | None:
    """Read an account's committed state through a fresh session."""
    async with session_factory() as session:
        return await session.get(LinkedAccount, account_id)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_account(db_session):
    """Factory that persists a LinkedAccount with encrypted tokens."""
    cipher = get_token_cipher()

    async def _make(
        email: str = "alice@example.com",
        user_id: str = USER_ID,
        status: ConnectionStatus = ConnectionStatus.ACTIVE,
        access_token: str | None = "access-token",
        refresh_token: str | None = "refresh-token",
        expires_in: int = 3600,
        **fields: Any,
    ) -> LinkedAccount:
        account = LinkedAccount(
            user_id=user_id,
            remote_account_id=fields.pop("remote_account_id", f"google-{uuid.uuid4().hex[:8]}"),
            email=email,
            display_name=fields.pop("display_name", email.split("@")[0].title()),
            access_token_encrypted=cipher.encrypt(access_token),
            refresh_token_encrypted=cipher.encrypt(refresh_token),
            token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            connection_status=status,
            **fields,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest.fixture
def make_file(db_session):
    """Factory that persists a MirroredFile row directly."""

    async def _make(account: LinkedAccount, name: str, size: int = 100, **fields: Any) -> MirroredFile:
        file = MirroredFile(
            account_id=account.id,
            user_id=account.user_id,
            remote_file_id=fields.pop("remote_file_id", f"remote-{uuid.uuid4().hex[:10]}"),
            name=name,
            size=size,
            mime_type=fields.pop("mime_type", "text/plain"),
            **fields,
        )
        db_session.add(file)
        await db_session.commit()
        return file

    return _make


def drive_file(file_id: str, name: str | None = None, size: int | None = 100, **extra: Any) -> dict:
    """Build one ``files.list`` entry the way the Drive API returns it."""
    data: dict[str, Any] = {
        "id": file_id,
        "name": name if name is not None else f"{file_id}.txt",
        "mimeType": extra.pop("mimeType", "text/plain"),
        "createdTime": "2024-01-01T10:00:00.000Z",
        "modifiedTime": "2024-02-01T10:00:00.000Z",
    }
    if size is not None:
        data["size"] = str(size)
    data.update(extra)
    return data


# =============================================================================
# Fake Google clients
# =============================================================================


class FakeDriveClient:
    """In-memory stand-in for DriveClient."""

    def __init__(
        self,
        files: list[dict] | None = None,
        fail_on_page: int | None = None,
        error: BaseException | None = None,
        quota: dict | None = None,
        delete_errors: dict[str, BaseException] | None = None,
    ):
        self.files = files or []
        self.fail_on_page = fail_on_page
        self.error = error or TimeoutError("The read operation timed out")
        self.quota = quota if quota is not None else {"usage": "1000", "limit": "10000"}
        self.quota_error: BaseException | None = None
        self.delete_errors = delete_errors or {}
        self.list_calls: list[dict] = []
        self.quota_calls = 0
        self.deleted: list[str] = []
        self.credentials: Any = None

    async def list_files(self, page_size: int, fields: str, page_token: str | None = None) -> dict:
        self.list_calls.append({"page_size": page_size, "page_token": page_token})
        page = len(self.list_calls)
        if self.fail_on_page is not None and page >= self.fail_on_page:
            raise self.error

        start = int(page_token) if page_token else 0
        end = start + page_size
        response: dict[str, Any] = {"files": self.files[start:end]}
        if end < len(self.files):
            response["nextPageToken"] = str(end)
        return response

    async def get_storage_quota(self) -> dict:
        self.quota_calls += 1
        if self.quota_error is not None:
            raise self.quota_error
        return self.quota

    async def delete_file(self, file_id: str) -> None:
        if file_id in self.delete_errors:
            raise self.delete_errors[file_id]
        self.deleted.append(file_id)


class FakeClientFactory:
    """Hands out a FakeDriveClient per account email."""

    def __init__(self, clients: dict[str, FakeDriveClient] | None = None):
        self.clients = clients or {}
        self.calls: list[str] = []

    def __call__(self, account: LinkedAccount, credentials: Any) -> FakeDriveClient:
        self.calls.append(account.email)
        client = self.clients.setdefault(account.email, FakeDriveClient())
        client.credentials = credentials
        return client


class FakeRefresher:
    """Refresh-token exchange that succeeds or raises a given error."""

    def __init__(self, error: BaseException | None = None, token: str = "rotated-token"):
        self.error = error
        self.token = token
        self.calls = 0

    async def __call__(self, credentials: Any) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error
        credentials.token = self.token
        credentials.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)


def invalid_grant_error():
    """RefreshError as google-auth raises it for a revoked refresh token."""
    from google.auth.exceptions import RefreshError

    return RefreshError(
        "invalid_grant: Token has been expired or revoked.",
        {"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
    )


def http_error(status: int, reason: str | None = None, message: str = "error"):
    """googleapiclient HttpError with the given status and reason."""
    import json

    import httplib2
    from googleapiclient.errors import HttpError

    error: dict[str, Any] = {"code": status, "message": message}
    if reason:
        error["errors"] = [{"domain": "usageLimits", "reason": reason, "message": message}]
    return HttpError(
        resp=httplib2.Response({"status": status}),
        content=json.dumps({"error": error}).encode(),
    )


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def refresher() -> FakeRefresher:
    return FakeRefresher()


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp directories after test session."""
    import shutil

    if Path(_test_tmp_dir).exists():
        shutil.rmtree(_test_tmp_dir, ignore_errors=True)
