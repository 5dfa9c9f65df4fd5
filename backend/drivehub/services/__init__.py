"""Business logic services for DriveHub."""

from drivehub.services.accounts import AccountNotFoundError, AccountService
from drivehub.services.analytics import AnalyticsService
from drivehub.services.duplicates import DuplicateService
from drivehub.services.errors import (
    DriveAccountRevokedError,
    DriveAuthError,
    DriveError,
    DriveOperationError,
    DriveTransientError,
)
from drivehub.services.files import FileService
from drivehub.services.quota import QuotaService
from drivehub.services.sync import SyncLock, SyncOrchestrator, SyncReport
from drivehub.services.token_guard import TokenRefreshGuard

__all__ = [
    "AccountNotFoundError",
    "AccountService",
    "AnalyticsService",
    "DriveAccountRevokedError",
    "DriveAuthError",
    "DriveError",
    "DriveOperationError",
    "DriveTransientError",
    "DuplicateService",
    "FileService",
    "QuotaService",
    "SyncLock",
    "SyncOrchestrator",
    "SyncReport",
    "TokenRefreshGuard",
]
