"""Pydantic schemas for stats API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from drivehub.db.models import ConnectionStatus
from drivehub.schemas.base import CamelModel


class DriveStorage(CamelModel):
    """Cached quota of one drive."""

    used: int = Field(default=0, description="Bytes used")
    total: int = Field(default=0, description="Quota limit in bytes, 0 if unlimited")
    percentage: float = Field(default=0.0, description="used / total, in percent")


class DriveFileCounts(CamelModel):
    """Mirrored file figures of one drive."""

    total_files: int = Field(default=0, description="Mirrored files and folders")
    total_size: int = Field(default=0, description="Sum of mirrored file sizes")
    duplicate_files: int = Field(
        default=0, description="Files of this drive that belong to a global duplicate group"
    )


class DriveOwner(CamelModel):
    display_name: str
    email_address: str | None = None


class DriveSummary(CamelModel):
    """One drive as shown on the dashboard."""

    id: str
    email: str
    display_name: str
    connection_status: ConnectionStatus
    storage: DriveStorage
    stats: DriveFileCounts
    last_sync: datetime | None = None


class DashboardSummary(CamelModel):
    """Headline numbers across all of a user's drives."""

    total_drives: int = 0
    total_files: int = 0
    total_storage_used: int = 0
    total_storage_limit: int = 0
    storage_percentage: float = 0.0
    duplicate_groups: int = 0
    duplicate_files: int = 0
    duplicate_size: int = Field(default=0, description="Wasted bytes across all groups")
    shared_files: int = 0
    starred_files: int = 0
    duplicate_percentage: float = 0.0


class FileStats(CamelModel):
    """Aggregate figures over the user's mirrored files."""

    total_files: int = 0
    total_size: int = 0
    shared_files: int = 0
    starred_files: int = 0
    trashed_files: int = 0
    duplicate_files: int = 0
    duplicate_size: int = 0


class DashboardStatsResponse(CamelModel):
    """Dashboard statistics response."""

    summary: DashboardSummary
    drives: list[DriveSummary]
    file_stats: FileStats
    last_updated: datetime


class StorageAnalyticsEntry(CamelModel):
    """Storage of one drive, for the storage breakdown view."""

    drive_id: str
    owner: DriveOwner
    storage: DriveStorage
    stats: DriveFileCounts


class FileTypeEntry(CamelModel):
    """Share of one MIME type in the user's files."""

    mime_type: str
    count: int
    total_size: int
    percentage: float


class StorageByStatus(CamelModel):
    active: int = 0
    error: int = 0
    revoked: int = 0
    disconnected: int = 0


class DriveUsageStats(CamelModel):
    """Drive counts and storage grouped by connection status."""

    total_drives: int = 0
    active_drives: int = 0
    error_drives: int = 0
    revoked_drives: int = 0
    disconnected_drives: int = 0
    storage_by_status: StorageByStatus = Field(default_factory=StorageByStatus)
    average_storage_usage: float = 0.0
