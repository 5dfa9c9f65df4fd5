"""Dashboard and storage analytics over linked accounts and mirrored files.

Storage figures come from each account's cached quota (see QuotaService);
file figures are aggregated from the mirror. Nothing here writes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.logging import get_logger
from drivehub.db.models import ConnectionStatus, LinkedAccount, MirroredFile
from drivehub.schemas.stats import (
    DashboardStatsResponse,
    DashboardSummary,
    DriveFileCounts,
    DriveOwner,
    DriveStorage,
    DriveSummary,
    DriveUsageStats,
    FileStats,
    FileTypeEntry,
    StorageAnalyticsEntry,
    StorageByStatus,
)
from drivehub.services.duplicates import DuplicateService

logger = get_logger(__name__)


def _percentage(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


class AnalyticsService:
    """Service for computing dashboard statistics."""

    def __init__(self, db: AsyncSession):
        """Initialize the analytics service.

        Args:
            db: Async database session.
        """
        self.db = db
        self.duplicates = DuplicateService(db)

    async def get_dashboard_stats(self, user_id: str) -> DashboardStatsResponse:
        """Get the dashboard: summary, per-drive figures and file stats.

        The duplicate report is computed once and used for both the summary
        and the per-drive counts.
        """
        groups = await self.duplicates.find_groups(user_id)
        duplicate_summary = self.duplicates.summarize(groups)
        drives = await self._get_drive_summaries(
            user_id, self.duplicates.files_per_account(groups)
        )
        file_stats = await self._get_file_stats(user_id)
        file_stats.duplicate_files = duplicate_summary.duplicate_files
        file_stats.duplicate_size = duplicate_summary.wasted_space

        total_used = sum(drive.storage.used for drive in drives)
        total_limit = sum(drive.storage.total for drive in drives)

        summary = DashboardSummary(
            total_drives=len(drives),
            total_files=file_stats.total_files,
            total_storage_used=total_used,
            total_storage_limit=total_limit,
            storage_percentage=_percentage(total_used, total_limit),
            duplicate_groups=duplicate_summary.group_count,
            duplicate_files=duplicate_summary.duplicate_files,
            duplicate_size=duplicate_summary.wasted_space,
            shared_files=file_stats.shared_files,
            starred_files=file_stats.starred_files,
            duplicate_percentage=_percentage(
                duplicate_summary.duplicate_files, file_stats.total_files
            ),
        )

        logger.info(
            "dashboard_stats_computed",
            user_id=user_id,
            drives=len(drives),
            files=file_stats.total_files,
        )
        return DashboardStatsResponse(
            summary=summary,
            drives=drives,
            file_stats=file_stats,
            last_updated=datetime.now(timezone.utc),
        )

    async def get_storage_analytics(self, user_id: str) -> list[StorageAnalyticsEntry]:
        """Per-drive storage, heaviest drive first."""
        groups = await self.duplicates.find_groups(user_id)
        drives = await self._get_drive_summaries(
            user_id, self.duplicates.files_per_account(groups)
        )
        entries = [
            StorageAnalyticsEntry(
                drive_id=drive.id,
                owner=DriveOwner(
                    display_name=drive.display_name or "Unknown",
                    email_address=drive.email,
                ),
                storage=drive.storage,
                stats=drive.stats,
            )
            for drive in drives
        ]
        entries.sort(key=lambda e: (-e.storage.used, e.drive_id))
        return entries

    async def get_file_type_distribution(self, user_id: str) -> list[FileTypeEntry]:
        """Count and size of the user's files per MIME type, most common first."""
        result = await self.db.execute(
            select(
                MirroredFile.mime_type,
                func.count(MirroredFile.id).label("count"),
                func.coalesce(func.sum(MirroredFile.size), 0).label("total_size"),
            )
            .where(MirroredFile.user_id == user_id)
            .group_by(MirroredFile.mime_type)
        )
        rows = result.all()
        total = sum(row.count for row in rows)

        distribution = [
            FileTypeEntry(
                mime_type=row.mime_type,
                count=row.count,
                total_size=int(row.total_size),
                percentage=_percentage(row.count, total),
            )
            for row in rows
        ]
        distribution.sort(key=lambda e: (-e.count, e.mime_type))
        return distribution

    async def get_drive_usage_stats(self, user_id: str) -> DriveUsageStats:
        """Drive counts and cached storage per connection status."""
        result = await self.db.execute(
            select(
                LinkedAccount.connection_status,
                func.count(LinkedAccount.id),
                func.coalesce(func.sum(LinkedAccount.used), 0),
            )
            .where(LinkedAccount.user_id == user_id)
            .group_by(LinkedAccount.connection_status)
        )

        counts: dict[ConnectionStatus, int] = {}
        storage: dict[ConnectionStatus, int] = {}
        for status, count, used in result.all():
            status = ConnectionStatus(status)
            counts[status] = count
            storage[status] = int(used)

        total_drives = sum(counts.values())
        total_used = sum(storage.values())
        return DriveUsageStats(
            total_drives=total_drives,
            active_drives=counts.get(ConnectionStatus.ACTIVE, 0),
            error_drives=counts.get(ConnectionStatus.ERROR, 0),
            revoked_drives=counts.get(ConnectionStatus.REVOKED, 0),
            disconnected_drives=counts.get(ConnectionStatus.DISCONNECTED, 0),
            storage_by_status=StorageByStatus(
                **{status.value: used for status, used in storage.items()}
            ),
            average_storage_usage=round(total_used / total_drives, 2) if total_drives else 0.0,
        )

    async def _get_drive_summaries(
        self, user_id: str, duplicate_counts: dict[str, int]
    ) -> list[DriveSummary]:
        accounts = (
            await self.db.execute(
                select(LinkedAccount)
                .where(LinkedAccount.user_id == user_id)
                .order_by(LinkedAccount.created_at, LinkedAccount.id)
            )
        ).scalars().all()

        file_counts = {
            row.account_id: (row.total_files, int(row.total_size))
            for row in await self.db.execute(
                select(
                    MirroredFile.account_id,
                    func.count(MirroredFile.id).label("total_files"),
                    func.coalesce(func.sum(MirroredFile.size), 0).label("total_size"),
                )
                .where(MirroredFile.user_id == user_id)
                .group_by(MirroredFile.account_id)
            )
        }

        drives = []
        for account in accounts:
            total_files, total_size = file_counts.get(account.id, (0, 0))
            drives.append(
                DriveSummary(
                    id=account.id,
                    email=account.email,
                    display_name=account.display_name,
                    connection_status=account.connection_status,
                    storage=DriveStorage(
                        used=account.used,
                        total=account.total,
                        percentage=_percentage(account.used, account.total),
                    ),
                    stats=DriveFileCounts(
                        total_files=total_files,
                        total_size=total_size,
                        duplicate_files=duplicate_counts.get(account.id, 0),
                    ),
                    last_sync=account.last_sync,
                )
            )
        return drives

    async def _get_file_stats(self, user_id: str) -> FileStats:
        row = (
            await self.db.execute(
                select(
                    func.count(MirroredFile.id).label("total_files"),
                    func.coalesce(func.sum(MirroredFile.size), 0).label("total_size"),
                    func.coalesce(
                        func.sum(case((MirroredFile.shared.is_(True), 1), else_=0)), 0
                    ).label("shared_files"),
                    func.coalesce(
                        func.sum(case((MirroredFile.starred.is_(True), 1), else_=0)), 0
                    ).label("starred_files"),
                    func.coalesce(
                        func.sum(case((MirroredFile.trashed.is_(True), 1), else_=0)), 0
                    ).label("trashed_files"),
                ).where(MirroredFile.user_id == user_id)
            )
        ).one()

        return FileStats(
            total_files=row.total_files,
            total_size=int(row.total_size),
            shared_files=int(row.shared_files),
            starred_files=int(row.starred_files),
            trashed_files=int(row.trashed_files),
        )
