"""Dashboard statistics API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.api.deps import get_current_user_id
from drivehub.db import get_db
from drivehub.schemas.stats import (
    DashboardStatsResponse,
    DriveUsageStats,
    FileTypeEntry,
    StorageAnalyticsEntry,
)
from drivehub.services.analytics import AnalyticsService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/dashboard", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DashboardStatsResponse:
    """Get the dashboard summary, per-drive figures and file stats."""
    return await AnalyticsService(db).get_dashboard_stats(user_id)


@router.get("/storage", response_model=list[StorageAnalyticsEntry])
async def get_storage_analytics(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[StorageAnalyticsEntry]:
    """Get per-drive storage usage, heaviest first."""
    return await AnalyticsService(db).get_storage_analytics(user_id)


@router.get("/file-types", response_model=list[FileTypeEntry])
async def get_file_type_distribution(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[FileTypeEntry]:
    """Get file counts per MIME type."""
    return await AnalyticsService(db).get_file_type_distribution(user_id)


@router.get("/drive-usage", response_model=DriveUsageStats)
async def get_drive_usage_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DriveUsageStats:
    """Get drive counts and storage by connection status."""
    return await AnalyticsService(db).get_drive_usage_stats(user_id)
