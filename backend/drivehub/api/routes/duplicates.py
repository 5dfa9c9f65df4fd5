"""Duplicate detection API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.api.deps import get_current_user_id
from drivehub.core.config import settings
from drivehub.db import get_db
from drivehub.schemas.duplicates import DuplicateListResponse, DuplicateSummary
from drivehub.services.duplicates import DuplicateService

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


@router.get("/", response_model=DuplicateListResponse)
async def list_duplicates(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int | None = Query(None, ge=1, le=500, description="Groups per page"),
    account_id: str | None = Query(None, description="Group only this account's files"),
    algorithm: str = Query("name_size", description="Grouping algorithm"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DuplicateListResponse:
    """List duplicate groups, most wasted space first."""
    try:
        return await DuplicateService(db).list_groups(
            user_id,
            account_id=account_id,
            page=page,
            limit=limit or settings.duplicate_page_limit,
            algorithm=algorithm,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/summary", response_model=DuplicateSummary)
async def duplicate_summary(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DuplicateSummary:
    """Totals over all of the user's duplicate groups, across accounts."""
    service = DuplicateService(db)
    return service.summarize(await service.find_groups(user_id))
