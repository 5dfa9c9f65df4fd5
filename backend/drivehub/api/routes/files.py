"""Mirrored file API endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.api.deps import get_client_factory, get_current_user_id, get_refresher
from drivehub.db import get_db
from drivehub.schemas.files import (
    DeleteFilesRequest,
    DeleteFilesResponse,
    FileFilters,
    FileListResponse,
    FileSearchResponse,
    FileSortField,
    MirroredFileResponse,
    SortOrder,
)
from drivehub.services.files import FileService
from drivehub.services.token_guard import ClientFactory, Refresher

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/", response_model=FileListResponse)
async def list_files(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    account_id: str | None = Query(None, description="Only files of this account"),
    search: str | None = Query(None, description="Substring of name or MIME type"),
    mime_type: list[str] | None = Query(None, description="Allowed MIME types"),
    shared: bool | None = Query(None),
    starred: bool | None = Query(None),
    trashed: bool | None = Query(None),
    min_size: int | None = Query(None, ge=0),
    max_size: int | None = Query(None, ge=0),
    modified_after: datetime | None = Query(None),
    sort_by: FileSortField = Query(FileSortField.MODIFIED_TIME),
    sort_order: SortOrder = Query(SortOrder.DESC),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> FileListResponse:
    """List mirrored files across all linked accounts."""
    filters = FileFilters(
        account_id=account_id,
        search=search,
        mime_types=mime_type,
        shared=shared,
        starred=starred,
        trashed=trashed,
        min_size=min_size,
        max_size=max_size,
        modified_after=modified_after,
    )
    return await FileService(db).list_files(
        user_id, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )


@router.get("/search", response_model=FileSearchResponse)
async def search_files(
    q: str = Query(..., min_length=1, description="Search query"),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> FileSearchResponse:
    """Search mirrored files by name or description."""
    files = await FileService(db).search(user_id, q, limit=limit)
    return FileSearchResponse(
        items=[MirroredFileResponse.model_validate(f) for f in files],
        total=len(files),
    )


@router.post("/delete", response_model=DeleteFilesResponse)
async def delete_files(
    request: DeleteFilesRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory | None = Depends(get_client_factory),
    refresher: Refresher | None = Depends(get_refresher),
) -> DeleteFilesResponse:
    """Delete files from their Drive and from the mirror."""
    service = FileService(db, client_factory=client_factory, refresher=refresher)
    return await service.delete_files(user_id, request.file_ids)
