"""Pydantic schemas for mirrored file API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from drivehub.schemas.base import CamelModel


class FileSortField(str, Enum):
    """Sortable columns of the file listing."""

    NAME = "name"
    SIZE = "size"
    MODIFIED_TIME = "modified_time"
    CREATED_TIME = "created_time"
    MIME_TYPE = "mime_type"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FileFilters(CamelModel):
    """Filters for the mirrored file listing."""

    account_id: str | None = None
    search: str | None = Field(default=None, description="Substring of name or MIME type")
    mime_types: list[str] | None = None
    shared: bool | None = None
    starred: bool | None = None
    trashed: bool | None = None
    min_size: int | None = Field(default=None, ge=0)
    max_size: int | None = Field(default=None, ge=0)
    modified_after: datetime | None = None


class MirroredFileResponse(CamelModel):
    """One mirrored file."""

    id: str
    account_id: str
    remote_file_id: str
    name: str
    mime_type: str
    size: int
    created_time: datetime | None = None
    modified_time: datetime | None = None
    parents: list[str] = Field(default_factory=list)
    owners: list[dict[str, Any]] = Field(default_factory=list)
    description: str | None = None
    starred: bool = False
    trashed: bool = False
    shared: bool = False
    web_view_link: str | None = None
    web_content_link: str | None = None
    icon_link: str | None = None
    thumbnail_link: str | None = None


class Pagination(CamelModel):
    """Pagination block of a listing."""

    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class FileListResponse(CamelModel):
    """Paginated mirrored file listing."""

    items: list[MirroredFileResponse]
    pagination: Pagination


class FileSearchResponse(CamelModel):
    """Search results."""

    items: list[MirroredFileResponse]
    total: int


class DeleteFilesRequest(CamelModel):
    """Files to delete, by mirror id."""

    file_ids: list[str] = Field(..., min_length=1, max_length=500)


class FileDeleteOutcome(CamelModel):
    """Result of deleting one file."""

    file_id: str
    deleted: bool
    error: str | None = None
    needs_reconnect: bool = False


class DeleteFilesResponse(CamelModel):
    """Per-file outcomes of a delete request."""

    deleted: int
    failed: int
    results: list[FileDeleteOutcome]
