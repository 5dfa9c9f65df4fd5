"""Pydantic schemas for duplicate detection API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from drivehub.schemas.base import CamelModel


class DuplicateMember(CamelModel):
    """A file in a duplicate group, annotated with its owning account."""

    id: str
    remote_file_id: str
    name: str
    size: int
    mime_type: str
    modified_time: datetime | None = None
    web_view_link: str | None = None
    icon_link: str | None = None
    thumbnail_link: str | None = None
    account_id: str
    account_email: str | None = None
    account_name: str | None = None


class DuplicateGroup(CamelModel):
    """Files sharing the same group key (name and size by default)."""

    id: str = Field(description="Group key")
    name: str
    size: int
    count: int
    files: list[DuplicateMember]
    total_wasted_space: int = Field(description="(count - 1) * size")


class DuplicateSummary(CamelModel):
    """Totals over a set of duplicate groups."""

    group_count: int = 0
    duplicate_files: int = Field(default=0, description="Files belonging to any group")
    wasted_space: int = Field(default=0, description="Bytes recoverable across all groups")


class DuplicateListResponse(CamelModel):
    """Page of duplicate groups."""

    items: list[DuplicateGroup]
    total: int
    page: int
    limit: int
    pages: int
    summary: DuplicateSummary
