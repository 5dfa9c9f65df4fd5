"""Pydantic schemas for linked account API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from drivehub.db.models import ConnectionStatus
from drivehub.schemas.base import CamelModel


class LinkedAccountResponse(CamelModel):
    """Linked Drive account as shown to its owner. Never includes tokens."""

    id: str
    email: str
    display_name: str
    profile_image_url: str | None = None
    connection_status: ConnectionStatus
    last_error: str | None = None
    used: int = Field(default=0, description="Bytes used (cached)")
    total: int = Field(default=0, description="Quota limit in bytes, 0 if unlimited (cached)")
    last_fetched: datetime | None = Field(default=None, description="When the quota was cached")
    last_sync: datetime | None = Field(default=None, description="Last successful full sync")
    created_at: datetime


class LinkedAccountList(CamelModel):
    """List of linked accounts."""

    items: list[LinkedAccountResponse]
    total: int


class OAuthAuthorizeRequest(CamelModel):
    """Request for a consent URL."""

    state: str | None = Field(default=None, description="Opaque CSRF state echoed back")


class OAuthAuthorizeResponse(CamelModel):
    """Consent URL to redirect the user to."""

    authorization_url: str


class OAuthCallbackRequest(CamelModel):
    """Authorization code returned by Google."""

    code: str = Field(..., min_length=1)
    state: str | None = None


class UnlinkResponse(CamelModel):
    """Result of unlinking an account."""

    account_id: str
    files_removed: int
