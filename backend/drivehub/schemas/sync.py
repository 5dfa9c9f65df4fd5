"""Pydantic schemas for sync API."""

from __future__ import annotations

from pydantic import Field

from drivehub.schemas.base import CamelModel


class RevokedAccountEntry(CamelModel):
    """Account that needs to be reconnected."""

    id: str
    email: str


class SyncErrorEntry(CamelModel):
    """Account that failed for a non-auth reason."""

    account_id: str
    email: str
    error: str


class SkippedAccountEntry(CamelModel):
    """Account whose pipeline did not run."""

    account_id: str
    email: str
    reason: str


class SyncReportResponse(CamelModel):
    """Outcome of a sync request."""

    success: bool = Field(description="At least one account synced, or nothing failed")
    success_count: int = Field(description="Accounts synced successfully")
    failed_count: int = Field(description="Accounts that failed (including revoked)")
    files_synced: int = Field(default=0, description="Files written across all accounts")
    revoked_accounts: list[RevokedAccountEntry] = Field(default_factory=list)
    errors: list[SyncErrorEntry] = Field(default_factory=list)
    skipped: list[SkippedAccountEntry] = Field(default_factory=list)
    message: str
