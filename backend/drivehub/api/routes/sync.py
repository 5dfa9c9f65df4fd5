"""Sync API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drivehub.api.deps import get_client_factory, get_current_user_id, get_refresher
from drivehub.db.session import get_session_factory
from drivehub.schemas.sync import SyncReportResponse
from drivehub.services.accounts import AccountNotFoundError
from drivehub.services.sync import SyncOrchestrator
from drivehub.services.token_guard import ClientFactory, Refresher

router = APIRouter(prefix="/sync", tags=["sync"])


def get_orchestrator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ClientFactory | None = Depends(get_client_factory),
    refresher: Refresher | None = Depends(get_refresher),
) -> SyncOrchestrator:
    return SyncOrchestrator(
        session_factory=session_factory,
        client_factory=client_factory,
        refresher=refresher,
    )


@router.post("/", response_model=SyncReportResponse)
async def sync_all(
    include_errored: bool = Query(False, description="Also retry accounts in error"),
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncReportResponse:
    """Sync every active account of the user.

    Per-account failures never fail the request; they are listed in the
    report.
    """
    report = await orchestrator.sync_all(user_id, include_errored=include_errored)
    return SyncReportResponse.model_validate(report)


@router.post("/{account_id}", response_model=SyncReportResponse)
async def sync_account(
    account_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncReportResponse:
    """Sync one account."""
    try:
        report = await orchestrator.sync_account(user_id, account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail="Drive account not found") from e
    return SyncReportResponse.model_validate(report)
