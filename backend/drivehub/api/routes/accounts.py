"""Linked account API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drivehub.api.deps import get_client_factory, get_current_user_id, get_refresher
from drivehub.core.logging import get_logger
from drivehub.db import get_db
from drivehub.db.session import get_session_factory
from drivehub.schemas.accounts import (
    LinkedAccountList,
    LinkedAccountResponse,
    OAuthAuthorizeRequest,
    OAuthAuthorizeResponse,
    OAuthCallbackRequest,
    UnlinkResponse,
)
from drivehub.services.accounts import (
    AccountNotFoundError,
    AccountService,
    GoogleOAuthError,
    OAuthNotConfiguredError,
)
from drivehub.services.quota import QuotaService
from drivehub.services.token_guard import ClientFactory, Refresher

router = APIRouter(prefix="/accounts", tags=["accounts"])
logger = get_logger(__name__)


@router.get("/", response_model=LinkedAccountList)
async def list_accounts(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ClientFactory | None = Depends(get_client_factory),
    refresher: Refresher | None = Depends(get_refresher),
) -> LinkedAccountList:
    """List linked accounts, refreshing stale storage quotas first."""
    quota = QuotaService(session_factory, client_factory=client_factory, refresher=refresher)
    await quota.refresh_all(user_id)

    accounts = await AccountService(db).list_accounts(user_id)
    return LinkedAccountList(
        items=[LinkedAccountResponse.model_validate(a) for a in accounts],
        total=len(accounts),
    )


@router.post("/oauth/authorize", response_model=OAuthAuthorizeResponse)
async def authorize(
    request: OAuthAuthorizeRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> OAuthAuthorizeResponse:
    """Get the Google consent URL for linking another account."""
    try:
        url = AccountService(db).get_oauth_url(state=request.state)
    except OAuthNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return OAuthAuthorizeResponse(authorization_url=url)


@router.post("/oauth/callback", response_model=LinkedAccountResponse)
async def oauth_callback(
    request: OAuthCallbackRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> LinkedAccountResponse:
    """Complete the consent flow and link (or re-link) the account."""
    try:
        account = await AccountService(db).handle_oauth_callback(user_id, request.code)
    except GoogleOAuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return LinkedAccountResponse.model_validate(account)


@router.delete("/{account_id}", response_model=UnlinkResponse)
async def unlink_account(
    account_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UnlinkResponse:
    """Unlink an account and remove all of its mirrored files."""
    try:
        removed = await AccountService(db).unlink_account(user_id, account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail="Drive account not found") from e
    return UnlinkResponse(account_id=account_id, files_removed=removed)
