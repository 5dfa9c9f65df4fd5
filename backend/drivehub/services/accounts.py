"""Linked Google Drive account management: OAuth linking, listing, unlinking."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import timezone
from typing import Any

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.config import settings
from drivehub.core.logging import get_logger
from drivehub.core.security import InvalidToken, TokenCipher, get_token_cipher
from drivehub.db.models import ConnectionStatus, LinkedAccount, MirroredFile
from drivehub.services.drive_client import SCOPES, TOKEN_URI
from drivehub.services.token_guard import TokenSet

logger = get_logger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class GoogleOAuthError(Exception):
    """Raised when the OAuth linking flow fails."""

    pass


class OAuthNotConfiguredError(GoogleOAuthError):
    """Raised when no OAuth client credentials are configured."""

    pass


class AccountNotFoundError(Exception):
    """Raised when an account does not exist or belongs to another user."""

    def __init__(self, account_id: str):
        super().__init__(f"Drive account {account_id} not found")
        self.account_id = account_id


class GoogleProfile(BaseModel):
    """Identity of the Google account that completed consent."""

    remote_account_id: str
    email: str
    display_name: str = ""
    picture: str | None = None
    scopes: list[str] = []


class AccountService:
    """Service for linking, listing and unlinking Drive accounts."""

    def __init__(self, db: AsyncSession, cipher: TokenCipher | None = None):
        """Initialize the account service.

        Args:
            db: AsyncSession for database operations.
            cipher: Token cipher (defaults to the process-wide one).
        """
        self.db = db
        self.cipher = cipher or get_token_cipher()

    # ========== OAuth2 Flow ==========

    def get_oauth_url(self, state: str | None = None) -> str:
        """Get the Google consent URL for linking a new account.

        Args:
            state: Opaque value echoed back to the callback (CSRF protection).

        Raises:
            OAuthNotConfiguredError: If OAuth client credentials are missing.
        """
        flow = self._build_flow()
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",
            state=state,
        )
        return auth_url

    async def handle_oauth_callback(self, user_id: str, code: str) -> LinkedAccount:
        """Exchange an authorization code and link the resulting account.

        Raises:
            GoogleOAuthError: If the exchange or the profile lookup fails.
        """
        flow = self._build_flow()

        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
            creds = flow.credentials
            user_info = await asyncio.to_thread(self._fetch_user_info, creds)
        except Exception as e:
            logger.warning("oauth_callback_failed", user_id=user_id, error=str(e))
            raise GoogleOAuthError(f"OAuth callback failed: {e}") from e

        profile = GoogleProfile(
            remote_account_id=str(user_info.get("id") or user_info.get("email")),
            email=user_info.get("email", "unknown"),
            display_name=user_info.get("name") or "",
            picture=user_info.get("picture"),
            scopes=list(creds.scopes or SCOPES),
        )
        tokens = TokenSet(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expires_at=creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None,
        )
        return await self.link_account(user_id, profile, tokens)

    async def link_account(
        self, user_id: str, profile: GoogleProfile, tokens: TokenSet
    ) -> LinkedAccount:
        """Create or re-link the account identified by ``profile``.

        Re-linking resets the account to ``active``; a consent that did not
        return a new refresh token keeps the stored one.
        """
        account = await self.db.scalar(
            select(LinkedAccount).where(
                LinkedAccount.user_id == user_id,
                LinkedAccount.remote_account_id == profile.remote_account_id,
            )
        )

        created = account is None
        if account is None:
            account = LinkedAccount(
                user_id=user_id,
                remote_account_id=profile.remote_account_id,
            )
            self.db.add(account)

        account.email = profile.email
        account.display_name = profile.display_name
        account.profile_image_url = profile.picture
        account.scopes = profile.scopes
        account.access_token_encrypted = self.cipher.encrypt(tokens.access_token)
        if tokens.refresh_token:
            account.refresh_token_encrypted = self.cipher.encrypt(tokens.refresh_token)
        account.token_expires_at = tokens.expires_at
        account.connection_status = ConnectionStatus.ACTIVE
        account.last_error = None
        await self.db.flush()

        logger.info(
            "account_linked" if created else "account_relinked",
            user_id=user_id,
            account_id=account.id,
            email=account.email,
        )
        return account

    # ========== Account Management ==========

    async def list_accounts(
        self, user_id: str, statuses: Sequence[ConnectionStatus] | None = None
    ) -> list[LinkedAccount]:
        """List a user's accounts, oldest link first."""
        query = select(LinkedAccount).where(LinkedAccount.user_id == user_id)
        if statuses:
            query = query.where(LinkedAccount.connection_status.in_(list(statuses)))
        query = query.order_by(LinkedAccount.created_at, LinkedAccount.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_account(self, user_id: str, account_id: str) -> LinkedAccount:
        """Get one of the user's accounts.

        Raises:
            AccountNotFoundError: If missing or owned by another user.
        """
        account = await self.db.scalar(
            select(LinkedAccount).where(
                LinkedAccount.id == account_id, LinkedAccount.user_id == user_id
            )
        )
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def unlink_account(self, user_id: str, account_id: str) -> int:
        """Unlink an account and drop its mirrored files.

        Token revocation at Google is best effort; the local removal always
        happens.

        Returns:
            Number of mirrored files removed.
        """
        account = await self.get_account(user_id, account_id)
        email = account.email

        await self._revoke_remote(account)

        result = await self.db.execute(
            delete(MirroredFile).where(MirroredFile.account_id == account_id)
        )
        await self.db.delete(account)
        await self.db.flush()

        logger.info(
            "account_unlinked",
            user_id=user_id,
            account_id=account_id,
            email=email,
            files_removed=result.rowcount,
        )
        return result.rowcount or 0

    async def _revoke_remote(self, account: LinkedAccount) -> None:
        try:
            # Revoking the refresh token also invalidates its access tokens
            token = self.cipher.decrypt(account.refresh_token_encrypted) or self.cipher.decrypt(
                account.access_token_encrypted
            )
        except InvalidToken:
            token = None
        if not token:
            return

        try:
            import httpx

            async with httpx.AsyncClient(timeout=settings.google_request_timeout) as client:
                await client.post(REVOKE_URI, params={"token": token})
        except Exception as e:
            logger.warning("token_revoke_failed", account_id=account.id, error=str(e))

    # ========== Helpers ==========

    @staticmethod
    def _build_flow() -> Any:
        if not settings.google_oauth_configured:
            raise OAuthNotConfiguredError(
                "Google OAuth not configured. Set DRIVEHUB_GOOGLE_CLIENT_ID and DRIVEHUB_GOOGLE_CLIENT_SECRET"
            )

        from google_auth_oauthlib.flow import Flow

        return Flow.from_client_config(
            {
                "web": {
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "auth_uri": AUTH_URI,
                    "token_uri": TOKEN_URI,
                }
            },
            scopes=SCOPES,
            redirect_uri=settings.google_redirect_uri,
        )

    @staticmethod
    def _fetch_user_info(creds: Any) -> dict[str, Any]:
        from googleapiclient.discovery import build

        oauth2 = build("oauth2", "v2", credentials=creds, cache_discovery=False)
        return oauth2.userinfo().get().execute()
