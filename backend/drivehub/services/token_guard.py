"""Token refresh guard for outbound Drive API calls.

Every Drive operation goes through ``TokenRefreshGuard.authorized``, which
hands out a client with a valid access token and persists any token the
OAuth layer issued along the way through an explicit ``TokenStore``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.config import settings
from drivehub.core.logging import get_logger
from drivehub.core.security import InvalidToken, TokenCipher, get_token_cipher
from drivehub.db.models import ConnectionStatus, LinkedAccount
from drivehub.services.account_health import AccountHealthService
from drivehub.services.drive_client import TOKEN_URI, DriveClient, build_drive_client
from drivehub.services.errors import (
    DriveAccountRevokedError,
    DriveAuthError,
    classify_error,
)

logger = get_logger(__name__)

ClientFactory = Callable[[LinkedAccount, Any], DriveClient]
Refresher = Callable[[Any], Awaitable[None]]


@dataclass
class TokenSet:
    """Decrypted OAuth tokens of one account."""

    access_token: str | None
    refresh_token: str | None
    expires_at: datetime | None = None


class TokenStore(Protocol):
    """Where the guard reads and writes an account's tokens."""

    async def get(self, account_id: str) -> TokenSet: ...

    async def set(self, account_id: str, tokens: TokenSet) -> None: ...

    async def clear(self, account_id: str) -> None: ...


class DatabaseTokenStore:
    """TokenStore backed by the encrypted columns of ``linked_accounts``.

    Writes are committed right away so a rotated token is kept even if the
    operation that triggered the rotation fails later.
    """

    def __init__(self, db: AsyncSession, cipher: TokenCipher | None = None):
        self.db = db
        self.cipher = cipher or get_token_cipher()

    async def get(self, account_id: str) -> TokenSet:
        account = await self._load(account_id)
        return TokenSet(
            access_token=self.cipher.decrypt(account.access_token_encrypted),
            refresh_token=self.cipher.decrypt(account.refresh_token_encrypted),
            expires_at=account.token_expires_at,
        )

    async def set(self, account_id: str, tokens: TokenSet) -> None:
        account = await self._load(account_id)
        account.access_token_encrypted = self.cipher.encrypt(tokens.access_token)
        # Google only sends a refresh token on first consent
        if tokens.refresh_token:
            account.refresh_token_encrypted = self.cipher.encrypt(tokens.refresh_token)
        account.token_expires_at = tokens.expires_at
        await self.db.commit()

    async def clear(self, account_id: str) -> None:
        account = await self._load(account_id)
        account.access_token_encrypted = None
        account.refresh_token_encrypted = None
        account.token_expires_at = None
        await self.db.commit()

    async def _load(self, account_id: str) -> LinkedAccount:
        account = await self.db.get(LinkedAccount, account_id)
        if account is None:
            raise KeyError(account_id)
        return account


async def refresh_credentials(credentials: Any) -> None:
    """Exchange the refresh token for a new access token at Google."""
    from google.auth.transport.requests import Request

    await asyncio.wait_for(
        asyncio.to_thread(credentials.refresh, Request()),
        timeout=settings.google_request_timeout,
    )


class TokenRefreshGuard:
    """Hands out authenticated Drive clients and keeps tokens fresh.

    The LinkedAccount passed in may be stale after a call: token rotation
    rewrites its token columns, and an auth failure revokes it.
    """

    def __init__(
        self,
        db: AsyncSession,
        token_store: TokenStore | None = None,
        health: AccountHealthService | None = None,
        client_factory: ClientFactory | None = None,
        refresher: Refresher | None = None,
    ):
        """Initialize the guard.

        Args:
            db: AsyncSession the accounts are attached to.
            token_store: Token persistence (defaults to the database).
            health: Health state machine used on auth failures.
            client_factory: Builds a DriveClient from google-auth credentials.
            refresher: Performs the refresh-token exchange.
        """
        self.db = db
        self.token_store = token_store or DatabaseTokenStore(db)
        self.health = health or AccountHealthService(db)
        self.client_factory = client_factory or build_drive_client
        self.refresher = refresher or refresh_credentials

    @asynccontextmanager
    async def authorized(self, account: LinkedAccount) -> AsyncIterator[DriveClient]:
        """Yield a Drive client for one logical operation on ``account``.

        Raises:
            DriveAccountRevokedError: If the account is revoked or disconnected.
            DriveAuthError: If the token exchange is rejected.
            DriveTransientError: If the token exchange hit a network problem.
        """
        account_id = account.id
        email = account.email

        if account.connection_status in (ConnectionStatus.REVOKED, ConnectionStatus.DISCONNECTED):
            raise DriveAccountRevokedError(account_id, email)

        try:
            tokens = await self.token_store.get(account_id)
        except InvalidToken as e:
            await self._revoke(account, reason="Stored credentials could not be decrypted")
            raise DriveAuthError(
                "Stored credentials could not be decrypted",
                account_id=account_id,
                email=email,
                cause=e,
            ) from e

        if not tokens.refresh_token and not tokens.access_token:
            await self._revoke(account, reason="No stored credentials")
            raise DriveAccountRevokedError(account_id, email)

        credentials = self._build_credentials(tokens)
        if not credentials.valid:
            if not credentials.refresh_token:
                await self._revoke(account, reason="Access token expired without refresh token")
                raise DriveAuthError(
                    "Drive account authentication expired. Please reconnect your Google Drive account.",
                    account_id=account_id,
                    email=email,
                )
            await self._refresh(account, credentials)

        issued_token = credentials.token
        client = self.client_factory(account, credentials)
        try:
            yield client
        finally:
            # The HTTP layer refreshes on 401 without telling anyone
            if credentials.token and credentials.token != issued_token:
                await self._persist(account_id, email, credentials)

    async def _refresh(self, account: LinkedAccount, credentials: Any) -> None:
        account_id = account.id
        email = account.email
        try:
            await self.refresher(credentials)
        except Exception as e:
            error = classify_error(e, account)
            logger.warning(
                "token_refresh_failed",
                account_id=account_id,
                email=email,
                error=error.message,
                error_type=type(error).__name__,
            )
            if isinstance(error, DriveAuthError):
                await self._revoke(account, reason=error.message)
            raise error from e

        await self._persist(account_id, email, credentials)

    async def _revoke(self, account: LinkedAccount, reason: str) -> None:
        if self.health.can_transition(account.connection_status, ConnectionStatus.REVOKED):
            await self.health.mark_revoked(account, reason=reason)

    async def _persist(self, account_id: str, email: str, credentials: Any) -> None:
        await self.token_store.set(
            account_id,
            TokenSet(
                access_token=credentials.token,
                refresh_token=credentials.refresh_token,
                expires_at=_aware(credentials.expiry),
            ),
        )
        logger.info("access_token_rotated", account_id=account_id, email=email)

    @staticmethod
    def _build_credentials(tokens: TokenSet) -> Any:
        from google.oauth2.credentials import Credentials as OAuthCredentials

        return OAuthCredentials(
            token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_uri=TOKEN_URI,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            expiry=_naive_utc(tokens.expires_at),
        )


def _naive_utc(value: datetime | None) -> datetime | None:
    """google-auth expects naive UTC expiry timestamps."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
