"""Thin async wrapper over the Google Drive v3 client.

googleapiclient is synchronous; every ``execute()`` runs in a worker thread
so a slow page fetch never blocks the event loop. Each HTTP request carries
the configured timeout through the httplib2 transport.
"""

from __future__ import annotations

import asyncio
from typing import Any

from drivehub.core.config import settings
from drivehub.core.logging import get_logger

logger = get_logger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"

# Google Drive API scopes
SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "openid",  # Google auto-adds this with userinfo.email
]


class DriveClient:
    """Authenticated Drive API client for a single account.

    ``credentials`` is the live google-auth object; the HTTP layer may
    refresh it in place, which the token guard detects after the operation.
    """

    def __init__(self, credentials: Any, service: Any = None, timeout: float | None = None):
        """Initialize the client.

        Args:
            credentials: google.oauth2.credentials.Credentials instance.
            service: Prebuilt Drive service resource (built lazily if omitted).
            timeout: Per-request timeout in seconds.
        """
        self.credentials = credentials
        self.timeout = timeout or settings.google_request_timeout
        self._service = service

    @property
    def service(self) -> Any:
        """Drive v3 service resource, built on first use."""
        if self._service is None:
            import google_auth_httplib2
            import httplib2
            from googleapiclient.discovery import build

            http = google_auth_httplib2.AuthorizedHttp(
                self.credentials, http=httplib2.Http(timeout=self.timeout)
            )
            self._service = build("drive", "v3", http=http, cache_discovery=False)
        return self._service

    async def list_files(
        self,
        page_size: int,
        fields: str,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of the account's file listing.

        Includes items from shared drives, so one listing covers both
        "My Drive" and every shared drive visible to the account.
        """
        request = self.service.files().list(
            pageSize=page_size,
            pageToken=page_token,
            fields=fields,
            corpora="allDrives",
            includeItemsFromAllDrives=True,
            supportsAllDrives=True,
        )
        return await self._execute(request)

    async def get_storage_quota(self) -> dict[str, Any]:
        """Fetch the account's storage quota (usage/limit in bytes)."""
        request = self.service.about().get(fields="storageQuota")
        response = await self._execute(request)
        return response.get("storageQuota", {})

    async def delete_file(self, file_id: str) -> None:
        """Permanently delete a file the account owns."""
        request = self.service.files().delete(fileId=file_id, supportsAllDrives=True)
        await self._execute(request)

    async def _execute(self, request: Any) -> dict[str, Any]:
        return await asyncio.to_thread(request.execute) or {}


def build_drive_client(account: Any, credentials: Any) -> DriveClient:
    """Default client factory used by the token guard."""
    return DriveClient(credentials)
