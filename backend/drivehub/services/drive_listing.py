"""Drive listing fetcher: one account's complete file listing.

The listing is paginated strictly in sequence (each page token comes from the
previous response) and fully materialized before anything is written, so a
failure on page N never leaves a partial mirror behind.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from drivehub.core.config import settings
from drivehub.core.logging import get_logger
from drivehub.db.models import FOLDER_MIME_TYPE, LinkedAccount
from drivehub.services.drive_client import DriveClient
from drivehub.services.errors import classify_error

logger = get_logger(__name__)

# Only what the mirror stores; keeps each page small
LISTING_FIELDS = (
    "nextPageToken, files(id, name, mimeType, description, starred, trashed, shared, "
    "parents, createdTime, modifiedTime, size, iconLink, thumbnailLink, webViewLink, "
    "webContentLink, owners(displayName, emailAddress))"
)


class FileOwner(BaseModel):
    """Owner entry of a Drive file."""

    display_name: str = ""
    email_address: str | None = None


class DriveFileRecord(BaseModel):
    """Normalized Drive file metadata, ready for the mirror.

    Optional remote fields are defaulted so downstream code never has to
    branch on absence.
    """

    remote_id: str
    name: str = ""
    mime_type: str = ""
    size: int = 0
    created_time: datetime | None = None
    modified_time: datetime | None = None
    parents: list[str] = Field(default_factory=list)
    owners: list[FileOwner] = Field(default_factory=list)
    description: str | None = None
    starred: bool = False
    trashed: bool = False
    shared: bool = False
    web_view_link: str | None = None
    web_content_link: str | None = None
    icon_link: str | None = None
    thumbnail_link: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> DriveFileRecord:
        """Build a record from one entry of a ``files.list`` response."""
        return cls(
            remote_id=data["id"],
            name=data.get("name") or "",
            mime_type=data.get("mimeType") or "",
            # Drive returns int64 values as strings; folders have no size
            size=int(data.get("size") or 0),
            created_time=_parse_time(data.get("createdTime")),
            modified_time=_parse_time(data.get("modifiedTime")),
            parents=list(data.get("parents") or []),
            owners=[
                FileOwner(
                    display_name=owner.get("displayName") or "",
                    email_address=owner.get("emailAddress"),
                )
                for owner in data.get("owners") or []
            ],
            description=data.get("description"),
            starred=bool(data.get("starred", False)),
            trashed=bool(data.get("trashed", False)),
            shared=bool(data.get("shared", False)),
            web_view_link=data.get("webViewLink"),
            web_content_link=data.get("webContentLink"),
            icon_link=data.get("iconLink"),
            thumbnail_link=data.get("thumbnailLink"),
        )


class DriveListingFetcher:
    """Fetches and normalizes an account's full Drive listing."""

    def __init__(self, page_size: int | None = None):
        """Initialize the fetcher.

        Args:
            page_size: Files per page (defaults to settings.drive_page_size).
        """
        self.page_size = page_size or settings.drive_page_size

    async def fetch(self, account: LinkedAccount, client: DriveClient) -> list[DriveFileRecord]:
        """Fetch every page of the account's listing.

        Args:
            account: Account being listed (used for error attribution).
            client: Authorized client from the token guard.

        Returns:
            All records in the order the API returned them.

        Raises:
            DriveError: Classified failure, with the account identity attached.
        """
        account_id = account.id
        email = account.email
        records: list[DriveFileRecord] = []
        page_token: str | None = None
        pages = 0

        while True:
            try:
                response = await client.list_files(
                    page_size=self.page_size,
                    fields=LISTING_FIELDS,
                    page_token=page_token,
                )
                records.extend(
                    DriveFileRecord.from_api(item) for item in response.get("files", [])
                )
            except Exception as e:
                error = classify_error(e, account)
                logger.warning(
                    "drive_listing_failed",
                    account_id=account_id,
                    email=email,
                    page=pages + 1,
                    error=error.message,
                    error_type=type(error).__name__,
                )
                raise error from e

            pages += 1
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            "drive_listing_fetched",
            account_id=account_id,
            email=email,
            pages=pages,
            files=len(records),
        )
        return records


def _parse_time(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as returned by the Drive API."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
