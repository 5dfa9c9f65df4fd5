"""Mirror upsert engine.

Writes one account's listing into ``mirrored_files`` keyed by
``(remote_file_id, account_id)``. Rows missing from the listing are left
alone: the mirror only ever grows or is overwritten.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.logging import get_logger
from drivehub.db.models import LinkedAccount, MirroredFile
from drivehub.services.drive_listing import DriveFileRecord

logger = get_logger(__name__)

# SQLite caps bound parameters per statement; ~20 columns per row
UPSERT_CHUNK_SIZE = 500

# Columns kept from the first insert when a row is overwritten
PRESERVED_COLUMNS = frozenset({"id", "created_at", "is_duplicate"})


class MirrorWriteError(Exception):
    """Raised when an account's listing could not be written."""

    def __init__(self, message: str, account_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.account_id = account_id


class MirrorUpsertEngine:
    """Idempotent bulk upsert of Drive listings into the local mirror.

    The engine never commits: every chunk runs inside the caller's
    transaction, so the caller decides whether an account pass is kept
    or rolled back as a whole.
    """

    def __init__(self, db: AsyncSession, chunk_size: int = UPSERT_CHUNK_SIZE):
        self.db = db
        self.chunk_size = chunk_size

    async def upsert(self, account: LinkedAccount, records: Sequence[DriveFileRecord]) -> int:
        """Insert or overwrite the mirror rows for ``records``.

        Args:
            account: Owner of the listing.
            records: Normalized listing from the fetcher.

        Returns:
            Number of records written.

        Raises:
            MirrorWriteError: If any statement failed. The session is left
                for the caller to roll back.
        """
        if not records:
            return 0

        account_id = account.id
        user_id = account.user_id
        insert = self._dialect_insert()

        # A listing can return the same id twice across pages; last one wins
        unique: dict[str, DriveFileRecord] = {}
        for record in records:
            unique[record.remote_id] = record
        rows = [_to_row(record, account_id, user_id) for record in unique.values()]

        try:
            for start in range(0, len(rows), self.chunk_size):
                chunk = rows[start : start + self.chunk_size]
                stmt = insert(MirroredFile).values(chunk)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["remote_file_id", "account_id"],
                    set_={
                        column: stmt.excluded[column]
                        for column in chunk[0]
                        if column not in PRESERVED_COLUMNS
                    },
                )
                await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "mirror_upsert_failed",
                account_id=account_id,
                email=account.email,
                rows=len(rows),
                error=str(e),
            )
            raise MirrorWriteError(
                f"Failed to write file listing: {e}", account_id=account_id
            ) from e

        logger.debug("mirror_upserted", account_id=account_id, rows=len(rows))
        return len(rows)

    def _dialect_insert(self) -> Any:
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert
        if dialect == "postgresql":
            return postgresql.insert
        raise MirrorWriteError(f"Unsupported database dialect for upsert: {dialect}")


def _to_row(record: DriveFileRecord, account_id: str, user_id: str) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "account_id": account_id,
        "user_id": user_id,
        "remote_file_id": record.remote_id,
        "name": record.name,
        "mime_type": record.mime_type,
        "size": record.size,
        "created_time": record.created_time,
        "modified_time": record.modified_time,
        "parents": record.parents,
        "owners": [owner.model_dump() for owner in record.owners],
        "description": record.description,
        "starred": record.starred,
        "trashed": record.trashed,
        "shared": record.shared,
        "is_duplicate": False,
        "web_view_link": record.web_view_link,
        "web_content_link": record.web_content_link,
        "icon_link": record.icon_link,
        "thumbnail_link": record.thumbnail_link,
        "created_at": datetime.now(timezone.utc),
    }
