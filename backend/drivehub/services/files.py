"""Browsing, searching and deleting mirrored files."""

from __future__ import annotations

import math
from collections import defaultdict

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.logging import get_logger
from drivehub.db.models import ConnectionStatus, LinkedAccount, MirroredFile
from drivehub.schemas.files import (
    DeleteFilesResponse,
    FileDeleteOutcome,
    FileFilters,
    FileListResponse,
    FileSortField,
    MirroredFileResponse,
    Pagination,
    SortOrder,
)
from drivehub.services.errors import DriveAuthError, classify_error
from drivehub.services.token_guard import ClientFactory, Refresher, TokenRefreshGuard

logger = get_logger(__name__)

SORT_COLUMNS = {
    FileSortField.NAME: MirroredFile.name,
    FileSortField.SIZE: MirroredFile.size,
    FileSortField.MODIFIED_TIME: MirroredFile.modified_time,
    FileSortField.CREATED_TIME: MirroredFile.created_time,
    FileSortField.MIME_TYPE: MirroredFile.mime_type,
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FileService:
    """Service for the mirrored file listing."""

    def __init__(
        self,
        db: AsyncSession,
        client_factory: ClientFactory | None = None,
        refresher: Refresher | None = None,
    ):
        """Initialize the file service.

        Args:
            db: AsyncSession for database operations.
            client_factory: Passed to the TokenRefreshGuard for deletes.
            refresher: Passed to the TokenRefreshGuard for deletes.
        """
        self.db = db
        self.client_factory = client_factory
        self.refresher = refresher

    async def list_files(
        self,
        user_id: str,
        filters: FileFilters | None = None,
        page: int = 1,
        limit: int = 50,
        sort_by: FileSortField = FileSortField.MODIFIED_TIME,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> FileListResponse:
        """List a user's mirrored files with filtering and pagination.

        Rows are ordered by ``sort_by`` then by id, so pages stay stable
        while a sync is writing.
        """
        filters = filters or FileFilters()
        conditions = [MirroredFile.user_id == user_id]

        if filters.account_id:
            conditions.append(MirroredFile.account_id == filters.account_id)
        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            conditions.append(
                or_(
                    MirroredFile.name.ilike(pattern, escape="\\"),
                    MirroredFile.mime_type.ilike(pattern, escape="\\"),
                )
            )
        if filters.mime_types:
            conditions.append(MirroredFile.mime_type.in_(filters.mime_types))
        if filters.shared is not None:
            conditions.append(MirroredFile.shared.is_(filters.shared))
        if filters.starred is not None:
            conditions.append(MirroredFile.starred.is_(filters.starred))
        if filters.trashed is not None:
            conditions.append(MirroredFile.trashed.is_(filters.trashed))
        if filters.min_size is not None:
            conditions.append(MirroredFile.size >= filters.min_size)
        if filters.max_size is not None:
            conditions.append(MirroredFile.size <= filters.max_size)
        if filters.modified_after is not None:
            conditions.append(MirroredFile.modified_time >= filters.modified_after)

        total = await self.db.scalar(
            select(func.count()).select_from(MirroredFile).where(*conditions)
        ) or 0

        column = SORT_COLUMNS[sort_by]
        if sort_order == SortOrder.DESC:
            order = (column.desc(), MirroredFile.id.desc())
        else:
            order = (column.asc(), MirroredFile.id.asc())

        result = await self.db.execute(
            select(MirroredFile)
            .where(*conditions)
            .order_by(*order)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [MirroredFileResponse.model_validate(f) for f in result.scalars().all()]

        pages = math.ceil(total / limit) if total else 0
        return FileListResponse(
            items=items,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=pages,
                has_next=page < pages,
                has_prev=page > 1,
            ),
        )

    async def search(self, user_id: str, query: str, limit: int = 100) -> list[MirroredFile]:
        """Case-insensitive substring search on name or description."""
        pattern = f"%{_escape_like(query)}%"
        result = await self.db.execute(
            select(MirroredFile)
            .where(
                MirroredFile.user_id == user_id,
                or_(
                    MirroredFile.name.ilike(pattern, escape="\\"),
                    MirroredFile.description.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(MirroredFile.name, MirroredFile.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_files(self, user_id: str, file_ids: list[str]) -> DeleteFilesResponse:
        """Delete files from Drive, then drop their mirror rows.

        Each account's files go through one authorized client. A file
        already gone remotely counts as deleted. Unknown ids are reported as
        failures.
        """
        result = await self.db.execute(
            select(MirroredFile).where(
                MirroredFile.user_id == user_id, MirroredFile.id.in_(file_ids)
            )
        )
        files = {f.id: f for f in result.scalars().all()}

        by_account: dict[str, list[MirroredFile]] = defaultdict(list)
        outcomes: dict[str, FileDeleteOutcome] = {}
        for file_id in dict.fromkeys(file_ids):
            file = files.get(file_id)
            if file is None:
                outcomes[file_id] = FileDeleteOutcome(
                    file_id=file_id, deleted=False, error="File not found"
                )
            else:
                by_account[file.account_id].append(file)

        guard = TokenRefreshGuard(
            self.db, client_factory=self.client_factory, refresher=self.refresher
        )
        deleted_ids: list[str] = []

        for account_id, account_files in by_account.items():
            account = await self.db.get(LinkedAccount, account_id)
            try:
                async with guard.authorized(account) as client:
                    for file in account_files:
                        outcome = await self._delete_remote(client, account, file)
                        outcomes[file.id] = outcome
                        if outcome.deleted:
                            deleted_ids.append(file.id)
            except Exception as e:
                error = classify_error(e, account)
                logger.warning(
                    "file_delete_failed",
                    account_id=account_id,
                    email=account.email,
                    error=error.message,
                    error_type=type(error).__name__,
                )
                if isinstance(error, DriveAuthError) and guard.health.can_transition(
                    account.connection_status, ConnectionStatus.REVOKED
                ):
                    await guard.health.mark_revoked(account, reason=error.message)
                for file in account_files:
                    outcomes.setdefault(
                        file.id,
                        FileDeleteOutcome(
                            file_id=file.id,
                            deleted=False,
                            error=error.message,
                            needs_reconnect=isinstance(error, DriveAuthError),
                        ),
                    )

        if deleted_ids:
            await self.db.execute(delete(MirroredFile).where(MirroredFile.id.in_(deleted_ids)))
            await self.db.flush()

        results = [outcomes[file_id] for file_id in dict.fromkeys(file_ids)]
        logger.info(
            "files_deleted",
            user_id=user_id,
            requested=len(results),
            deleted=len(deleted_ids),
        )
        return DeleteFilesResponse(
            deleted=len(deleted_ids),
            failed=len(results) - len(deleted_ids),
            results=results,
        )

    async def _delete_remote(
        self, client, account: LinkedAccount, file: MirroredFile
    ) -> FileDeleteOutcome:
        try:
            await client.delete_file(file.remote_file_id)
        except Exception as e:
            if getattr(getattr(e, "resp", None), "status", None) == 404:
                return FileDeleteOutcome(file_id=file.id, deleted=True)
            error = classify_error(e, account)
            if isinstance(error, DriveAuthError):
                # Remaining files of the account would fail the same way
                raise error from e
            return FileDeleteOutcome(file_id=file.id, deleted=False, error=error.message)
        return FileDeleteOutcome(file_id=file.id, deleted=True)
