"""Duplicate detection over the mirrored files.

Files are grouped by a key function; the default (and only registered)
algorithm is ``name_size``: identical name and byte size. Folders and
trashed files never participate.

A duplicate group can span accounts. Per-account figures are therefore
derived from the single global report instead of being summed from
per-account groupings, which would count a cross-account pair once per
account.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from drivehub.core.logging import get_logger
from drivehub.db.models import FOLDER_MIME_TYPE, LinkedAccount, MirroredFile
from drivehub.schemas.duplicates import (
    DuplicateGroup,
    DuplicateListResponse,
    DuplicateMember,
    DuplicateSummary,
)

logger = get_logger(__name__)

GroupKey = Callable[[Any], str]


def name_size_key(file: Any) -> str:
    """Group key of the ``name_size`` algorithm."""
    return f"{file.name}|{file.size}"


# Registered grouping algorithms; a content-hash key would slot in here
GROUP_KEYS: dict[str, GroupKey] = {
    "name_size": name_size_key,
}


def resolve_group_key(algorithm: str) -> GroupKey:
    """Look up a grouping algorithm by name.

    Raises:
        ValueError: If the algorithm is not registered.
    """
    try:
        return GROUP_KEYS[algorithm]
    except KeyError:
        raise ValueError(
            f"Unknown duplicate algorithm: {algorithm!r} (available: {', '.join(GROUP_KEYS)})"
        ) from None


class DuplicateService:
    """Computes duplicate groups for a user, read-only."""

    def __init__(self, db: AsyncSession):
        """Initialize the duplicate service.

        Args:
            db: Async database session.
        """
        self.db = db

    async def find_groups(
        self,
        user_id: str,
        account_id: str | None = None,
        algorithm: str = "name_size",
        group_key: GroupKey | None = None,
    ) -> list[DuplicateGroup]:
        """Find every duplicate group of a user.

        Args:
            user_id: Owner of the files.
            account_id: Restrict grouping to one account's files.
            algorithm: Registered grouping algorithm.
            group_key: Custom key function; overrides ``algorithm``.

        Returns:
            Groups with at least two members, most wasted space first.

        Raises:
            ValueError: If ``algorithm`` is unknown.
        """
        key_fn = group_key or resolve_group_key(algorithm)

        conditions = [
            MirroredFile.user_id == user_id,
            MirroredFile.trashed.is_(False),
            MirroredFile.mime_type != FOLDER_MIME_TYPE,
        ]
        if account_id is not None:
            conditions.append(MirroredFile.account_id == account_id)

        query = select(
            MirroredFile, LinkedAccount.email, LinkedAccount.display_name
        ).join(LinkedAccount, LinkedAccount.id == MirroredFile.account_id)

        if key_fn is name_size_key:
            # Only rows whose (name, size) occurs more than once can group
            candidates = (
                select(MirroredFile.name, MirroredFile.size)
                .where(*conditions)
                .group_by(MirroredFile.name, MirroredFile.size)
                .having(func.count(MirroredFile.id) > 1)
                .subquery()
            )
            query = query.join(
                candidates,
                and_(
                    candidates.c.name == MirroredFile.name,
                    candidates.c.size == MirroredFile.size,
                ),
            )

        result = await self.db.execute(query.where(*conditions))

        buckets: dict[str, list[DuplicateMember]] = defaultdict(list)
        for file, email, display_name in result.all():
            buckets[key_fn(file)].append(
                DuplicateMember(
                    id=file.id,
                    remote_file_id=file.remote_file_id,
                    name=file.name,
                    size=file.size,
                    mime_type=file.mime_type,
                    modified_time=file.modified_time,
                    web_view_link=file.web_view_link,
                    icon_link=file.icon_link,
                    thumbnail_link=file.thumbnail_link,
                    account_id=file.account_id,
                    account_email=email,
                    account_name=display_name,
                )
            )

        groups = []
        for key, members in buckets.items():
            if len(members) < 2:
                continue
            members.sort(key=lambda m: m.id)
            size = members[0].size
            groups.append(
                DuplicateGroup(
                    id=key,
                    name=members[0].name,
                    size=size,
                    count=len(members),
                    files=members,
                    total_wasted_space=(len(members) - 1) * size,
                )
            )

        groups.sort(key=lambda g: (-g.total_wasted_space, g.id, g.files[0].id))
        logger.debug(
            "duplicate_groups_computed",
            user_id=user_id,
            account_id=account_id,
            groups=len(groups),
        )
        return groups

    async def list_groups(
        self,
        user_id: str,
        account_id: str | None = None,
        page: int = 1,
        limit: int = 50,
        algorithm: str = "name_size",
    ) -> DuplicateListResponse:
        """Get one page of duplicate groups, with the summary of all of them."""
        groups = await self.find_groups(user_id, account_id=account_id, algorithm=algorithm)
        total = len(groups)
        start = (page - 1) * limit

        return DuplicateListResponse(
            items=groups[start : start + limit],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if total else 0,
            summary=self.summarize(groups),
        )

    @staticmethod
    def summarize(groups: Sequence[DuplicateGroup]) -> DuplicateSummary:
        """Totals over a list of groups."""
        return DuplicateSummary(
            group_count=len(groups),
            duplicate_files=sum(group.count for group in groups),
            wasted_space=sum(group.total_wasted_space for group in groups),
        )

    @staticmethod
    def files_per_account(groups: Sequence[DuplicateGroup]) -> dict[str, int]:
        """Count each account's members of the given (global) groups."""
        counts: dict[str, int] = defaultdict(int)
        for group in groups:
            for member in group.files:
                counts[member.account_id] += 1
        return dict(counts)
