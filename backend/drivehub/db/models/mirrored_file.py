"""MirroredFile model: local copy of one remote file's metadata."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from drivehub.db.base import Base

if TYPE_CHECKING:
    from drivehub.db.models.linked_account import LinkedAccount

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class MirroredFile(Base):
    """Cached metadata of one Drive file or folder as seen by one account.

    The same physical file shared into two linked accounts produces two rows,
    one per account. Rows are only ever inserted or overwritten by sync; files
    removed remotely stay until their account is unlinked.
    """

    __tablename__ = "mirrored_files"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Ownership
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("linked_accounts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_file_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Metadata
    name: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    modified_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    parents: Mapped[list[str]] = mapped_column(JSON, default=list)
    owners: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Flags
    starred: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    trashed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Legacy column; duplicates are computed on demand
    is_duplicate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Links
    web_view_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    web_content_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    account: Mapped[LinkedAccount] = relationship("LinkedAccount", back_populates="files")

    __table_args__ = (
        UniqueConstraint(
            "remote_file_id", "account_id", name="uq_mirrored_files_remote_account"
        ),
        Index("ix_mirrored_files_user_id", "user_id"),
        Index("ix_mirrored_files_user_account", "user_id", "account_id"),
        Index("ix_mirrored_files_user_name_size", "user_id", "name", "size"),
        Index("ix_mirrored_files_user_modified", "user_id", "modified_time"),
    )

    @property
    def is_folder(self) -> bool:
        """Whether this row mirrors a Drive folder."""
        return self.mime_type == FOLDER_MIME_TYPE
