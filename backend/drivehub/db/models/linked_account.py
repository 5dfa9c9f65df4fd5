"""LinkedAccount model for OAuth-linked Google Drive accounts."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import JSON, BigInteger, DateTime, Enum, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from drivehub.db.base import Base
from drivehub.db.models.enums import ConnectionStatus

if TYPE_CHECKING:
    from drivehub.db.models.mirrored_file import MirroredFile


class LinkedAccount(Base):
    """One Google Drive account linked to a DriveHub user.

    Tokens are stored encrypted (see drivehub.core.security). The access token
    is rewritten on every rotation; both tokens are cleared when the account
    is revoked. ``used``/``total`` are a quota cache refreshed on a TTL
    measured from ``last_fetched``.
    """

    __tablename__ = "linked_accounts"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Ownership and Google identity
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    profile_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    scopes: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Encrypted tokens
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Health
    connection_status: Mapped[ConnectionStatus] = mapped_column(
        Enum(ConnectionStatus), default=ConnectionStatus.ACTIVE, nullable=False
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Quota cache
    used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_fetched: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Last successful full sync
    last_sync: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    files: Mapped[list[MirroredFile]] = relationship(
        "MirroredFile",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "remote_account_id", name="uq_linked_accounts_user_remote"
        ),
        Index("ix_linked_accounts_user_id", "user_id"),
        Index("ix_linked_accounts_user_status", "user_id", "connection_status"),
    )

    @property
    def has_tokens(self) -> bool:
        """Whether any credential is stored for this account."""
        return bool(self.access_token_encrypted or self.refresh_token_encrypted)
