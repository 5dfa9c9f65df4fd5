"""Create linked_accounts and mirrored_files tables.

Revision ID: a1c4e7f2b9d3
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c4e7f2b9d3"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the account and mirror tables with their lookup indexes."""
    op.create_table(
        "linked_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("remote_account_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("profile_image_url", sa.Text, nullable=True),
        sa.Column("scopes", sa.JSON, nullable=True),
        sa.Column("access_token_encrypted", sa.Text, nullable=True),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "connection_status",
            sa.Enum("ACTIVE", "REVOKED", "ERROR", "DISCONNECTED", name="connectionstatus"),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("used", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("total", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("last_fetched", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "remote_account_id", name="uq_linked_accounts_user_remote"
        ),
    )
    op.create_index("ix_linked_accounts_user_id", "linked_accounts", ["user_id"])
    op.create_index(
        "ix_linked_accounts_user_status",
        "linked_accounts",
        ["user_id", "connection_status"],
    )

    op.create_table(
        "mirrored_files",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(36),
            sa.ForeignKey("linked_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("remote_file_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(1024), nullable=False, server_default=""),
        sa.Column("mime_type", sa.String(255), nullable=False, server_default=""),
        sa.Column("size", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("created_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("parents", sa.JSON, nullable=True),
        sa.Column("owners", sa.JSON, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("starred", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("trashed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("shared", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_duplicate", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("web_view_link", sa.Text, nullable=True),
        sa.Column("web_content_link", sa.Text, nullable=True),
        sa.Column("icon_link", sa.Text, nullable=True),
        sa.Column("thumbnail_link", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "remote_file_id", "account_id", name="uq_mirrored_files_remote_account"
        ),
    )

    # Lookup indexes; (user_id, name, size) backs duplicate grouping
    op.create_index("ix_mirrored_files_user_id", "mirrored_files", ["user_id"])
    op.create_index(
        "ix_mirrored_files_user_account", "mirrored_files", ["user_id", "account_id"]
    )
    op.create_index(
        "ix_mirrored_files_user_name_size",
        "mirrored_files",
        ["user_id", "name", "size"],
    )
    op.create_index(
        "ix_mirrored_files_user_modified",
        "mirrored_files",
        ["user_id", "modified_time"],
    )


def downgrade() -> None:
    """Drop both tables and their indexes."""
    op.drop_index("ix_mirrored_files_user_modified", table_name="mirrored_files")
    op.drop_index("ix_mirrored_files_user_name_size", table_name="mirrored_files")
    op.drop_index("ix_mirrored_files_user_account", table_name="mirrored_files")
    op.drop_index("ix_mirrored_files_user_id", table_name="mirrored_files")
    op.drop_table("mirrored_files")

    op.drop_index("ix_linked_accounts_user_status", table_name="linked_accounts")
    op.drop_index("ix_linked_accounts_user_id", table_name="linked_accounts")
    op.drop_table("linked_accounts")
    sa.Enum(name="connectionstatus").drop(op.get_bind(), checkfirst=True)
