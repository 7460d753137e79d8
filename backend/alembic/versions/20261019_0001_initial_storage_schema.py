"""initial_storage_schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

- accounts: identity rows carrying the premium flag
- documents: per-owner catalog of stored blobs
"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table: str) -> bool:
    insp = sa.inspect(bind)
    return insp.has_table(table)


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "accounts"):
        op.create_table(
            "accounts",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("display_name", sa.String(length=255), nullable=True),
            sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.text("0")),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
        op.create_index("ix_accounts_is_premium", "accounts", ["is_premium"])

    if not _has_table(bind, "documents"):
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "owner_id",
                sa.String(length=64),
                sa.ForeignKey("accounts.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("file_name", sa.String(length=500), nullable=False),
            sa.Column("content_type", sa.String(length=100), nullable=False),
            sa.Column("file_size", sa.BigInteger(), nullable=False),
            sa.Column("storage_path", sa.String(length=1024), nullable=False),
            sa.Column("folder_path", sa.String(length=500), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_documents_id", "documents", ["id"])
        op.create_index("ix_documents_owner_id", "documents", ["owner_id"])
        op.create_index("ix_documents_uploaded_at", "documents", ["uploaded_at"])
        op.create_index("ix_documents_file_name", "documents", ["file_name"])
        op.create_index("ix_documents_owner_uploaded", "documents", ["owner_id", "uploaded_at"])


def downgrade() -> None:
    bind = op.get_bind()
    if _has_table(bind, "documents"):
        for name in (
            "ix_documents_owner_uploaded",
            "ix_documents_file_name",
            "ix_documents_uploaded_at",
            "ix_documents_owner_id",
            "ix_documents_id",
        ):
            op.drop_index(name, table_name="documents")
        op.drop_table("documents")

    if _has_table(bind, "accounts"):
        op.drop_index("ix_accounts_is_premium", table_name="accounts")
        op.drop_index("ix_accounts_email", table_name="accounts")
        op.drop_table("accounts")
