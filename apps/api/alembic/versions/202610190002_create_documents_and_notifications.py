"""create documents and notifications

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("original_filename", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.Text(), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=False),
        sa.Column("uploaded_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"]),
        sa.ForeignKeyConstraint(["uploaded_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("documents_lead_idx", "documents", ["lead_id"], unique=False)
    op.create_index("documents_uploader_idx", "documents", ["uploaded_by_user_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("lead_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "type IN ('due_date_reminder', 'lead_assignment', 'status_change', 'document_upload')",
            name="ck_notifications_type_valid",
        ),
    )
    op.create_index("notifications_user_idx", "notifications", ["user_id"], unique=False)
    op.create_index("notifications_read_idx", "notifications", ["is_read"], unique=False)
    op.create_index("notifications_lead_idx", "notifications", ["lead_id"], unique=False)


def downgrade() -> None:
    op.drop_index("notifications_lead_idx", table_name="notifications")
    op.drop_index("notifications_read_idx", table_name="notifications")
    op.drop_index("notifications_user_idx", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("documents_uploader_idx", table_name="documents")
    op.drop_index("documents_lead_idx", table_name="documents")
    op.drop_table("documents")
