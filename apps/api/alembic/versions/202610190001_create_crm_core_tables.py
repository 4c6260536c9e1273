"""create organisations, users and leads

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "organisations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("organisation_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("role IN ('admin', 'broker', 'view_only')", name="ck_users_role_valid"),
    )
    op.create_index("users_organisation_idx", "users", ["organisation_id"], unique=False)
    op.create_index("users_email_idx", "users", ["email"], unique=False)

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("insurance_types", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("estimated_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("organisation_id", sa.Integer(), nullable=False),
        sa.Column("assigned_broker_id", sa.Integer(), nullable=True),
        sa.Column("parent_lead_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["assigned_broker_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["parent_lead_id"], ["leads.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'converted', 'lost')",
            name="ck_leads_status_valid",
        ),
        sa.CheckConstraint(
            "source IN ('referral', 'website', 'cold_call', 'social_media', 'advertisement', 'other')",
            name="ck_leads_source_valid",
        ),
    )
    op.create_index("leads_organisation_idx", "leads", ["organisation_id"], unique=False)
    op.create_index("leads_status_idx", "leads", ["status"], unique=False)
    op.create_index("leads_broker_idx", "leads", ["assigned_broker_id"], unique=False)
    op.create_index("leads_due_date_idx", "leads", ["due_date"], unique=False)
    op.create_index("leads_parent_idx", "leads", ["parent_lead_id"], unique=False)


def downgrade() -> None:
    op.drop_index("leads_parent_idx", table_name="leads")
    op.drop_index("leads_due_date_idx", table_name="leads")
    op.drop_index("leads_broker_idx", table_name="leads")
    op.drop_index("leads_status_idx", table_name="leads")
    op.drop_index("leads_organisation_idx", table_name="leads")
    op.drop_table("leads")
    op.drop_index("users_email_idx", table_name="users")
    op.drop_index("users_organisation_idx", table_name="users")
    op.drop_table("users")
    op.drop_table("organisations")
