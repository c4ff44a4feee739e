"""Initial schema: crm organizations, users, leads, activities.

Revision ID: 001
Revises:
Create Date: 2026-02-23

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS crm")

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        schema="crm",
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("name", sa.Text, nullable=True),
        sa.Column("full_name", sa.Text, nullable=True),
        sa.Column("timezone", sa.Text, nullable=True),
        sa.Column("role", sa.Text, nullable=False, server_default="agent"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('admin','agent')", name="ck_user_role"),
        sa.ForeignKeyConstraint(["org_id"], ["crm.organizations.id"], name="fk_user_org", ondelete="SET NULL"),
        schema="crm",
    )

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("phone", sa.Text, nullable=False, server_default=""),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["org_id"], ["crm.organizations.id"], name="fk_lead_org", ondelete="SET NULL"),
        schema="crm",
    )

    op.create_table(
        "activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="todo"),
        sa.Column("completion_notes", sa.Text, nullable=True),
        sa.Column("assigned_to_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "type IN ('call','whatsapp','email','meeting','viewing','note')",
            name="ck_activity_type",
        ),
        sa.CheckConstraint("status IN ('todo','completed')", name="ck_activity_status"),
        sa.ForeignKeyConstraint(["lead_id"], ["crm.leads.id"], name="fk_activity_lead", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["crm.users.id"], name="fk_activity_assignee"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["crm.users.id"], name="fk_activity_creator", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["org_id"], ["crm.organizations.id"], name="fk_activity_org", ondelete="SET NULL"),
        schema="crm",
    )

    op.create_index(
        "ix_activity_status_scheduled_at", "activities", ["status", "scheduled_at"], schema="crm"
    )
    op.create_index(
        "ix_activity_assignee_scheduled_at",
        "activities",
        ["assigned_to_user_id", "scheduled_at"],
        schema="crm",
    )


def downgrade() -> None:
    op.drop_index("ix_activity_assignee_scheduled_at", table_name="activities", schema="crm")
    op.drop_index("ix_activity_status_scheduled_at", table_name="activities", schema="crm")
    # Drop in reverse dependency order
    op.drop_table("activities", schema="crm")
    op.drop_table("leads", schema="crm")
    op.drop_table("users", schema="crm")
    op.drop_table("organizations", schema="crm")
