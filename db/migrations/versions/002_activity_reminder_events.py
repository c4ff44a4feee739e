"""Add crm.activity_reminder_events claim log with unique dedupe_key.

Revision ID: 002
Revises: 001
Create Date: 2026-02-24
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "activity_reminder_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("activity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reminder_type", sa.Text, nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dedupe_key", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("skip_reason", sa.Text, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("message_id", sa.Text, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempt_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "reminder_type IN ('pre_start_1h','post_start_1h_open','daily_digest')",
            name="ck_reminder_event_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending','sent','skipped','failed')",
            name="ck_reminder_event_status",
        ),
        sa.UniqueConstraint("dedupe_key", name="uq_reminder_event_dedupe_key"),
        sa.ForeignKeyConstraint(["activity_id"], ["crm.activities.id"], name="fk_reminder_event_activity", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["crm.users.id"], name="fk_reminder_event_user"),
        sa.ForeignKeyConstraint(["org_id"], ["crm.organizations.id"], name="fk_reminder_event_org", ondelete="SET NULL"),
        schema="crm",
    )
    op.create_index(
        "ix_reminder_event_status_updated_at",
        "activity_reminder_events",
        ["status", "updated_at"],
        schema="crm",
    )


def downgrade() -> None:
    op.drop_index(
        "ix_reminder_event_status_updated_at", table_name="activity_reminder_events", schema="crm"
    )
    op.drop_table("activity_reminder_events", schema="crm")
