"""create reporting, scheduler and integration tables

Revision ID: 202610010003
Revises: 202610010002
Create Date: 2026-10-01 00:03:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010003"
down_revision: str | None = "202610010002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "crm_reporting_snapshot",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="manual"),
        sa.Column("schedule_key", sa.String(length=64), nullable=True),
        sa.Column("range_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("range_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("kpis", sa.JSON(), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "schedule_key", name="uq_crm_reporting_snapshot_schedule_key"),
    )
    op.create_index(
        "ix_crm_reporting_snapshot_created",
        "crm_reporting_snapshot",
        ["tenant_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "scheduler_appointment_type",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("owner_user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("location_type", sa.String(length=16), nullable=False, server_default="video"),
        sa.Column("location_details", sa.String(length=400), nullable=True),
        sa.Column("buffer_before_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_after_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "owner_user_id", "slug", name="uq_scheduler_appointment_type_slug"),
    )
    op.create_index(
        "ix_scheduler_appointment_type_slug",
        "scheduler_appointment_type",
        ["tenant_id", "slug", "active"],
        unique=False,
    )

    op.create_table(
        "scheduler_availability",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("owner_user_id", sa.String(length=128), nullable=False),
        sa.Column("time_zone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("weekly", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "owner_user_id", name="uq_scheduler_availability_owner"),
    )

    op.create_table(
        "scheduler_appointment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("appointment_type_id", sa.Uuid(), nullable=False),
        sa.Column("appointment_type_name", sa.String(length=120), nullable=True),
        sa.Column("owner_user_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="booked"),
        sa.Column("attendee_name", sa.String(length=120), nullable=False),
        sa.Column("attendee_email", sa.String(length=180), nullable=False),
        sa.Column("attendee_phone", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_zone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("location_type", sa.String(length=16), nullable=False, server_default="video"),
        sa.Column("org_visible", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="public"),
        sa.Column("contact_id", sa.Uuid(), nullable=True),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("reminder_minutes_before", sa.Integer(), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["appointment_type_id"], ["scheduler_appointment_type.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduler_appointment_owner_start",
        "scheduler_appointment",
        ["tenant_id", "owner_user_id", "starts_at"],
        unique=False,
    )
    op.create_index(
        "ix_scheduler_appointment_reminder",
        "scheduler_appointment",
        ["status", "reminder_sent_at", "starts_at"],
        unique=False,
    )

    op.create_table(
        "integration_inbound_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("path", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=8), nullable=False),
        sa.Column("api_key_prefix", sa.String(length=32), nullable=True),
        sa.Column("api_key_name", sa.String(length=120), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_integration_inbound_event_at",
        "integration_inbound_event",
        ["tenant_id", "at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_integration_inbound_event_at", table_name="integration_inbound_event")
    op.drop_table("integration_inbound_event")
    op.drop_index("ix_scheduler_appointment_reminder", table_name="scheduler_appointment")
    op.drop_index("ix_scheduler_appointment_owner_start", table_name="scheduler_appointment")
    op.drop_table("scheduler_appointment")
    op.drop_table("scheduler_availability")
    op.drop_index("ix_scheduler_appointment_type_slug", table_name="scheduler_appointment_type")
    op.drop_table("scheduler_appointment_type")
    op.drop_index("ix_crm_reporting_snapshot_created", table_name="crm_reporting_snapshot")
    op.drop_table("crm_reporting_snapshot")
