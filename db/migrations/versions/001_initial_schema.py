"""Initial schema: crm agents, leads, appointments.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE = "status IN ('scheduled', 'rescheduled')"


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS crm")

    op.create_table(
        "agents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("google_calendar_id", sa.Text, nullable=True),
        sa.Column("zoom_user_id", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email", name="uq_agent_email"),
        schema="crm",
    )

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.Text, nullable=True),
        sa.Column("phone_number", sa.Text, nullable=False),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("intent", sa.Text, nullable=True),
        sa.Column("budget", sa.Text, nullable=True),
        sa.Column("source", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="new"),
        sa.Column(
            "assigned_agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crm.agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("booking_alternatives", sa.JSON, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("tentative_booking_time", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('new','qualifying','qualified','booking_alternatives_offered',"
            "'appointment_confirming','booked','appointment_cancelled','needs_human_handoff')",
            name="ck_lead_status",
        ),
        sa.UniqueConstraint("phone_number", name="uq_lead_phone_number"),
        schema="crm",
    )

    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crm.leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crm.agents.id"),
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column("status", sa.Text, nullable=False, server_default="initial"),
        sa.Column("calendar_event_id", sa.Text, nullable=True),
        sa.Column("video_meeting_id", sa.Text, nullable=True),
        sa.Column("video_join_url", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('initial','scheduled','rescheduled','cancelled','completed')",
            name="ck_appointment_status",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="ck_appointment_duration"),
        sa.CheckConstraint(
            f"NOT ({ACTIVE}) OR (calendar_event_id IS NOT NULL AND video_meeting_id IS NOT NULL)",
            name="ck_appointment_active_has_external_ids",
        ),
        schema="crm",
    )
    op.create_index(
        "uq_appointment_active_lead",
        "appointments",
        ["lead_id"],
        unique=True,
        schema="crm",
        postgresql_where=sa.text(ACTIVE),
    )
    op.create_index(
        "uq_appointment_active_agent_start",
        "appointments",
        ["agent_id", "start_time"],
        unique=True,
        schema="crm",
        postgresql_where=sa.text(ACTIVE),
    )
    op.create_index(
        "ix_appointment_agent_start", "appointments", ["agent_id", "start_time"], schema="crm"
    )


def downgrade() -> None:
    op.drop_index("ix_appointment_agent_start", table_name="appointments", schema="crm")
    op.drop_index("uq_appointment_active_agent_start", table_name="appointments", schema="crm")
    op.drop_index("uq_appointment_active_lead", table_name="appointments", schema="crm")

    op.drop_table("appointments", schema="crm")
    op.drop_table("leads", schema="crm")
    op.drop_table("agents", schema="crm")
