"""Create monitoring tables and the collaborator tables they read.

Revision ID: 20261018a1b2
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018a1b2"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "monitoring_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=True),
        sa.Column("participant_email", sa.String(length=255), nullable=False),
        sa.Column("participant_name", sa.String(length=120), nullable=True),
        sa.Column("event_type", sa.String(length=30), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_monitoring_events_room_id", "monitoring_events", ["room_id"])
    op.create_index("ix_monitoring_events_session_id", "monitoring_events", ["session_id"])
    op.create_index("ix_monitoring_events_participant_email", "monitoring_events", ["participant_email"])
    op.create_index("ix_monitoring_events_event_type", "monitoring_events", ["event_type"])
    op.create_index("ix_monitoring_events_created_at", "monitoring_events", ["created_at"])
    op.create_index(
        "ix_monitoring_events_window",
        "monitoring_events",
        ["room_id", "participant_email", "event_type", "created_at"],
    )
    op.create_index("ix_monitoring_events_room_time", "monitoring_events", ["room_id", "created_at"])

    op.create_table(
        "monitoring_alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=64), nullable=True),
        sa.Column("session_id", sa.String(length=64), nullable=True),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        sa.Column("alert_type", sa.String(length=30), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False, server_default="warning"),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("target_email", sa.String(length=255), nullable=True),
        sa.Column("notify_coordinator", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_academic_operator", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_teacher", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("dismissed_by", sa.String(length=255), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_monitoring_alerts_room_id", "monitoring_alerts", ["room_id"])
    op.create_index("ix_monitoring_alerts_batch_id", "monitoring_alerts", ["batch_id"])
    op.create_index("ix_monitoring_alerts_alert_type", "monitoring_alerts", ["alert_type"])
    op.create_index("ix_monitoring_alerts_target_email", "monitoring_alerts", ["target_email"])
    op.create_index("ix_monitoring_alerts_status", "monitoring_alerts", ["status"])
    op.create_index("ix_monitoring_alerts_created_at", "monitoring_alerts", ["created_at"])
    op.create_index(
        "ix_monitoring_alerts_dedup",
        "monitoring_alerts",
        ["room_id", "target_email", "alert_type", "status"],
    )
    op.create_index("ix_monitoring_alerts_status_time", "monitoring_alerts", ["status", "created_at"])

    op.create_table(
        "monitoring_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("report_type", sa.String(length=20), nullable=False),
        sa.Column("report_period", sa.String(length=10), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("target_email", sa.String(length=255), nullable=False),
        sa.Column("target_role", sa.String(length=10), nullable=False),
        sa.Column("target_name", sa.String(length=120), nullable=True),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        sa.Column("batch_name", sa.String(length=120), nullable=True),
        sa.Column("grade", sa.String(length=20), nullable=True),
        sa.Column("section", sa.String(length=20), nullable=True),
        sa.Column("metrics", sa.JSON(), nullable=False),
        sa.Column("sent_to_guardian", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("guardian_email", sa.String(length=255), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generated_by", sa.String(length=120), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_monitoring_reports_report_type", "monitoring_reports", ["report_type"])
    op.create_index("ix_monitoring_reports_target_email", "monitoring_reports", ["target_email"])
    op.create_index("ix_monitoring_reports_batch_id", "monitoring_reports", ["batch_id"])
    op.create_index("ix_monitoring_reports_period", "monitoring_reports", ["period_start", "period_end"])
    op.create_unique_constraint(
        "uq_report_target_period",
        "monitoring_reports",
        ["target_email", "report_type", "period_start", "period_end"],
    )

    op.create_table(
        "class_rooms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=64), nullable=False),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        sa.Column("teacher_email", sa.String(length=255), nullable=True),
        sa.Column("subject", sa.String(length=120), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_class_rooms_room_id", "class_rooms", ["room_id"], unique=True)
    op.create_index("ix_class_rooms_batch_id", "class_rooms", ["batch_id"])
    op.create_index("ix_class_rooms_teacher_email", "class_rooms", ["teacher_email"])
    op.create_index("ix_class_rooms_status", "class_rooms", ["status"])
    op.create_index("ix_class_rooms_teacher_start", "class_rooms", ["teacher_email", "scheduled_start"])

    op.create_table(
        "class_batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("grade", sa.String(length=20), nullable=True),
        sa.Column("section", sa.String(length=20), nullable=True),
    )
    op.create_index("ix_class_batches_batch_id", "class_batches", ["batch_id"], unique=True)

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=64), nullable=False),
        sa.Column("participant_email", sa.String(length=255), nullable=False),
        sa.Column("participant_role", sa.String(length=20), nullable=False, server_default="student"),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="absent"),
        sa.Column("first_join_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_leave_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_duration_sec", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_attendance_sessions_room_id", "attendance_sessions", ["room_id"])
    op.create_index("ix_attendance_sessions_participant_email", "attendance_sessions", ["participant_email"])
    op.create_index("ix_attendance_participant_date", "attendance_sessions", ["participant_email", "session_date"])

    op.create_table(
        "directory_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
    )
    op.create_index("ix_directory_users_email", "directory_users", ["email"], unique=True)

    op.create_table(
        "room_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("actor_email", sa.String(length=255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_room_events_room_id", "room_events", ["room_id"])
    op.create_index("ix_room_events_event_type", "room_events", ["event_type"])
    op.create_index("ix_room_events_room_type", "room_events", ["room_id", "event_type"])


def downgrade() -> None:
    op.drop_table("room_events")
    op.drop_table("directory_users")
    op.drop_table("attendance_sessions")
    op.drop_table("class_batches")
    op.drop_table("class_rooms")
    op.drop_constraint("uq_report_target_period", "monitoring_reports", type_="unique")
    op.drop_table("monitoring_reports")
    op.drop_table("monitoring_alerts")
    op.drop_table("monitoring_events")
