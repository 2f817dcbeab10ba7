"""Perception events, alerts and period reports."""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    Text,
    JSON,
    Index,
    UniqueConstraint,
)

from classwatch.database import Base


class EventKind(str, enum.Enum):
    ATTENTIVE = "attentive"
    LOOKING_AWAY = "looking_away"
    EYES_CLOSED = "eyes_closed"
    NOT_IN_FRAME = "not_in_frame"
    LOW_ENGAGEMENT = "low_engagement"
    HAND_RAISED = "hand_raised"
    SPEAKING = "speaking"
    DISTRACTED = "distracted"
    PHONE_DETECTED = "phone_detected"
    MULTIPLE_FACES = "multiple_faces"


# Positive signals never produce alerts.
POSITIVE_EVENT_KINDS = frozenset(
    {EventKind.ATTENTIVE.value, EventKind.HAND_RAISED.value, EventKind.SPEAKING.value}
)

# Categories that make up "monitored time" for attention scoring.
MONITORED_EVENT_KINDS = (
    EventKind.ATTENTIVE.value,
    EventKind.LOOKING_AWAY.value,
    EventKind.EYES_CLOSED.value,
    EventKind.NOT_IN_FRAME.value,
    EventKind.DISTRACTED.value,
)


class AlertKind(str, enum.Enum):
    TEACHER_ABSENT = "teacher_absent"
    TEACHER_CAMERA_OFF = "teacher_camera_off"
    CLASS_STARTED_LATE = "class_started_late"
    CLASS_CANCELLED = "class_cancelled"
    LOW_ATTENDANCE = "low_attendance"
    STUDENT_SLEEPING = "student_sleeping"
    STUDENT_NOT_LOOKING = "student_not_looking"
    STUDENT_LEFT_FRAME = "student_left_frame"
    STUDENT_DISTRACTED = "student_distracted"
    CLASS_DISRUPTION = "class_disruption"
    CONTACT_VIOLATION = "contact_violation"
    PHONE_DETECTED = "phone_detected"
    UNUSUAL_LEAVE = "unusual_leave"


# Kinds raised through the teacher entry point. Student kinds come only from
# threshold evaluation, which the reconciler relies on.
TEACHER_ALERT_KINDS = frozenset(
    {
        AlertKind.TEACHER_ABSENT.value,
        AlertKind.TEACHER_CAMERA_OFF.value,
        AlertKind.CLASS_STARTED_LATE.value,
        AlertKind.CLASS_CANCELLED.value,
        AlertKind.LOW_ATTENDANCE.value,
        AlertKind.CLASS_DISRUPTION.value,
        AlertKind.UNUSUAL_LEAVE.value,
        AlertKind.CONTACT_VIOLATION.value,
    }
)


class AlertSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


SEVERITY_RANK = {
    AlertSeverity.CRITICAL.value: 0,
    AlertSeverity.WARNING.value: 1,
    AlertSeverity.INFO.value: 2,
}


class AlertStatus(str, enum.Enum):
    ACTIVE = "active"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"
    ESCALATED = "escalated"  # reserved, nothing transitions here yet


class AlertAudience(str, enum.Enum):
    """Dashboard roles that read alerts through their notify flag."""
    COORDINATOR = "coordinator"
    ACADEMIC_OPERATOR = "academic_operator"


class ReportPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReportTargetRole(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class ReportKind(str, enum.Enum):
    STUDENT_DAILY = "student_daily"
    STUDENT_WEEKLY = "student_weekly"
    STUDENT_MONTHLY = "student_monthly"
    TEACHER_DAILY = "teacher_daily"
    TEACHER_WEEKLY = "teacher_weekly"
    TEACHER_MONTHLY = "teacher_monthly"

    @classmethod
    def for_target(cls, role: ReportTargetRole, period: ReportPeriod) -> "ReportKind":
        return cls(f"{role.value}_{period.value}")


class MonitoringEvent(Base):
    __tablename__ = "monitoring_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), nullable=False, index=True)
    session_id = Column(String(64), nullable=True, index=True)
    participant_email = Column(String(255), nullable=False, index=True)
    participant_name = Column(String(120), nullable=True)

    event_type = Column(String(30), nullable=False, index=True)
    confidence = Column(Integer, nullable=False, default=100)
    duration_seconds = Column(Integer, nullable=False, default=0)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    __table_args__ = (
        Index("ix_monitoring_events_window", "room_id", "participant_email", "event_type", "created_at"),
        Index("ix_monitoring_events_room_time", "room_id", "created_at"),
    )

    def __repr__(self):
        return f"<MonitoringEvent(id={self.id}, room='{self.room_id}', kind={self.event_type})>"


class MonitoringAlert(Base):
    __tablename__ = "monitoring_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), nullable=True, index=True)
    session_id = Column(String(64), nullable=True)
    batch_id = Column(String(64), nullable=True, index=True)

    alert_type = Column(String(30), nullable=False, index=True)
    severity = Column(String(10), nullable=False, default=AlertSeverity.WARNING.value)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    target_email = Column(String(255), nullable=True, index=True)

    # Recipient roles
    notify_coordinator = Column(Boolean, nullable=False, default=True)
    notify_academic_operator = Column(Boolean, nullable=False, default=True)
    notify_teacher = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=AlertStatus.ACTIVE.value, index=True)
    dismissed_by = Column(String(255), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    __table_args__ = (
        Index("ix_monitoring_alerts_dedup", "room_id", "target_email", "alert_type", "status"),
        Index("ix_monitoring_alerts_status_time", "status", "created_at"),
    )

    def __repr__(self):
        return f"<MonitoringAlert(id={self.id}, type={self.alert_type}, status={self.status})>"


class MonitoringReport(Base):
    __tablename__ = "monitoring_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_type = Column(String(20), nullable=False, index=True)
    report_period = Column(String(10), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    target_email = Column(String(255), nullable=False, index=True)
    target_role = Column(String(10), nullable=False)
    target_name = Column(String(120), nullable=True)

    batch_id = Column(String(64), nullable=True, index=True)
    batch_name = Column(String(120), nullable=True)
    grade = Column(String(20), nullable=True)
    section = Column(String(20), nullable=True)

    metrics = Column(JSON, nullable=False, default=dict)

    sent_to_guardian = Column(Boolean, nullable=False, default=False)
    guardian_email = Column(String(255), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    generated_by = Column(String(120), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("target_email", "report_type", "period_start", "period_end", name="uq_report_target_period"),
        Index("ix_monitoring_reports_period", "period_start", "period_end"),
    )

    def __repr__(self):
        return f"<MonitoringReport(id={self.id}, type={self.report_type}, target='{self.target_email}')>"
