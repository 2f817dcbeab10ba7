"""Tables owned by neighbouring subsystems.

Rooms, batches, attendance and the user directory are maintained elsewhere;
the monitoring engine only reads them. ``room_events`` is the shared room
activity log, which the engine appends alert mirrors to.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, Index

from classwatch.database import Base


class RoomStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    LEFT_EARLY = "left_early"


class ClassRoom(Base):
    __tablename__ = "class_rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), unique=True, nullable=False, index=True)
    batch_id = Column(String(64), nullable=True, index=True)
    teacher_email = Column(String(255), nullable=True, index=True)
    subject = Column(String(120), nullable=True)

    status = Column(String(20), nullable=False, default=RoomStatus.SCHEDULED.value, index=True)
    scheduled_start = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_class_rooms_teacher_start", "teacher_email", "scheduled_start"),
    )


class ClassBatch(Base):
    __tablename__ = "class_batches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    grade = Column(String(20), nullable=True)
    section = Column(String(20), nullable=True)


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), nullable=False, index=True)
    participant_email = Column(String(255), nullable=False, index=True)
    participant_role = Column(String(20), nullable=False, default="student")
    session_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=AttendanceStatus.ABSENT.value)
    first_join_at = Column(DateTime(timezone=True), nullable=True)
    last_leave_at = Column(DateTime(timezone=True), nullable=True)
    total_duration_sec = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_attendance_participant_date", "participant_email", "session_date"),
    )


class DirectoryUser(Base):
    __tablename__ = "directory_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    role = Column(String(30), nullable=False)


class RoomEvent(Base):
    __tablename__ = "room_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(40), nullable=False, index=True)
    actor_email = Column(String(255), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_room_events_room_type", "room_id", "event_type"),
    )
