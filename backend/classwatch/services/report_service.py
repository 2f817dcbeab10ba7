"""Period reports for students and teachers with rule-based summaries."""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, case, and_
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.models.monitoring import (
    MonitoringEvent,
    MonitoringAlert,
    MonitoringReport,
    AlertKind,
    EventKind,
    ReportKind,
    ReportPeriod,
    ReportTargetRole,
    MONITORED_EVENT_KINDS,
)
from classwatch.models.registry import (
    AttendanceSession,
    AttendanceStatus,
    ClassBatch,
    ClassRoom,
    DirectoryUser,
    RoomEvent,
    RoomStatus,
)
from classwatch.services.common import (
    to_utc,
    round_half_up,
    percentage,
    name_from_email,
    period_bounds,
    format_number,
)

logger = logging.getLogger(__name__)

ROOM_EVENT_PARTICIPANT_JOINED = "participant_joined"
MAX_REPORT_PAGE = 200


def _seconds_of(kind: str):
    return func.coalesce(
        func.sum(case((MonitoringEvent.event_type == kind, MonitoringEvent.duration_seconds), else_=0)),
        0,
    )


def _whole_minutes(seconds: float) -> int:
    return round_half_up(seconds / 60)


async def _lookup_name(db: AsyncSession, email: str) -> str:
    result = await db.execute(select(DirectoryUser.name).where(DirectoryUser.email == email))
    name = result.scalar_one_or_none()
    return name or name_from_email(email)


async def _lookup_batch(db: AsyncSession, batch_id: Optional[str]) -> Dict[str, Optional[str]]:
    context: Dict[str, Optional[str]] = {"batch_id": batch_id, "batch_name": None, "grade": None, "section": None}
    if not batch_id:
        return context
    result = await db.execute(select(ClassBatch).where(ClassBatch.batch_id == batch_id))
    batch = result.scalar_one_or_none()
    if batch:
        context.update(batch_name=batch.name, grade=batch.grade, section=batch.section)
    return context


# ---------------------------------------------------------------------------
# Narratives
# ---------------------------------------------------------------------------

def build_student_summary(
    *,
    name: str,
    attendance_rate: int,
    avg_attention: int,
    eyes_closed_minutes: int,
    looking_away_minutes: int,
    distracted_minutes: int,
    hand_raises: int,
    total_sessions: int,
    sessions_present: int,
) -> str:
    parts = [
        f"{name} attended {sessions_present} of {total_sessions} classes ({attendance_rate}% attendance)."
    ]

    if avg_attention >= 80:
        parts.append(f"Overall attention level is excellent ({avg_attention}%).")
    elif avg_attention >= 60:
        parts.append(f"Overall attention level is good ({avg_attention}%) with room for improvement.")
    elif avg_attention >= 40:
        parts.append(
            f"Attention level needs improvement ({avg_attention}%). "
            "Student shows signs of disengagement during class."
        )
    else:
        parts.append(
            f"Attention level is concerning ({avg_attention}%). "
            "Student frequently appears disengaged or distracted."
        )

    if eyes_closed_minutes > 5:
        parts.append(f"Student appeared drowsy/sleeping for approximately {eyes_closed_minutes} minutes total.")
    if looking_away_minutes > 10:
        parts.append(f"Student was looking away from the screen for approximately {looking_away_minutes} minutes.")
    if distracted_minutes > 10:
        parts.append(f"Student showed signs of distraction for approximately {distracted_minutes} minutes.")
    if hand_raises > 0:
        times = "time" if hand_raises == 1 else "times"
        parts.append(f"Student raised hand {hand_raises} {times}, showing active participation.")

    return " ".join(parts)


def build_teacher_summary(
    *,
    name: str,
    sessions_conducted: int,
    sessions_cancelled: int,
    late_starts: int,
    on_time_rate: int,
    total_hours: float,
    avg_engagement: int,
) -> str:
    sessions_word = "session" if sessions_conducted == 1 else "sessions"
    parts = [
        f"{name} conducted {sessions_conducted} {sessions_word} totaling {format_number(total_hours)} teaching hours."
    ]

    if sessions_cancelled > 0:
        verb = "session was" if sessions_cancelled == 1 else "sessions were"
        parts.append(f"{sessions_cancelled} {verb} cancelled.")

    if late_starts > 0:
        late_word = "session" if late_starts == 1 else "sessions"
        parts.append(f"{late_starts} {late_word} started late. On-time rate: {on_time_rate}%.")
    else:
        parts.append(f"All sessions started on time ({on_time_rate}% punctuality).")

    if avg_engagement >= 75:
        parts.append(f"Average student engagement was excellent at {avg_engagement}%.")
    elif avg_engagement >= 50:
        parts.append(f"Average student engagement was {avg_engagement}%, moderate level.")
    elif avg_engagement > 0:
        parts.append(f"Average student engagement was low at {avg_engagement}%.")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

async def compute_student_metrics(
    db: AsyncSession,
    *,
    student_email: str,
    student_name: str,
    period_start: date,
    period_end: date,
) -> Dict[str, Any]:
    start, end = period_bounds(period_start, period_end)
    in_period = and_(
        MonitoringEvent.participant_email == student_email,
        MonitoringEvent.created_at >= start,
        MonitoringEvent.created_at < end,
    )

    agg_result = await db.execute(
        select(
            *[_seconds_of(kind).label(kind) for kind in MONITORED_EVENT_KINDS],
            func.coalesce(
                func.sum(case((MonitoringEvent.event_type == EventKind.HAND_RAISED.value, 1), else_=0)), 0
            ).label("hand_raises"),
        ).where(in_period)
    )
    agg = agg_result.one()._mapping
    seconds = {kind: int(agg[kind] or 0) for kind in MONITORED_EVENT_KINDS}
    hand_raises = int(agg["hand_raises"] or 0)
    monitored = sum(seconds.values())
    avg_attention = percentage(seconds[EventKind.ATTENTIVE.value], monitored)

    attendance_result = await db.execute(
        select(
            func.count(AttendanceSession.id).label("total_sessions"),
            func.coalesce(
                func.sum(
                    case(
                        (
                            AttendanceSession.status.in_(
                                [AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value]
                            ),
                            1,
                        ),
                        else_=0,
                    )
                ),
                0,
            ).label("sessions_present"),
            func.coalesce(func.sum(AttendanceSession.total_duration_sec), 0).label("total_duration_sec"),
        ).where(
            AttendanceSession.participant_email == student_email,
            AttendanceSession.session_date >= period_start,
            AttendanceSession.session_date <= period_end,
        )
    )
    attendance = attendance_result.one()
    total_sessions = int(attendance.total_sessions or 0)
    sessions_present = int(attendance.sessions_present or 0)
    attendance_rate = percentage(sessions_present, total_sessions)

    alerts_result = await db.execute(
        select(func.count(MonitoringAlert.id)).where(
            MonitoringAlert.target_email == student_email,
            MonitoringAlert.created_at >= start,
            MonitoringAlert.created_at < end,
        )
    )

    trend_rows = await db.execute(
        select(MonitoringEvent.created_at, MonitoringEvent.event_type, MonitoringEvent.duration_seconds).where(
            in_period,
            MonitoringEvent.event_type.in_(MONITORED_EVENT_KINDS),
        )
    )
    per_day: Dict[date, Dict[str, int]] = defaultdict(lambda: {"attentive": 0, "total": 0})
    for row in trend_rows.all():
        day = to_utc(row.created_at).date()
        duration = int(row.duration_seconds or 0)
        per_day[day]["total"] += duration
        if row.event_type == EventKind.ATTENTIVE.value:
            per_day[day]["attentive"] += duration
    engagement_trend = [
        {"date": day.isoformat(), "score": percentage(values["attentive"], values["total"])}
        for day, values in sorted(per_day.items())
    ]

    looking_away_minutes = _whole_minutes(seconds[EventKind.LOOKING_AWAY.value])
    eyes_closed_minutes = _whole_minutes(seconds[EventKind.EYES_CLOSED.value])
    distracted_minutes = _whole_minutes(seconds[EventKind.DISTRACTED.value])

    return {
        "attendance_rate": attendance_rate,
        "avg_attention_score": avg_attention,
        "total_classes": total_sessions,
        "classes_attended": sessions_present,
        "time_in_class_minutes": _whole_minutes(int(attendance.total_duration_sec or 0)),
        "looking_away_minutes": looking_away_minutes,
        "eyes_closed_minutes": eyes_closed_minutes,
        "not_in_frame_minutes": _whole_minutes(seconds[EventKind.NOT_IN_FRAME.value]),
        "distracted_minutes": distracted_minutes,
        "hand_raises": hand_raises,
        "alerts_count": int(alerts_result.scalar() or 0),
        "engagement_trend": engagement_trend,
        "overall_summary": build_student_summary(
            name=student_name,
            attendance_rate=attendance_rate,
            avg_attention=avg_attention,
            eyes_closed_minutes=eyes_closed_minutes,
            looking_away_minutes=looking_away_minutes,
            distracted_minutes=distracted_minutes,
            hand_raises=hand_raises,
            total_sessions=total_sessions,
            sessions_present=sessions_present,
        ),
    }


async def _teacher_join_times(db: AsyncSession, teacher_email: str, room_ids: List[str]) -> Dict[str, datetime]:
    if not room_ids:
        return {}
    result = await db.execute(
        select(RoomEvent.room_id, func.min(RoomEvent.created_at).label("joined_at"))
        .where(
            RoomEvent.room_id.in_(room_ids),
            RoomEvent.event_type == ROOM_EVENT_PARTICIPANT_JOINED,
            RoomEvent.actor_email == teacher_email,
        )
        .group_by(RoomEvent.room_id)
    )
    return {row.room_id: to_utc(row.joined_at) for row in result.all() if row.joined_at is not None}


async def compute_teacher_metrics(
    db: AsyncSession,
    *,
    teacher_email: str,
    teacher_name: str,
    period_start: date,
    period_end: date,
) -> Dict[str, Any]:
    start, end = period_bounds(period_start, period_end)

    rooms_result = await db.execute(
        select(ClassRoom).where(
            ClassRoom.teacher_email == teacher_email,
            ClassRoom.scheduled_start >= start,
            ClassRoom.scheduled_start < end,
        )
    )
    rooms = list(rooms_result.scalars().all())
    room_ids = [room.room_id for room in rooms]

    conducted = [room for room in rooms if room.status in (RoomStatus.LIVE.value, RoomStatus.ENDED.value)]
    sessions_scheduled = len(rooms)
    sessions_conducted = len(conducted)
    sessions_cancelled = sum(1 for room in rooms if room.status == RoomStatus.CANCELLED.value)
    total_duration_min = sum(int(room.duration_minutes or 0) for room in conducted)

    late_rooms: set = set()
    if room_ids:
        late_result = await db.execute(
            select(MonitoringAlert.room_id)
            .where(
                MonitoringAlert.room_id.in_(room_ids),
                MonitoringAlert.alert_type == AlertKind.CLASS_STARTED_LATE.value,
            )
            .distinct()
        )
        late_rooms = {row.room_id for row in late_result.all()}
    late_starts = len(late_rooms)

    joined = await _teacher_join_times(db, teacher_email, [room.room_id for room in conducted])
    late_total_sec = 0.0
    for room in conducted:
        started = joined.get(room.room_id) or (to_utc(room.started_at) if room.started_at else None)
        if started is None:
            continue
        delay = (started - to_utc(room.scheduled_start)).total_seconds()
        if delay > 0:
            late_total_sec += delay

    on_time_rate = percentage(sessions_scheduled - late_starts, sessions_scheduled, default=100)

    camera_off_result = await db.execute(
        select(func.count(MonitoringAlert.id)).where(
            MonitoringAlert.target_email == teacher_email,
            MonitoringAlert.alert_type == AlertKind.TEACHER_CAMERA_OFF.value,
            MonitoringAlert.created_at >= start,
            MonitoringAlert.created_at < end,
        )
    )

    avg_engagement = 0
    if room_ids:
        engagement_result = await db.execute(
            select(
                _seconds_of(EventKind.ATTENTIVE.value).label("attentive"),
                func.coalesce(func.sum(MonitoringEvent.duration_seconds), 0).label("monitored"),
            ).where(
                MonitoringEvent.room_id.in_(room_ids),
                MonitoringEvent.event_type.in_(MONITORED_EVENT_KINDS),
                MonitoringEvent.created_at >= start,
                MonitoringEvent.created_at < end,
            )
        )
        engagement = engagement_result.one()
        avg_engagement = percentage(int(engagement.attentive or 0), int(engagement.monitored or 0))

    batch_ids = sorted({room.batch_id for room in rooms if room.batch_id})
    batches: List[str] = []
    if batch_ids:
        batches_result = await db.execute(
            select(ClassBatch.name).where(ClassBatch.batch_id.in_(batch_ids)).distinct().order_by(ClassBatch.name)
        )
        batches = [row.name for row in batches_result.all()]

    total_hours = round_half_up(total_duration_min / 60, 1)
    return {
        "sessions_conducted": sessions_conducted,
        "sessions_cancelled": sessions_cancelled,
        "sessions_scheduled": sessions_scheduled,
        "avg_start_delay_minutes": (
            round_half_up(late_total_sec / sessions_conducted / 60) if sessions_conducted else 0
        ),
        "on_time_rate": on_time_rate,
        "avg_class_duration_minutes": (
            round_half_up(total_duration_min / sessions_conducted) if sessions_conducted else 0
        ),
        "avg_student_engagement": avg_engagement,
        "camera_off_incidents": int(camera_off_result.scalar() or 0),
        "total_teaching_hours": total_hours,
        "late_starts": late_starts,
        "late_by_total_minutes": _whole_minutes(late_total_sec),
        "batches": batches,
        "overall_summary": build_teacher_summary(
            name=teacher_name,
            sessions_conducted=sessions_conducted,
            sessions_cancelled=sessions_cancelled,
            late_starts=late_starts,
            on_time_rate=on_time_rate,
            total_hours=total_hours,
            avg_engagement=avg_engagement,
        ),
    }


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

async def _save_report(
    db: AsyncSession,
    *,
    kind: ReportKind,
    period: ReportPeriod,
    period_start: date,
    period_end: date,
    target_email: str,
    target_role: ReportTargetRole,
    target_name: str,
    batch: Dict[str, Optional[str]],
    metrics: Dict[str, Any],
    generated_by: str,
    now: datetime,
) -> MonitoringReport:
    """One row per (target, kind, period bounds); regeneration overwrites it."""
    result = await db.execute(
        select(MonitoringReport).where(
            MonitoringReport.target_email == target_email,
            MonitoringReport.report_type == kind.value,
            MonitoringReport.period_start == period_start,
            MonitoringReport.period_end == period_end,
        )
    )
    report = result.scalar_one_or_none()
    if report is None:
        report = MonitoringReport(
            report_type=kind.value,
            report_period=period.value,
            period_start=period_start,
            period_end=period_end,
            target_email=target_email,
            target_role=target_role.value,
            created_at=now,
        )
        db.add(report)
    else:
        # content changed, so any earlier hand-off to a guardian is stale
        report.sent_to_guardian = False
        report.guardian_email = None
        report.sent_at = None

    report.target_name = target_name
    report.batch_id = batch["batch_id"]
    report.batch_name = batch["batch_name"]
    report.grade = batch["grade"]
    report.section = batch["section"]
    report.metrics = metrics
    report.generated_by = generated_by
    report.updated_at = now

    await db.flush()
    await db.refresh(report)
    return report


async def generate_report(
    db: AsyncSession,
    *,
    target_email: str,
    target_role: ReportTargetRole,
    period: ReportPeriod,
    period_start: date,
    period_end: date,
    batch_id: Optional[str] = None,
    generated_by: str = "system",
    now: Optional[datetime] = None,
) -> MonitoringReport:
    target_role = ReportTargetRole(target_role)
    period = ReportPeriod(period)
    if period_end < period_start:
        raise ValueError("period_end must not be before period_start")

    name = await _lookup_name(db, target_email)
    if target_role == ReportTargetRole.STUDENT:
        metrics = await compute_student_metrics(
            db,
            student_email=target_email,
            student_name=name,
            period_start=period_start,
            period_end=period_end,
        )
    else:
        metrics = await compute_teacher_metrics(
            db,
            teacher_email=target_email,
            teacher_name=name,
            period_start=period_start,
            period_end=period_end,
        )

    report = await _save_report(
        db,
        kind=ReportKind.for_target(target_role, period),
        period=period,
        period_start=period_start,
        period_end=period_end,
        target_email=target_email,
        target_role=target_role,
        target_name=name,
        batch=await _lookup_batch(db, batch_id),
        metrics=metrics,
        generated_by=generated_by,
        now=to_utc(now),
    )
    logger.info(
        "Generated %s report %s for %s (%s to %s)",
        report.report_type, report.id, target_email, period_start, period_end,
    )
    return report


async def generate_student_report(db: AsyncSession, **kwargs) -> MonitoringReport:
    return await generate_report(db, target_role=ReportTargetRole.STUDENT, **kwargs)


async def generate_teacher_report(db: AsyncSession, **kwargs) -> MonitoringReport:
    return await generate_report(db, target_role=ReportTargetRole.TEACHER, **kwargs)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_reports(
    db: AsyncSession,
    *,
    report_type: Optional[str] = None,
    report_period: Optional[str] = None,
    target_email: Optional[str] = None,
    target_role: Optional[str] = None,
    batch_id: Optional[str] = None,
    offset: int = 0,
    limit: int = 50,
) -> Tuple[List[MonitoringReport], int]:
    filters = []
    if report_type:
        filters.append(MonitoringReport.report_type == report_type)
    if report_period:
        filters.append(MonitoringReport.report_period == report_period)
    if target_email:
        filters.append(MonitoringReport.target_email == target_email)
    if target_role:
        filters.append(MonitoringReport.target_role == target_role)
    if batch_id:
        filters.append(MonitoringReport.batch_id == batch_id)

    query = select(MonitoringReport)
    count_query = select(func.count(MonitoringReport.id))
    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    limit = min(max(limit, 1), MAX_REPORT_PAGE)
    result = await db.execute(
        query.order_by(MonitoringReport.created_at.desc(), MonitoringReport.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_report(db: AsyncSession, report_id: int) -> Optional[MonitoringReport]:
    return await db.get(MonitoringReport, report_id)


async def mark_report_sent_to_guardian(
    db: AsyncSession,
    report_id: int,
    guardian_email: str,
    *,
    now: Optional[datetime] = None,
) -> bool:
    report = await db.get(MonitoringReport, report_id)
    if report is None:
        return False
    report.sent_to_guardian = True
    report.guardian_email = guardian_email
    report.sent_at = to_utc(now)
    await db.flush()
    logger.info("Report %s marked as sent to guardian %s", report_id, guardian_email)
    return True
