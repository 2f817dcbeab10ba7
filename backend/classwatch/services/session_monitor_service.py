"""Live session aggregation over the trailing event window."""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.config import settings
from classwatch.models.monitoring import (
    MonitoringEvent,
    MonitoringAlert,
    AlertStatus,
    EventKind,
    MONITORED_EVENT_KINDS,
)
from classwatch.services.alert_service import get_teacher_alerts
from classwatch.services.common import to_utc, round_half_up, percentage, display_name

# Score given to a participant with no monitored time yet.
NEUTRAL_ATTENTION_SCORE = 50


def _minutes(seconds: int) -> float:
    return round_half_up(seconds / 60, 1)


def attention_score(seconds_by_kind: Dict[str, int]) -> int:
    attentive = seconds_by_kind.get(EventKind.ATTENTIVE.value, 0)
    total = sum(seconds_by_kind.get(kind, 0) for kind in MONITORED_EVENT_KINDS)
    return percentage(attentive, total, default=NEUTRAL_ATTENTION_SCORE)


def class_engagement_score(scores: List[int]) -> int:
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


async def _active_room_alerts(db: AsyncSession, room_id: str) -> List[MonitoringAlert]:
    result = await db.execute(
        select(MonitoringAlert)
        .where(MonitoringAlert.room_id == room_id, MonitoringAlert.status == AlertStatus.ACTIVE.value)
        .order_by(MonitoringAlert.created_at.desc(), MonitoringAlert.id.desc())
    )
    return list(result.scalars().all())


async def get_session_monitoring_summary(
    db: AsyncSession,
    room_id: str,
    *,
    window_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    window = window_minutes or settings.EVENT_WINDOW_MINUTES
    since = to_utc(now) - timedelta(minutes=window)

    rows = await db.execute(
        select(
            MonitoringEvent.participant_email,
            MonitoringEvent.participant_name,
            MonitoringEvent.event_type,
            MonitoringEvent.duration_seconds,
            MonitoringEvent.created_at,
        )
        .where(MonitoringEvent.room_id == room_id, MonitoringEvent.created_at >= since)
        .order_by(MonitoringEvent.created_at.desc(), MonitoringEvent.id.desc())
    )

    seconds: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    latest: Dict[str, Dict[str, Any]] = {}
    names: Dict[str, str] = {}
    for row in rows.all():
        email = row.participant_email
        seconds[email][row.event_type] += int(row.duration_seconds or 0)
        # rows arrive newest first, so the first row seen is the current state
        if email not in latest:
            latest[email] = {"event_type": row.event_type, "created_at": to_utc(row.created_at)}
        if email not in names and row.participant_name:
            names[email] = row.participant_name

    alerts = await _active_room_alerts(db, room_id)
    alerts_by_target: Dict[str, int] = defaultdict(int)
    for alert in alerts:
        if alert.target_email:
            alerts_by_target[alert.target_email] += 1

    students: List[Dict[str, Any]] = []
    for email in sorted(latest):
        by_kind = seconds[email]
        students.append(
            {
                "email": email,
                "name": display_name(names.get(email), email),
                "current_state": latest[email]["event_type"],
                "attention_score": attention_score(by_kind),
                "looking_away_minutes": _minutes(by_kind.get(EventKind.LOOKING_AWAY.value, 0)),
                "eyes_closed_minutes": _minutes(by_kind.get(EventKind.EYES_CLOSED.value, 0)),
                "not_in_frame_minutes": _minutes(by_kind.get(EventKind.NOT_IN_FRAME.value, 0)),
                "distracted_minutes": _minutes(by_kind.get(EventKind.DISTRACTED.value, 0)),
                "total_attentive_minutes": _minutes(by_kind.get(EventKind.ATTENTIVE.value, 0)),
                "last_event_at": latest[email]["created_at"],
                "active_alerts": alerts_by_target.get(email, 0),
            }
        )

    total_result = await db.execute(
        select(func.count(MonitoringEvent.id)).where(MonitoringEvent.room_id == room_id)
    )

    return {
        "room_id": room_id,
        "total_events": int(total_result.scalar() or 0),
        "students": students,
        "alerts": alerts,
        "class_engagement_score": class_engagement_score([s["attention_score"] for s in students]),
    }


async def get_teacher_session_view(
    db: AsyncSession,
    room_id: str,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Reduced live view for the teacher in the room: scores and teacher-visible alerts."""
    summary = await get_session_monitoring_summary(db, room_id, now=now)
    return {
        "room_id": room_id,
        "class_engagement_score": summary["class_engagement_score"],
        "student_count": len(summary["students"]),
        "students": [
            {
                "email": s["email"],
                "name": s["name"],
                "attention_score": s["attention_score"],
                "current_state": s["current_state"],
                "active_alerts": s["active_alerts"],
            }
            for s in summary["students"]
        ],
        "alerts": await get_teacher_alerts(db, room_id),
    }
