"""Threshold evaluation: turns accumulated negative signals into alerts."""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.models.monitoring import (
    MonitoringEvent,
    MonitoringAlert,
    AlertStatus,
    AlertKind,
    AlertSeverity,
    POSITIVE_EVENT_KINDS,
    TEACHER_ALERT_KINDS,
)
from classwatch.models.registry import RoomEvent
from classwatch.services.common import to_utc, round_half_up, display_name
from classwatch.services.thresholds import ThresholdTable, default_threshold_table

logger = logging.getLogger(__name__)

ROOM_EVENT_MONITORING_ALERT = "monitoring_alert"


class _KeyedLocks:
    """One asyncio.Lock per (room, participant); entries vanish once unused."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


_evaluation_locks = _KeyedLocks()


@asynccontextmanager
async def evaluation_lock(room_id: str, participant_email: str) -> AsyncIterator[None]:
    """Serialize evaluate-then-commit for one participant in one room.

    Hold it until the alert insert is committed, otherwise a concurrent
    evaluation can still miss it.
    """
    lock = _evaluation_locks.get((room_id, participant_email.lower()))
    async with lock:
        yield


async def rolling_duration(
    db: AsyncSession,
    *,
    room_id: str,
    participant_email: str,
    event_type: str,
    since: datetime,
) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(MonitoringEvent.duration_seconds), 0)).where(
            MonitoringEvent.room_id == room_id,
            MonitoringEvent.participant_email == participant_email,
            MonitoringEvent.event_type == event_type,
            MonitoringEvent.created_at >= since,
        )
    )
    return int(result.scalar() or 0)


async def has_recent_active_alert(
    db: AsyncSession,
    *,
    room_id: str,
    alert_type: str,
    since: datetime,
    target_email: Optional[str] = None,
) -> bool:
    query = select(MonitoringAlert.id).where(
        MonitoringAlert.room_id == room_id,
        MonitoringAlert.alert_type == alert_type,
        MonitoringAlert.status == AlertStatus.ACTIVE.value,
        MonitoringAlert.created_at >= since,
    )
    if target_email is not None:
        query = query.where(MonitoringAlert.target_email == target_email)
    result = await db.execute(query.limit(1))
    return result.first() is not None


def _mirror_room_event(
    db: AsyncSession,
    *,
    room_id: str,
    actor_email: Optional[str],
    details: Dict[str, Any],
    now: datetime,
) -> None:
    db.add(
        RoomEvent(
            room_id=room_id,
            event_type=ROOM_EVENT_MONITORING_ALERT,
            actor_email=actor_email,
            details=details,
            created_at=now,
        )
    )


async def evaluate_event(
    db: AsyncSession,
    event: MonitoringEvent,
    *,
    table: Optional[ThresholdTable] = None,
    now: Optional[datetime] = None,
) -> Optional[MonitoringAlert]:
    """Create a student alert if the event pushes its rolling sum over threshold.

    Returns the new alert, or None when the kind is positive, unmapped, below
    threshold, or suppressed by a recent active alert. The caller commits.
    """
    if event.event_type in POSITIVE_EVENT_KINDS:
        return None

    table = table or default_threshold_table()
    rule = table.rule_for(event.event_type)
    if rule is None:
        return None

    now = to_utc(now)
    total_seconds = await rolling_duration(
        db,
        room_id=event.room_id,
        participant_email=event.participant_email,
        event_type=event.event_type,
        since=now - timedelta(minutes=table.window_minutes),
    )
    if total_seconds < rule.threshold_seconds:
        return None

    if await has_recent_active_alert(
        db,
        room_id=event.room_id,
        alert_type=rule.alert_kind,
        target_email=event.participant_email,
        since=now - timedelta(minutes=table.suppression_minutes),
    ):
        logger.debug(
            "Suppressed duplicate %s alert for %s in room %s",
            rule.alert_kind, event.participant_email, event.room_id,
        )
        return None

    name = display_name(event.participant_name, event.participant_email)
    minutes = round_half_up(total_seconds / 60)
    message = rule.message(name, minutes)

    alert = MonitoringAlert(
        room_id=event.room_id,
        session_id=event.session_id,
        alert_type=rule.alert_kind,
        severity=rule.severity,
        title=rule.title(name),
        message=message,
        target_email=event.participant_email,
        notify_coordinator=True,
        notify_academic_operator=True,
        notify_teacher=True,
        status=AlertStatus.ACTIVE.value,
        created_at=now,
    )
    db.add(alert)
    _mirror_room_event(
        db,
        room_id=event.room_id,
        actor_email=event.participant_email,
        details={"alert_type": rule.alert_kind, "severity": rule.severity, "message": message},
        now=now,
    )
    await db.flush()
    logger.info(
        "Alert %s created: %s for %s in room %s (%ss in window)",
        alert.id, rule.alert_kind, event.participant_email, event.room_id, total_seconds,
    )
    return alert


async def create_teacher_alert(
    db: AsyncSession,
    *,
    room_id: str,
    alert_type: AlertKind,
    severity: AlertSeverity,
    teacher_email: str,
    message: str,
    teacher_name: Optional[str] = None,
    session_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    suppression_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[MonitoringAlert]:
    """Record a teacher-side alert supplied directly by the caller.

    Suppressed (returns None) when the same teacher already has an active
    alert of this kind in the room within the suppression window. Raises
    ValueError for kinds outside TEACHER_ALERT_KINDS. Commits.
    """
    alert_type = AlertKind(alert_type)
    if alert_type.value not in TEACHER_ALERT_KINDS:
        raise ValueError(f"'{alert_type.value}' is not a teacher-side alert kind")
    severity = AlertSeverity(severity)
    if suppression_minutes is None:
        suppression_minutes = default_threshold_table().suppression_minutes
    now = to_utc(now)

    async with evaluation_lock(room_id, teacher_email):
        if await has_recent_active_alert(
            db,
            room_id=room_id,
            alert_type=alert_type.value,
            target_email=teacher_email,
            since=now - timedelta(minutes=suppression_minutes),
        ):
            logger.debug("Suppressed duplicate %s alert in room %s", alert_type.value, room_id)
            return None

        name = display_name(teacher_name, teacher_email)
        alert = MonitoringAlert(
            room_id=room_id,
            session_id=session_id,
            batch_id=batch_id,
            alert_type=alert_type.value,
            severity=severity.value,
            title=f"Teacher Alert — {name}",
            message=message,
            target_email=teacher_email,
            notify_coordinator=True,
            notify_academic_operator=True,
            notify_teacher=False,
            status=AlertStatus.ACTIVE.value,
            created_at=now,
        )
        db.add(alert)
        _mirror_room_event(
            db,
            room_id=room_id,
            actor_email=teacher_email,
            details={"alert_type": alert_type.value, "severity": severity.value, "message": message},
            now=now,
        )
        await db.flush()
        alert_id = alert.id
        await db.commit()

    logger.info("Teacher alert %s created: %s in room %s", alert_id, alert_type.value, room_id)
    return alert
