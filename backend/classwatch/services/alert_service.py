"""Alert store: lifecycle transitions, role-filtered queries and reconciliation."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update, case, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classwatch.config import settings
from classwatch.models.monitoring import (
    MonitoringAlert,
    AlertAudience,
    AlertStatus,
    SEVERITY_RANK,
)
from classwatch.services.common import to_utc
from classwatch.services.evaluation_service import rolling_duration
from classwatch.services.thresholds import ThresholdTable, default_threshold_table

logger = logging.getLogger(__name__)

MAX_ALERT_PAGE = 200

_severity_order = case(SEVERITY_RANK, value=MonitoringAlert.severity, else_=len(SEVERITY_RANK))


def _cap_limit(limit: Optional[int], default: int = 50) -> int:
    if not limit or limit < 1:
        return default
    return min(limit, MAX_ALERT_PAGE)


async def get_alert(db: AsyncSession, alert_id: int) -> Optional[MonitoringAlert]:
    return await db.get(MonitoringAlert, alert_id)


async def dismiss_alert(
    db: AsyncSession,
    alert_id: int,
    actor: str,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """active -> dismissed. False when the alert is missing or no longer active."""
    result = await db.execute(
        update(MonitoringAlert)
        .where(MonitoringAlert.id == alert_id, MonitoringAlert.status == AlertStatus.ACTIVE.value)
        .values(status=AlertStatus.DISMISSED.value, dismissed_by=actor, dismissed_at=to_utc(now))
    )
    await db.flush()
    dismissed = (result.rowcount or 0) > 0
    if dismissed:
        logger.info("Alert %s dismissed by %s", alert_id, actor)
    return dismissed


async def resolve_alert(
    db: AsyncSession,
    alert_id: int,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """active -> resolved. False when the alert is missing or no longer active."""
    result = await db.execute(
        update(MonitoringAlert)
        .where(MonitoringAlert.id == alert_id, MonitoringAlert.status == AlertStatus.ACTIVE.value)
        .values(status=AlertStatus.RESOLVED.value, resolved_at=to_utc(now))
    )
    await db.flush()
    return (result.rowcount or 0) > 0


async def get_active_alerts(
    db: AsyncSession,
    role: AlertAudience,
    *,
    batch_id: Optional[str] = None,
    room_id: Optional[str] = None,
    limit: Optional[int] = 50,
) -> List[MonitoringAlert]:
    role = AlertAudience(role)
    flag = (
        MonitoringAlert.notify_coordinator
        if role == AlertAudience.COORDINATOR
        else MonitoringAlert.notify_academic_operator
    )
    filters = [MonitoringAlert.status == AlertStatus.ACTIVE.value, flag.is_(True)]
    if batch_id:
        filters.append(MonitoringAlert.batch_id == batch_id)
    if room_id:
        filters.append(MonitoringAlert.room_id == room_id)

    result = await db.execute(
        select(MonitoringAlert)
        .where(and_(*filters))
        .order_by(_severity_order, MonitoringAlert.created_at.desc(), MonitoringAlert.id.desc())
        .limit(_cap_limit(limit))
    )
    return list(result.scalars().all())


async def get_alert_history(
    db: AsyncSession,
    *,
    room_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    alert_type: Optional[str] = None,
    offset: int = 0,
    limit: Optional[int] = 50,
    now: Optional[datetime] = None,
) -> Tuple[List[MonitoringAlert], int]:
    since = to_utc(now) - timedelta(hours=settings.ALERT_HISTORY_HOURS)
    filters = [MonitoringAlert.created_at >= since]
    if room_id:
        filters.append(MonitoringAlert.room_id == room_id)
    if batch_id:
        filters.append(MonitoringAlert.batch_id == batch_id)
    if alert_type:
        filters.append(MonitoringAlert.alert_type == alert_type)

    total_result = await db.execute(select(func.count(MonitoringAlert.id)).where(and_(*filters)))
    total = total_result.scalar() or 0

    result = await db.execute(
        select(MonitoringAlert)
        .where(and_(*filters))
        .order_by(MonitoringAlert.created_at.desc(), MonitoringAlert.id.desc())
        .offset(max(offset, 0))
        .limit(_cap_limit(limit))
    )
    return list(result.scalars().all()), total


async def get_teacher_alerts(db: AsyncSession, room_id: str, limit: int = 20) -> List[MonitoringAlert]:
    result = await db.execute(
        select(MonitoringAlert)
        .where(
            MonitoringAlert.room_id == room_id,
            MonitoringAlert.notify_teacher.is_(True),
            MonitoringAlert.status == AlertStatus.ACTIVE.value,
        )
        .order_by(MonitoringAlert.created_at.desc(), MonitoringAlert.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def reconcile_active_alerts(
    db: AsyncSession,
    *,
    table: Optional[ThresholdTable] = None,
    now: Optional[datetime] = None,
) -> int:
    """Resolve active student alerts whose rolling sum has dropped below threshold.

    Only alert kinds produced by the threshold table are considered; teacher
    alerts stay active until someone dismisses them.
    """
    table = table or default_threshold_table()
    now = to_utc(now)
    since = now - timedelta(minutes=table.window_minutes)

    result = await db.execute(
        select(MonitoringAlert).where(
            MonitoringAlert.status == AlertStatus.ACTIVE.value,
            MonitoringAlert.alert_type.in_(table.alert_kinds),
            MonitoringAlert.room_id.is_not(None),
            MonitoringAlert.target_email.is_not(None),
        )
    )
    resolved = 0
    for alert in result.scalars().all():
        rule = table.rule_for_alert(alert.alert_type)
        total_seconds = await rolling_duration(
            db,
            room_id=alert.room_id,
            participant_email=alert.target_email,
            event_type=rule.event_kind,
            since=since,
        )
        if total_seconds >= rule.threshold_seconds:
            continue
        if await resolve_alert(db, alert.id, now=now):
            resolved += 1

    if resolved:
        logger.info("Reconciler resolved %s alert(s)", resolved)
    return resolved


async def reconcile_periodically(session_factory: async_sessionmaker, interval_seconds: int) -> None:
    """Run the reconciler forever; meant to live in an asyncio task."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with session_factory() as db:
                await reconcile_active_alerts(db)
                await db.commit()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Alert reconciliation pass failed")
