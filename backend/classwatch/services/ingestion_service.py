"""Ingestion gateway: persist perception events, then evaluate each one."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classwatch.config import settings
from classwatch.models.monitoring import MonitoringEvent
from classwatch.schemas.monitoring import PerceptionEventIn
from classwatch.services.common import to_utc
from classwatch.services.evaluation_service import evaluate_event, evaluation_lock
from classwatch.services.thresholds import ThresholdTable

logger = logging.getLogger(__name__)


def _validation_reason(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


async def ingest_events(
    db: AsyncSession,
    events: Sequence[Any],
    *,
    table: Optional[ThresholdTable] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Store a batch of events and run threshold evaluation after each insert.

    Every event is validated on its own; invalid ones are reported in
    ``rejected`` and the rest of the batch still goes through. Each stored
    event is committed before it is evaluated, so a failing evaluation never
    loses the event. Ids of events whose evaluation failed are returned in
    ``failed_event_ids`` for a later retry.
    """
    result: Dict[str, Any] = {
        "inserted": 0,
        "alerts_generated": 0,
        "evaluation_failures": 0,
        "rejected": [],
        "failed_event_ids": [],
    }
    if not events:
        return result
    if len(events) > settings.MAX_EVENTS_PER_BATCH:
        raise ValueError(f"Batch too large. Max allowed events: {settings.MAX_EVENTS_PER_BATCH}")

    for index, raw in enumerate(events):
        try:
            payload = raw if isinstance(raw, PerceptionEventIn) else PerceptionEventIn.model_validate(raw)
        except ValidationError as exc:
            reason = _validation_reason(exc)
            logger.warning("Rejected monitoring event #%s: %s", index, reason)
            result["rejected"].append({"index": index, "reason": reason})
            continue

        event = MonitoringEvent(
            room_id=payload.room_id,
            session_id=payload.session_id,
            participant_email=str(payload.participant_email),
            participant_name=payload.participant_name,
            event_type=payload.event_type.value,
            confidence=payload.confidence,
            duration_seconds=payload.duration_seconds,
            details=payload.details_payload(),
            created_at=to_utc(now),
        )
        db.add(event)
        await db.commit()
        result["inserted"] += 1
        event_id = event.id

        try:
            async with evaluation_lock(event.room_id, event.participant_email):
                alert = await evaluate_event(db, event, table=table, now=event.created_at)
                await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Threshold evaluation failed for monitoring event %s", event_id)
            result["evaluation_failures"] += 1
            result["failed_event_ids"].append(event_id)
            continue

        if alert is not None:
            result["alerts_generated"] += 1

    return result


async def retry_failed_evaluations(
    session_factory: async_sessionmaker,
    event_ids: List[int],
    *,
    table: Optional[ThresholdTable] = None,
) -> int:
    """Re-run evaluation for stored events whose first evaluation failed.

    The rolling window is measured from the retry time. Returns the number of
    alerts created.
    """
    created = 0
    async with session_factory() as db:
        for event_id in event_ids:
            event = await db.get(MonitoringEvent, event_id)
            if event is None:
                logger.warning("Monitoring event %s vanished before evaluation retry", event_id)
                continue
            try:
                async with evaluation_lock(event.room_id, event.participant_email):
                    alert = await evaluate_event(db, event, table=table)
                    await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Evaluation retry failed for monitoring event %s", event_id)
                continue
            if alert is not None:
                created += 1
    return created
