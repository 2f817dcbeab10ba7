"""
Perception event ingestion API routes.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.database import get_db, AsyncSessionLocal
from classwatch.schemas.monitoring import EventBatchCreate, EventBatchResponse, RejectedEvent
from classwatch.services.ingestion_service import ingest_events, retry_failed_evaluations

router = APIRouter(prefix="/api/v1/monitoring", tags=["Monitoring Events"])

logger = logging.getLogger(__name__)


@router.post("/events", response_model=EventBatchResponse, status_code=status.HTTP_201_CREATED)
async def ingest_monitoring_events(
    body: EventBatchCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    events = []
    for raw in body.events:
        if not isinstance(raw, dict):
            # left as-is so ingestion rejects it by index
            events.append(raw)
            continue
        event = dict(raw)
        event.setdefault("room_id", body.room_id)
        if body.session_id is not None:
            event.setdefault("session_id", body.session_id)
        if body.participant_email is not None:
            event.setdefault("participant_email", str(body.participant_email))
        if body.participant_name is not None:
            event.setdefault("participant_name", body.participant_name)
        events.append(event)

    try:
        result = await ingest_events(db, events)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result["failed_event_ids"]:
        logger.info("Scheduling evaluation retry for %s event(s)", len(result["failed_event_ids"]))
        background_tasks.add_task(retry_failed_evaluations, AsyncSessionLocal, result["failed_event_ids"])

    return EventBatchResponse(
        inserted=result["inserted"],
        alerts_generated=result["alerts_generated"],
        evaluation_failures=result["evaluation_failures"],
        rejected=[RejectedEvent(**item) for item in result["rejected"]],
    )
