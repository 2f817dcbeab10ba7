"""
Live session monitoring API routes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.database import get_db
from classwatch.schemas.monitoring import AlertResponse, SessionMonitoringSummary, TeacherSessionView
from classwatch.services.session_monitor_service import (
    get_session_monitoring_summary,
    get_teacher_session_view,
)

router = APIRouter(prefix="/api/v1/monitoring", tags=["Session Monitoring"])


@router.get("/session/{room_id}", response_model=SessionMonitoringSummary)
async def get_session_summary_route(
    room_id: str,
    db: AsyncSession = Depends(get_db),
):
    summary = await get_session_monitoring_summary(db, room_id)
    summary["alerts"] = [AlertResponse.model_validate(a) for a in summary["alerts"]]
    return SessionMonitoringSummary.model_validate(summary)


@router.get("/session/{room_id}/teacher", response_model=TeacherSessionView)
async def get_teacher_view_route(
    room_id: str,
    db: AsyncSession = Depends(get_db),
):
    view = await get_teacher_session_view(db, room_id)
    view["alerts"] = [AlertResponse.model_validate(a) for a in view["alerts"]]
    return TeacherSessionView.model_validate(view)
