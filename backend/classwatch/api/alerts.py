"""
Alert lifecycle and query API routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.database import get_db
from classwatch.models.monitoring import AlertAudience
from classwatch.schemas.monitoring import (
    AlertResponse,
    AlertListResponse,
    AlertHistoryResponse,
    AlertDismissRequest,
    AlertActionResponse,
    TeacherAlertCreate,
    TeacherAlertResponse,
    ReconcileResponse,
)
from classwatch.services.alert_service import (
    MAX_ALERT_PAGE,
    get_alert,
    get_active_alerts,
    get_alert_history,
    dismiss_alert,
    resolve_alert,
    reconcile_active_alerts,
)
from classwatch.services.evaluation_service import create_teacher_alert

router = APIRouter(prefix="/api/v1/monitoring", tags=["Monitoring Alerts"])


@router.get("/alerts", response_model=AlertListResponse)
async def list_active_alerts(
    role: AlertAudience = Query(AlertAudience.COORDINATOR),
    batch_id: Optional[str] = Query(None),
    room_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=MAX_ALERT_PAGE),
    db: AsyncSession = Depends(get_db),
):
    alerts = await get_active_alerts(db, role, batch_id=batch_id, room_id=room_id, limit=limit)
    return AlertListResponse(alerts=[AlertResponse.model_validate(a) for a in alerts])


@router.get("/alerts/history", response_model=AlertHistoryResponse)
async def list_alert_history(
    room_id: Optional[str] = Query(None),
    batch_id: Optional[str] = Query(None),
    alert_type: Optional[str] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_ALERT_PAGE),
    db: AsyncSession = Depends(get_db),
):
    alerts, total = await get_alert_history(
        db,
        room_id=room_id,
        batch_id=batch_id,
        alert_type=alert_type,
        offset=offset,
        limit=limit,
    )
    return AlertHistoryResponse(alerts=[AlertResponse.model_validate(a) for a in alerts], total=total)


@router.post("/alerts/teacher", response_model=TeacherAlertResponse, status_code=status.HTTP_201_CREATED)
async def raise_teacher_alert(
    body: TeacherAlertCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        alert = await create_teacher_alert(
            db,
            room_id=body.room_id,
            session_id=body.session_id,
            batch_id=body.batch_id,
            alert_type=body.alert_type,
            severity=body.severity,
            teacher_email=str(body.teacher_email),
            teacher_name=body.teacher_name,
            message=body.message,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if alert is None:
        return TeacherAlertResponse(alert_id=None, created=False)
    return TeacherAlertResponse(alert_id=alert.id, created=True)


@router.post("/alerts/reconcile", response_model=ReconcileResponse)
async def reconcile_alerts(db: AsyncSession = Depends(get_db)):
    resolved = await reconcile_active_alerts(db)
    return ReconcileResponse(resolved=resolved)


@router.get("/alerts/{alert_id}", response_model=AlertResponse)
async def get_alert_route(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
):
    alert = await get_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return AlertResponse.model_validate(alert)


@router.post("/alerts/{alert_id}/dismiss", response_model=AlertActionResponse)
async def dismiss_alert_route(
    alert_id: int,
    body: AlertDismissRequest,
    db: AsyncSession = Depends(get_db),
):
    if not await get_alert(db, alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    dismissed = await dismiss_alert(db, alert_id, body.actor)
    if not dismissed:
        return AlertActionResponse(success=False, message="Alert is no longer active")
    return AlertActionResponse(success=True, message="Alert dismissed")


@router.post("/alerts/{alert_id}/resolve", response_model=AlertActionResponse)
async def resolve_alert_route(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
):
    if not await get_alert(db, alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    resolved = await resolve_alert(db, alert_id)
    if not resolved:
        return AlertActionResponse(success=False, message="Alert is no longer active")
    return AlertActionResponse(success=True, message="Alert resolved")
