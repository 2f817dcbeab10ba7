"""
Period report API routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from classwatch.database import get_db
from classwatch.schemas.monitoring import AlertActionResponse
from classwatch.schemas.report import (
    ReportGenerateRequest,
    ReportGenerateResponse,
    ReportResponse,
    ReportListResponse,
    ReportSendRequest,
)
from classwatch.services.report_service import (
    MAX_REPORT_PAGE,
    generate_report,
    get_report,
    list_reports,
    mark_report_sent_to_guardian,
)

router = APIRouter(prefix="/api/v1/monitoring", tags=["Monitoring Reports"])


@router.post("/reports", response_model=ReportGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_report_route(
    body: ReportGenerateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        report = await generate_report(
            db,
            target_email=str(body.target_email),
            target_role=body.target_role,
            period=body.period,
            period_start=body.period_start,
            period_end=body.period_end,
            batch_id=body.batch_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ReportGenerateResponse(
        report_id=report.id,
        message=f"{report.report_type} report generated for {report.target_email}",
    )


@router.get("/reports", response_model=ReportListResponse)
async def list_reports_route(
    report_type: Optional[str] = Query(None),
    report_period: Optional[str] = Query(None),
    target_email: Optional[str] = Query(None),
    target_role: Optional[str] = Query(None),
    batch_id: Optional[str] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_REPORT_PAGE),
    db: AsyncSession = Depends(get_db),
):
    reports, total = await list_reports(
        db,
        report_type=report_type,
        report_period=report_period,
        target_email=target_email,
        target_role=target_role,
        batch_id=batch_id,
        offset=offset,
        limit=limit,
    )
    return ReportListResponse(reports=[ReportResponse.model_validate(r) for r in reports], total=total)


@router.get("/reports/{report_id}", response_model=ReportResponse)
async def get_report_route(
    report_id: int,
    db: AsyncSession = Depends(get_db),
):
    report = await get_report(db, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return ReportResponse.model_validate(report)


@router.post("/reports/{report_id}/send", response_model=AlertActionResponse)
async def send_report_route(
    report_id: int,
    body: ReportSendRequest,
    db: AsyncSession = Depends(get_db),
):
    sent = await mark_report_sent_to_guardian(db, report_id, str(body.guardian_email))
    if not sent:
        raise HTTPException(status_code=404, detail="Report not found")
    return AlertActionResponse(success=True, message=f"Report marked as sent to {body.guardian_email}")
