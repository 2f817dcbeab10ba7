"""Pydantic schemas for period reports."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from classwatch.models.monitoring import ReportPeriod, ReportTargetRole


class ReportGenerateRequest(BaseModel):
    target_email: EmailStr
    target_role: ReportTargetRole
    period: ReportPeriod
    period_start: date
    period_end: date
    batch_id: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def _check_period(self) -> "ReportGenerateRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class ReportGenerateResponse(BaseModel):
    report_id: int
    message: str


class ReportResponse(BaseModel):
    id: int
    report_type: str
    report_period: str
    period_start: date
    period_end: date
    target_email: str
    target_role: str
    target_name: Optional[str] = None
    batch_id: Optional[str] = None
    batch_name: Optional[str] = None
    grade: Optional[str] = None
    section: Optional[str] = None
    metrics: Dict[str, Any]
    sent_to_guardian: bool
    guardian_email: Optional[str] = None
    sent_at: Optional[datetime] = None
    generated_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReportListResponse(BaseModel):
    reports: List[ReportResponse]
    total: int


class ReportSendRequest(BaseModel):
    guardian_email: EmailStr
