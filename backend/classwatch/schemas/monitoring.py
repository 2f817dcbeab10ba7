"""Pydantic schemas for event ingestion, alerts and live session monitoring."""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from classwatch.models.monitoring import AlertKind, AlertSeverity, EventKind, TEACHER_ALERT_KINDS


# ---------------------------------------------------------------------------
# Event details, tagged by event kind
# ---------------------------------------------------------------------------

class _DetailsBase(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AttentiveDetails(_DetailsBase):
    kind: Literal["attentive"] = "attentive"
    gaze_score: Optional[float] = Field(None, ge=0, le=1)


class LookingAwayDetails(_DetailsBase):
    kind: Literal["looking_away"] = "looking_away"
    head_pose_yaw: Optional[float] = Field(None, ge=-90, le=90)
    head_pose_pitch: Optional[float] = Field(None, ge=-90, le=90)


class EyesClosedDetails(_DetailsBase):
    kind: Literal["eyes_closed"] = "eyes_closed"
    eye_aspect_ratio: Optional[float] = Field(None, ge=0)


class NotInFrameDetails(_DetailsBase):
    kind: Literal["not_in_frame"] = "not_in_frame"
    face_confidence: Optional[float] = Field(None, ge=0, le=1)


class LowEngagementDetails(_DetailsBase):
    kind: Literal["low_engagement"] = "low_engagement"
    attention_score: Optional[int] = Field(None, ge=0, le=100)


class HandRaisedDetails(_DetailsBase):
    kind: Literal["hand_raised"] = "hand_raised"
    acknowledged: Optional[bool] = None


class SpeakingDetails(_DetailsBase):
    kind: Literal["speaking"] = "speaking"
    mouth_open_ratio: Optional[float] = Field(None, ge=0)


class DistractedDetails(_DetailsBase):
    kind: Literal["distracted"] = "distracted"
    movement_intensity: Optional[float] = Field(None, ge=0, le=1)


class PhoneDetectedDetails(_DetailsBase):
    kind: Literal["phone_detected"] = "phone_detected"
    object_label: Optional[str] = Field(None, max_length=60)
    bounding_box: Optional[List[float]] = Field(None, min_length=4, max_length=4)


class MultipleFacesDetails(_DetailsBase):
    kind: Literal["multiple_faces"] = "multiple_faces"
    face_count: Optional[int] = Field(None, ge=2)


EventDetails = Annotated[
    Union[
        AttentiveDetails,
        LookingAwayDetails,
        EyesClosedDetails,
        NotInFrameDetails,
        LowEngagementDetails,
        HandRaisedDetails,
        SpeakingDetails,
        DistractedDetails,
        PhoneDetectedDetails,
        MultipleFacesDetails,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class PerceptionEventIn(BaseModel):
    """A single pre-classified observation, fully attributed to a participant."""

    room_id: str = Field(..., min_length=1, max_length=64)
    session_id: Optional[str] = Field(None, max_length=64)
    participant_email: EmailStr
    participant_name: Optional[str] = Field(None, max_length=120)
    event_type: EventKind
    confidence: int = Field(100, ge=0, le=100)
    duration_seconds: int = Field(0, ge=0)
    details: Optional[EventDetails] = None

    @model_validator(mode="before")
    @classmethod
    def _tag_details(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        details = data.get("details")
        if details is None or not isinstance(details, dict):
            return data
        data = dict(data)
        event_type = data.get("event_type")
        if isinstance(event_type, EventKind):
            event_type = event_type.value
        data["details"] = {**details, "kind": event_type}
        return data

    def details_payload(self) -> Dict[str, Any]:
        if self.details is None:
            return {}
        return self.details.model_dump(exclude_none=True)


class EventBatchCreate(BaseModel):
    room_id: str = Field(..., min_length=1, max_length=64)
    session_id: Optional[str] = Field(None, max_length=64)
    participant_email: Optional[EmailStr] = None
    participant_name: Optional[str] = Field(None, max_length=120)
    events: List[Any]


class RejectedEvent(BaseModel):
    index: int
    reason: str


class EventBatchResponse(BaseModel):
    inserted: int
    alerts_generated: int
    evaluation_failures: int = 0
    rejected: List[RejectedEvent] = []


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class AlertResponse(BaseModel):
    id: int
    room_id: Optional[str] = None
    session_id: Optional[str] = None
    batch_id: Optional[str] = None
    alert_type: str
    severity: str
    title: str
    message: str
    target_email: Optional[str] = None
    notify_coordinator: bool
    notify_academic_operator: bool
    notify_teacher: bool
    status: str
    dismissed_by: Optional[str] = None
    dismissed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AlertListResponse(BaseModel):
    alerts: List[AlertResponse]


class AlertHistoryResponse(BaseModel):
    alerts: List[AlertResponse]
    total: int


class AlertDismissRequest(BaseModel):
    actor: str = Field(..., min_length=1, max_length=255)


class AlertActionResponse(BaseModel):
    success: bool
    message: str


class TeacherAlertCreate(BaseModel):
    room_id: str = Field(..., min_length=1, max_length=64)
    session_id: Optional[str] = Field(None, max_length=64)
    batch_id: Optional[str] = Field(None, max_length=64)
    alert_type: AlertKind
    severity: AlertSeverity = AlertSeverity.WARNING
    teacher_email: EmailStr
    teacher_name: Optional[str] = Field(None, max_length=120)
    message: str = Field(..., min_length=1, max_length=1000)

    @field_validator("alert_type")
    @classmethod
    def _teacher_side_kind(cls, value: AlertKind) -> AlertKind:
        if value.value not in TEACHER_ALERT_KINDS:
            raise ValueError(f"'{value.value}' is not a teacher-side alert kind")
        return value


class TeacherAlertResponse(BaseModel):
    alert_id: Optional[int] = None
    created: bool


class ReconcileResponse(BaseModel):
    resolved: int


# ---------------------------------------------------------------------------
# Live session monitoring
# ---------------------------------------------------------------------------

class StudentMonitoringState(BaseModel):
    email: str
    name: str
    current_state: str
    attention_score: int
    looking_away_minutes: float
    eyes_closed_minutes: float
    not_in_frame_minutes: float
    distracted_minutes: float
    total_attentive_minutes: float
    last_event_at: datetime
    active_alerts: int


class SessionMonitoringSummary(BaseModel):
    room_id: str
    total_events: int
    students: List[StudentMonitoringState]
    alerts: List[AlertResponse]
    class_engagement_score: int


class TeacherStudentView(BaseModel):
    email: str
    name: str
    attention_score: int
    current_state: str
    active_alerts: int


class TeacherSessionView(BaseModel):
    room_id: str
    class_engagement_score: int
    student_count: int
    students: List[TeacherStudentView]
    alerts: List[AlertResponse]
