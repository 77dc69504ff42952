"""
RefugeCare Triage - API Schemas

Pydantic models for request/response validation.
These define the contract between frontend and backend.

Coordinates and affected-person counts are range-checked by the domain
types, so violations come back as VALIDATION_ERROR bodies rather than
framework 422s.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from refugecare.core.types import (
    EmergencyType,
    FacilityKind,
    FacilityStatus,
    RiskLevel,
    Severity,
    TicketStatus,
    UrgencyTier,
)


# ===========================================
# Shared
# ===========================================

class CoordinateSchema(BaseModel):
    """WGS84 position in degrees."""
    lat: float
    lng: float


class ErrorResponse(BaseModel):
    error: str = Field(description="Machine-readable error code")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """System health status."""

    status: str = Field(description="Overall status: healthy | degraded | unhealthy")
    components: Dict[str, str] = Field(
        description="Status of individual components"
    )
    version: str = Field(default="0.1.0")


# ===========================================
# Facility Schemas
# ===========================================

class FacilityUpdateRequest(BaseModel):
    """Full facility record (PUT replaces every field)."""

    name: str = Field(min_length=1, max_length=200)
    kind: FacilityKind
    coordinate: CoordinateSchema
    total_beds: int = Field(ge=0)
    emergency_beds: int = Field(ge=0, description="Must not exceed total_beds")
    staff_count: int = Field(default=0, ge=0)
    specialties: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)
    status: FacilityStatus = FacilityStatus.ACTIVE


class FacilityCreateRequest(FacilityUpdateRequest):
    """New facility. An id is generated when none is given."""

    id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class FacilityResponse(BaseModel):
    id: str
    name: str
    kind: FacilityKind
    coordinate: CoordinateSchema
    total_beds: int
    emergency_beds: int
    staff_count: int
    specialties: List[str]
    services: List[str]
    status: FacilityStatus
    created_at: datetime
    updated_at: datetime


class NearbyFacilityResponse(BaseModel):
    facility: FacilityResponse
    distance_km: float
    distance_label: str = Field(description="e.g. '850m' or '12.3km'")
    bearing: float = Field(ge=0.0, lt=360.0)
    direction: str = Field(description="Compass point: N, NE, E, ...")


class FacilityStatsResponse(BaseModel):
    facility_id: str
    total_tickets: int
    active_tickets: int
    resolved_tickets: int
    type_distribution: Dict[str, int]
    utilization: Optional[float] = Field(
        default=None,
        description="Active assigned tickets / emergency beds * 100; null when the facility has no emergency beds",
    )


# ===========================================
# Ticket Schemas
# ===========================================

class SubjectSchema(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    group_label: str = Field(default="", description="Population / ethnic group label")
    contact: str = Field(default="", max_length=200)
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[str] = None
    family_size: Optional[int] = Field(default=None, ge=1)


class EmergencySchema(BaseModel):
    type: EmergencyType
    severity: Severity
    description: str = Field(default="", max_length=10000)
    affected_people: int = Field(default=1, description="Must be at least 1")
    symptoms: List[str] = Field(default_factory=list)


class TicketCreateRequest(BaseModel):
    """Emergency intake from the UI layer."""

    subject: SubjectSchema
    location: CoordinateSchema
    address: Optional[str] = Field(default=None, description="Free-text address or camp label")
    emergency: EmergencySchema


class RecommendationSchema(BaseModel):
    supplies: List[str]
    priority: int = Field(ge=1, le=5)
    estimated_response: str
    considerations: List[str]


class TicketResponse(BaseModel):
    id: str
    subject: SubjectSchema
    location: CoordinateSchema
    address: Optional[str] = None
    emergency: EmergencySchema
    nearest_facility_ids: List[str]
    assigned_facility_id: Optional[str] = None
    assignment_override: bool = False
    status: TicketStatus
    recommendation: Optional[RecommendationSchema] = None
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None


class StatusUpdateRequest(BaseModel):
    status: TicketStatus


class ReassignRequest(BaseModel):
    facility_id: str = Field(min_length=1)


# ===========================================
# Triage Session Schemas
# ===========================================

class SessionStartRequest(BaseModel):
    previous_session_id: Optional[str] = Field(
        default=None,
        description="Session to end when starting this one",
    )


class SessionContextSchema(BaseModel):
    """Caller-supplied session context. Flags must be JSON booleans."""

    model_config = ConfigDict(extra="forbid")

    is_refugee: Optional[StrictBool] = None
    trauma_history: Optional[StrictBool] = None
    group_label: Optional[str] = Field(default=None, max_length=100)
    emergency_type: Optional[EmergencyType] = None


class SessionInputRequest(BaseModel):
    """A typed message or voice transcript."""

    text: str = Field(min_length=1, max_length=10000)
    context: Optional[SessionContextSchema] = None


class FollowUpAnswerRequest(BaseModel):
    question_id: str = Field(min_length=1)
    answer: Any = Field(description="Boolean, number or text depending on the question kind")


class FollowUpQuestionSchema(BaseModel):
    id: str
    text: str
    kind: str
    options: List[str] = Field(default_factory=list)


class ClassificationSchema(BaseModel):
    tags: List[str]
    tier: UrgencyTier
    rule_id: Optional[str] = None
    red_flags: List[str]
    trauma_suspected: bool
    advice: str
    recommended_actions: List[str]
    notes: List[str]


class RiskAssessmentSchema(BaseModel):
    level: RiskLevel
    factors: List[str]
    confidence: float = Field(ge=0.0, le=1.0)


class SessionUpdateResponse(BaseModel):
    session_id: str
    classification: ClassificationSchema
    risk: RiskAssessmentSchema
    follow_up_questions: List[FollowUpQuestionSchema]


class SessionResponse(BaseModel):
    session_id: str
    started_at: datetime
    input_count: int
    classification: Optional[ClassificationSchema] = None
    risk: RiskAssessmentSchema
    pending_questions: List[FollowUpQuestionSchema]
    advisory_narrative: Optional[str] = None


class SummaryReportResponse(BaseModel):
    session_id: str
    symptoms: List[str]
    urgency: UrgencyTier
    risk: RiskAssessmentSchema
    advice: str
    recommended_actions: List[str]
    notes: List[str]
    input_count: int
    recommendation: Optional[RecommendationSchema] = None
    advisory_narrative: Optional[str] = None
    advisory_actions: List[str] = Field(default_factory=list)
    advisory_red_flags: List[str] = Field(default_factory=list)
    advisory_cultural_advice: List[str] = Field(default_factory=list)
    generated_at: datetime
