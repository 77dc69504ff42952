"""
RefugeCare Triage - Core Domain Types

Internal type definitions for the intake, triage and facility-matching
engine. These are domain objects used within the core and service layers,
independent of API serialization.

Design Notes:
- Value objects (Coordinate, Facility, Ticket, ...) are frozen dataclasses.
  Updates produce a new instance via dataclasses.replace, so a reader never
  observes a half-applied change.
- TriageSession is the one mutable record; it is only touched by the
  Session Accumulator while holding that session's lock.
- API layer converts these to/from Pydantic schemas for external communication.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NewType, Optional, Set, Tuple

from refugecare.core.exceptions import ValidationError


# =============================================================================
# Type Aliases
# =============================================================================

TicketId = NewType("TicketId", str)
"""Unique identifier for an emergency ticket."""

FacilityId = NewType("FacilityId", str)
"""Unique identifier for a care facility."""

SessionId = NewType("SessionId", str)
"""Unique identifier for a triage conversation session."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class FacilityKind(str, Enum):
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    EMERGENCY_CENTER = "emergency_center"
    MOBILE_UNIT = "mobile_unit"


class FacilityStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class EmergencyType(str, Enum):
    MEDICAL = "medical"
    EPIDEMIC = "epidemic"
    MALNUTRITION = "malnutrition"
    TRAUMA = "trauma"
    MENTAL_HEALTH = "mental_health"
    GENERAL = "general"


class Severity(str, Enum):
    """Reported severity of an emergency at intake."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TicketStatus(str, Enum):
    """Ticket lifecycle status. Expected path: open -> assigned -> in_progress -> resolved -> closed."""
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class UrgencyTier(str, Enum):
    """Classifier output tier, ordered from least to most urgent."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @classmethod
    def highest(cls, *tiers: "UrgencyTier") -> "UrgencyTier":
        """Most urgent of the given tiers (LOW when none are given)."""
        return max(tiers, key=lambda t: t.rank, default=cls.LOW)


_TIER_RANK = {
    UrgencyTier.LOW: 0,
    UrgencyTier.MEDIUM: 1,
    UrgencyTier.HIGH: 2,
    UrgencyTier.EMERGENCY: 3,
}


class RiskLevel(str, Enum):
    """Running risk level of a triage session."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Geography
# =============================================================================

@dataclass(frozen=True)
class Coordinate:
    """WGS84 latitude/longitude in degrees."""
    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValidationError(
                f"Latitude {self.lat} outside [-90, 90]",
                details={"lat": self.lat},
            )
        if not -180.0 <= self.lng <= 180.0:
            raise ValidationError(
                f"Longitude {self.lng} outside [-180, 180]",
                details={"lng": self.lng},
            )

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


# =============================================================================
# Facility
# =============================================================================

@dataclass(frozen=True)
class Facility:
    """
    A care-providing location.

    Capacity counts are administrative data; the engine never mutates them.
    Utilization is derived from active ticket counts at query time.
    """
    id: str
    name: str
    kind: FacilityKind
    coordinate: Coordinate
    total_beds: int
    emergency_beds: int
    staff_count: int = 0
    specialties: FrozenSet[str] = frozenset()
    services: FrozenSet[str] = frozenset()
    status: FacilityStatus = FacilityStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == FacilityStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "coordinate": self.coordinate.to_dict(),
            "total_beds": self.total_beds,
            "emergency_beds": self.emergency_beds,
            "staff_count": self.staff_count,
            "specialties": sorted(self.specialties),
            "services": sorted(self.services),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# =============================================================================
# Ticket
# =============================================================================

@dataclass(frozen=True)
class SubjectInfo:
    """The person (or group representative) the ticket is about."""
    name: str
    group_label: str
    contact: str = ""
    age: Optional[int] = None
    gender: Optional[str] = None
    family_size: Optional[int] = None


@dataclass(frozen=True)
class EmergencyDescriptor:
    type: EmergencyType
    severity: Severity
    description: str = ""
    affected_people: int = 1
    symptoms: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.affected_people < 1:
            raise ValidationError(
                "Affected-person count must be at least 1",
                details={"affected_people": self.affected_people},
            )


@dataclass(frozen=True)
class PopulationProfile:
    """Population attributes consulted by the recommendation generator."""
    group_label: str = ""
    trauma_suspected: bool = False


@dataclass(frozen=True)
class Recommendation:
    """Resource and priority bundle attached to a ticket."""
    supplies: Tuple[str, ...]
    priority: int
    estimated_response: str
    considerations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supplies": list(self.supplies),
            "priority": self.priority,
            "estimated_response": self.estimated_response,
            "considerations": list(self.considerations),
        }


@dataclass(frozen=True)
class Ticket:
    """
    A single emergency-assistance request.

    Invariant: assigned_facility_id, if set, is a member of
    nearest_facility_ids unless assignment_override is True.
    """
    id: str
    subject: SubjectInfo
    coordinate: Coordinate
    emergency: EmergencyDescriptor
    nearest_facility_ids: Tuple[str, ...] = ()
    assigned_facility_id: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    recommendation: Optional[Recommendation] = None
    address: Optional[str] = None
    assignment_override: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (TicketStatus.OPEN, TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS)

    def involves(self, facility_id: str) -> bool:
        """True if the facility was notified about or assigned this ticket."""
        return facility_id in self.nearest_facility_ids or facility_id == self.assigned_facility_id


# =============================================================================
# Triage Conversation
# =============================================================================

@dataclass(frozen=True)
class Classification:
    """
    Output of a full classifier pass over free text.

    Attributes:
        tags: Canonical symptom tags detected
        tier: Final urgency tier after red-flag escalation
        rule_id: Id of the rule that matched, if any
        red_flags: Red-flag phrases found in the text
        trauma_suspected: Trauma screening result (advisory only)
        advice: Advice text for the tier / matched rule
        recommended_actions: Ordered next steps
        notes: Context-dependent notes (refugee / trauma context)
    """
    tags: FrozenSet[str] = frozenset()
    tier: UrgencyTier = UrgencyTier.LOW
    rule_id: Optional[str] = None
    red_flags: Tuple[str, ...] = ()
    trauma_suspected: bool = False
    advice: str = ""
    recommended_actions: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tags": sorted(self.tags),
            "tier": self.tier.value,
            "rule_id": self.rule_id,
            "red_flags": list(self.red_flags),
            "trauma_suspected": self.trauma_suspected,
            "advice": self.advice,
            "recommended_actions": list(self.recommended_actions),
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class FollowUpQuestion:
    id: str
    text: str
    kind: str = "yes_no"  # "yes_no" | "scale" | "text"
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel = RiskLevel.LOW
    factors: Tuple[str, ...] = ()
    confidence: float = 0.5


@dataclass
class TriageSession:
    """
    Accumulating conversational triage context.

    Replaced, never mutated in place, by the Session Accumulator under the
    session's lock. The advisory_* fields hold the last validated oracle
    advice and never influence tier or risk level.
    """
    id: str
    started_at: datetime = field(default_factory=utc_now)
    inputs: List[str] = field(default_factory=list)
    classification: Optional[Classification] = None
    risk: RiskAssessment = field(default_factory=RiskAssessment)
    pending_questions: List[FollowUpQuestion] = field(default_factory=list)
    answered_question_ids: Set[str] = field(default_factory=set)
    context: Dict[str, Any] = field(default_factory=dict)
    advisory_narrative: Optional[str] = None
    advisory_actions: Tuple[str, ...] = ()
    advisory_red_flags: Tuple[str, ...] = ()
    advisory_cultural_advice: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionUpdate:
    """Result of feeding one input or answer into a session."""
    classification: Classification
    risk: RiskAssessment
    follow_up_questions: Tuple[FollowUpQuestion, ...] = ()


@dataclass(frozen=True)
class SummaryReport:
    """Read-only projection of a session for hand-off to staff."""
    session_id: str
    symptoms: Tuple[str, ...]
    urgency: UrgencyTier
    risk: RiskAssessment
    advice: str
    recommended_actions: Tuple[str, ...]
    notes: Tuple[str, ...]
    input_count: int
    recommendation: Optional[Recommendation] = None
    advisory_narrative: Optional[str] = None
    advisory_actions: Tuple[str, ...] = ()
    advisory_red_flags: Tuple[str, ...] = ()
    advisory_cultural_advice: Tuple[str, ...] = ()
    generated_at: datetime = field(default_factory=utc_now)
