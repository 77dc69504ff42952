"""
RefugeCare Triage - Core Package

Contains the triage engine and domain types:
- geo: Great-circle distance, bearing and nearest-k lookups
- classifier: Symptom tags, rule table, red flags, trauma screening
- recommendations: Supply / priority / consideration bundles
- facility_directory: Facility registry and utilization
- ticket_manager: Ticket intake, assignment and lifecycle
- session_accumulator: Conversational triage sessions
- engine: Factory wiring the above together (import from refugecare.core.engine)
"""

from .types import (
    Coordinate,
    EmergencyDescriptor,
    EmergencyType,
    Facility,
    FacilityKind,
    FacilityStatus,
    Severity,
    SubjectInfo,
    Ticket,
    TicketStatus,
    TriageSession,
    UrgencyTier,
)

__all__ = [
    "Coordinate",
    "EmergencyDescriptor",
    "EmergencyType",
    "Facility",
    "FacilityKind",
    "FacilityStatus",
    "Severity",
    "SubjectInfo",
    "Ticket",
    "TicketStatus",
    "TriageSession",
    "UrgencyTier",
]
