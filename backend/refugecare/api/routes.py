"""
RefugeCare Triage - REST API Routes

Endpoints for facility administration, emergency ticket intake and
hospital-staff ticket actions.

Architecture:
    All operations flow through the TriageEngine, accessed via dependency
    injection from app.state. Domain errors propagate as RefugeCareError
    and are rendered by the application's exception handler.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from refugecare.config import Settings
from refugecare.core import geo
from refugecare.core.engine import TriageEngine
from refugecare.core.exceptions import FacilityNotFoundError, TicketNotFoundError
from refugecare.core.facility_directory import new_facility_id
from refugecare.core.ticket_manager import FacilityMatch, FacilityStats
from refugecare.core.types import (
    Coordinate,
    EmergencyDescriptor,
    Facility,
    SubjectInfo,
    Ticket,
    TicketStatus,
)

from .schemas import (
    CoordinateSchema,
    EmergencySchema,
    FacilityCreateRequest,
    FacilityResponse,
    FacilityStatsResponse,
    FacilityUpdateRequest,
    HealthResponse,
    NearbyFacilityResponse,
    ReassignRequest,
    RecommendationSchema,
    StatusUpdateRequest,
    SubjectSchema,
    TicketCreateRequest,
    TicketResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_engine(request: Request) -> TriageEngine:
    """Dependency to get the triage engine from app state."""
    return request.app.state.engine


def get_settings(request: Request) -> Settings:
    """Dependency to get settings from app state."""
    return request.app.state.settings


# =============================================================================
# Converters (Domain <-> API Schema)
# =============================================================================

def facility_to_schema(facility: Facility) -> FacilityResponse:
    return FacilityResponse(
        id=facility.id,
        name=facility.name,
        kind=facility.kind,
        coordinate=CoordinateSchema(**facility.coordinate.to_dict()),
        total_beds=facility.total_beds,
        emergency_beds=facility.emergency_beds,
        staff_count=facility.staff_count,
        specialties=sorted(facility.specialties),
        services=sorted(facility.services),
        status=facility.status,
        created_at=facility.created_at,
        updated_at=facility.updated_at,
    )


def schema_to_facility(facility_id: str, body: FacilityUpdateRequest) -> Facility:
    return Facility(
        id=facility_id,
        name=body.name.strip(),
        kind=body.kind,
        coordinate=Coordinate(body.coordinate.lat, body.coordinate.lng),
        total_beds=body.total_beds,
        emergency_beds=body.emergency_beds,
        staff_count=body.staff_count,
        specialties=frozenset(body.specialties),
        services=frozenset(body.services),
        status=body.status,
    )


def match_to_schema(match: FacilityMatch) -> NearbyFacilityResponse:
    return NearbyFacilityResponse(
        facility=facility_to_schema(match.facility),
        distance_km=round(match.distance_km, 3),
        distance_label=geo.format_distance(match.distance_km),
        bearing=match.bearing,
        direction=geo.compass_direction(match.bearing),
    )


def stats_to_schema(stats: FacilityStats) -> FacilityStatsResponse:
    return FacilityStatsResponse(
        facility_id=stats.facility_id,
        total_tickets=stats.total_tickets,
        active_tickets=stats.active_tickets,
        resolved_tickets=stats.resolved_tickets,
        type_distribution=stats.type_distribution,
        utilization=stats.utilization,
    )


def ticket_to_schema(ticket: Ticket) -> TicketResponse:
    """
    Convert domain Ticket to API TicketResponse schema.

    This conversion layer isolates the API schema from internal domain types,
    allowing them to evolve independently.
    """
    subject = ticket.subject
    emergency = ticket.emergency
    recommendation = ticket.recommendation
    return TicketResponse(
        id=ticket.id,
        subject=SubjectSchema(
            name=subject.name,
            group_label=subject.group_label,
            contact=subject.contact,
            age=subject.age,
            gender=subject.gender,
            family_size=subject.family_size,
        ),
        location=CoordinateSchema(**ticket.coordinate.to_dict()),
        address=ticket.address,
        emergency=EmergencySchema(
            type=emergency.type,
            severity=emergency.severity,
            description=emergency.description,
            affected_people=emergency.affected_people,
            symptoms=list(emergency.symptoms),
        ),
        nearest_facility_ids=list(ticket.nearest_facility_ids),
        assigned_facility_id=ticket.assigned_facility_id,
        assignment_override=ticket.assignment_override,
        status=ticket.status,
        recommendation=RecommendationSchema(**recommendation.to_dict()) if recommendation else None,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        resolved_at=ticket.resolved_at,
    )


# =============================================================================
# Health & Status
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    engine: TriageEngine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
):
    """
    System health check.

    Returns status of the engine components and the configured oracle.
    """
    facilities = await engine.directory.list()
    components = {
        "api": "operational",
        "engine": "operational",
        "facilities": str(len(facilities)),
        "oracle": engine.sessions.oracle.oracle_id,
        "status_transitions": "enforced" if settings.enforce_status_transitions else "advisory",
    }
    return HealthResponse(status="healthy", components=components)


# =============================================================================
# Facilities
# =============================================================================

@router.post("/facilities", response_model=FacilityResponse, status_code=status.HTTP_201_CREATED)
async def create_facility(
    body: FacilityCreateRequest,
    engine: TriageEngine = Depends(get_engine),
):
    """Register a facility. Rejects emergency beds > total beds."""
    facility = schema_to_facility(body.id or new_facility_id(), body)
    created = await engine.directory.add(facility)
    return facility_to_schema(created)


@router.get("/facilities", response_model=List[FacilityResponse])
async def list_facilities(
    active_only: bool = Query(default=False),
    engine: TriageEngine = Depends(get_engine),
):
    facilities = await (engine.directory.list_active() if active_only else engine.directory.list())
    return [facility_to_schema(f) for f in facilities]


@router.get("/facilities/nearby", response_model=List[NearbyFacilityResponse])
async def nearby_facilities(
    lat: float = Query(...),
    lng: float = Query(...),
    radius_km: Optional[float] = Query(default=None, gt=0),
    engine: TriageEngine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
):
    """Active facilities within radius_km (default from settings), closest first."""
    radius = radius_km if radius_km is not None else settings.nearby_search_radius_km
    matches = await engine.tickets.nearby_facilities(Coordinate(lat, lng), radius)
    return [match_to_schema(m) for m in matches]


@router.get("/facilities/{facility_id}", response_model=FacilityResponse)
async def get_facility(
    facility_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    facility = await engine.directory.get(facility_id)
    if facility is None:
        raise FacilityNotFoundError(f"Facility {facility_id} not found", details={"id": facility_id})
    return facility_to_schema(facility)


@router.put("/facilities/{facility_id}", response_model=FacilityResponse)
async def update_facility(
    facility_id: str,
    body: FacilityUpdateRequest,
    engine: TriageEngine = Depends(get_engine),
):
    updated = await engine.directory.update(schema_to_facility(facility_id, body))
    return facility_to_schema(updated)


@router.delete("/facilities/{facility_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_facility(
    facility_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    if not await engine.directory.remove(facility_id):
        raise FacilityNotFoundError(f"Facility {facility_id} not found", details={"id": facility_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/facilities/{facility_id}/tickets", response_model=List[TicketResponse])
async def facility_tickets(
    facility_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    """Tickets the facility was notified about or is assigned to."""
    tickets = await engine.tickets.list_for_facility(facility_id)
    return [ticket_to_schema(t) for t in tickets]


@router.get("/facilities/{facility_id}/stats", response_model=FacilityStatsResponse)
async def facility_stats(
    facility_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    stats = await engine.tickets.facility_stats(facility_id)
    return stats_to_schema(stats)


# =============================================================================
# Tickets
# =============================================================================

@router.post("/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    body: TicketCreateRequest,
    engine: TriageEngine = Depends(get_engine),
):
    """
    Emergency intake.

    Always succeeds for valid input; a ticket with no facility in range
    comes back with status "open" and no assignment.
    """
    subject = SubjectInfo(
        name=body.subject.name,
        group_label=body.subject.group_label,
        contact=body.subject.contact,
        age=body.subject.age,
        gender=body.subject.gender,
        family_size=body.subject.family_size,
    )
    emergency = EmergencyDescriptor(
        type=body.emergency.type,
        severity=body.emergency.severity,
        description=body.emergency.description,
        affected_people=body.emergency.affected_people,
        symptoms=tuple(body.emergency.symptoms),
    )
    ticket = await engine.tickets.create_ticket(
        subject=subject,
        coordinate=Coordinate(body.location.lat, body.location.lng),
        emergency=emergency,
        address=body.address,
    )
    return ticket_to_schema(ticket)


@router.get("/tickets", response_model=List[TicketResponse])
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(default=None, alias="status"),
    engine: TriageEngine = Depends(get_engine),
):
    tickets = await engine.tickets.list_tickets(status_filter)
    return [ticket_to_schema(t) for t in tickets]


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: str,
    engine: TriageEngine = Depends(get_engine),
):
    ticket = await engine.tickets.get_ticket(ticket_id)
    if ticket is None:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found", details={"id": ticket_id})
    return ticket_to_schema(ticket)


@router.patch("/tickets/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status(
    ticket_id: str,
    body: StatusUpdateRequest,
    engine: TriageEngine = Depends(get_engine),
):
    ticket = await engine.tickets.update_status(ticket_id, body.status)
    if ticket is None:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found", details={"id": ticket_id})
    return ticket_to_schema(ticket)


@router.post("/tickets/{ticket_id}/reassign", response_model=TicketResponse)
async def reassign_ticket(
    ticket_id: str,
    body: ReassignRequest,
    engine: TriageEngine = Depends(get_engine),
):
    """Staff override of the assigned facility."""
    ticket = await engine.tickets.reassign(ticket_id, body.facility_id)
    if ticket is None:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found", details={"id": ticket_id})
    return ticket_to_schema(ticket)
