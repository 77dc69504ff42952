"""
RefugeCare Triage - Ticket Lifecycle Manager

Creates emergency tickets, matches them to the nearest facilities,
auto-assigns one, and drives status changes afterwards.

Intake flow:
    1. NEAREST: k nearest active facilities to the reported coordinate
    2. RECOMMEND: supply / priority / response bundle
    3. ASSIGN: critical -> closest hospital among the nearest (else closest
       of any kind); other severities -> closest facility
    4. PERSIST: status "assigned" when a facility was picked, else "open"
    5. NOTIFY: one fire-and-forget alert per nearest facility

A ticket with no facilities in range stays "open" and unassigned. That is a
normal outcome awaiting manual routing, not an error.

Concurrency:
    Writes to one ticket are serialized by a per-ticket lock; tickets never
    share a lock. Tickets are immutable values, so readers always see a
    complete version.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set
from uuid import uuid4

from refugecare.core import geo
from refugecare.core.classifier import screen_trauma
from refugecare.core.exceptions import (
    ConfigurationError,
    FacilityNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from refugecare.core.facility_directory import FacilityDirectory
from refugecare.core.logging import LogContext
from refugecare.core.recommendations import recommend
from refugecare.core.repository import InMemoryRepository, KeyedLocks, Repository
from refugecare.core.types import (
    Coordinate,
    EmergencyDescriptor,
    Facility,
    FacilityKind,
    PopulationProfile,
    Severity,
    SubjectInfo,
    Ticket,
    TicketStatus,
    utc_now,
)
from refugecare.services.notifier import FacilityNotifier, LoggingNotifier

logger = logging.getLogger(__name__)

MAX_NEAREST_FACILITIES = 5


# Expected lifecycle. Any non-closed state may also be closed directly.
STATUS_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.ASSIGNED: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}

NEARBY_RESULT_LIMIT = 10


def is_expected_transition(current: TicketStatus, new: TicketStatus) -> bool:
    return new == current or new in STATUS_TRANSITIONS[current]


def new_ticket_id() -> str:
    return f"tkt_{uuid4().hex[:12]}"


@dataclass(frozen=True)
class FacilityMatch:
    facility: Facility
    distance_km: float
    bearing: float


@dataclass(frozen=True)
class FacilityStats:
    facility_id: str
    total_tickets: int
    active_tickets: int
    resolved_tickets: int
    type_distribution: Dict[str, int] = field(default_factory=dict)
    utilization: Optional[float] = None


class TicketLifecycleManager:
    """
    Owns ticket storage and the ticket lifecycle.

    Usage:
        manager = TicketLifecycleManager(directory)
        ticket = await manager.create_ticket(subject, coordinate, emergency)
        ticket = await manager.update_status(ticket.id, TicketStatus.IN_PROGRESS)
    """

    def __init__(
        self,
        directory: FacilityDirectory,
        notifier: Optional[FacilityNotifier] = None,
        repository: Optional[Repository[Ticket]] = None,
        nearest_limit: int = 5,
        enforce_transitions: bool = False,
    ):
        if not 1 <= nearest_limit <= MAX_NEAREST_FACILITIES:
            raise ConfigurationError(
                f"nearest_limit must be between 1 and {MAX_NEAREST_FACILITIES}",
                details={"nearest_limit": nearest_limit},
            )
        self._directory = directory
        self._notifier: FacilityNotifier = notifier or LoggingNotifier()
        self._repo: Repository[Ticket] = repository or InMemoryRepository("tickets")
        self._locks = KeyedLocks()
        self._nearest_limit = nearest_limit
        self._enforce_transitions = enforce_transitions
        self._pending_notifications: Set[asyncio.Task] = set()

        logger.info(
            "TicketLifecycleManager initialized: nearest_limit=%d, enforce_transitions=%s",
            nearest_limit, enforce_transitions,
        )

    @property
    def directory(self) -> FacilityDirectory:
        return self._directory

    # =========================================================================
    # Intake
    # =========================================================================

    async def create_ticket(
        self,
        subject: SubjectInfo,
        coordinate: Coordinate,
        emergency: EmergencyDescriptor,
        address: Optional[str] = None,
        population: Optional[PopulationProfile] = None,
    ) -> Ticket:
        """
        Create, match, assign and persist a new ticket.

        Raises:
            ValidationError: Subject name missing or affected-person count < 1
        """
        if not subject.name or not subject.name.strip():
            raise ValidationError("Subject name must not be empty")
        if emergency.affected_people < 1:
            raise ValidationError(
                "Affected-person count must be at least 1",
                details={"affected_people": emergency.affected_people},
            )

        ticket_id = new_ticket_id()
        with LogContext(ticket_id=ticket_id):
            active = await self._directory.list_active()
            by_id = {f.id: f for f in active}

            matches = geo.nearest(coordinate, [(f.id, f.coordinate) for f in active], self._nearest_limit)
            nearest_ids = tuple(m.id for m in matches)

            if population is None:
                population = PopulationProfile(
                    group_label=subject.group_label,
                    trauma_suspected=screen_trauma(emergency.description),
                )
            recommendation = recommend(emergency, population)

            assigned = self._choose_facility(emergency.severity, nearest_ids, by_id)
            now = utc_now()
            ticket = Ticket(
                id=ticket_id,
                subject=subject,
                coordinate=coordinate,
                emergency=emergency,
                nearest_facility_ids=nearest_ids,
                assigned_facility_id=assigned,
                status=TicketStatus.ASSIGNED if assigned else TicketStatus.OPEN,
                recommendation=recommendation,
                address=address,
                created_at=now,
                updated_at=now,
            )
            await self._repo.put(ticket.id, ticket)

            if emergency.severity == Severity.CRITICAL:
                logger.warning(
                    "Critical %s ticket created: affected=%d assigned=%s",
                    emergency.type.value, emergency.affected_people, assigned,
                )
            else:
                logger.info(
                    "Ticket created: type=%s severity=%s priority=%d assigned=%s",
                    emergency.type.value, emergency.severity.value, recommendation.priority, assigned,
                )
            if assigned is None:
                logger.warning("No active facility available, ticket left open for manual routing")

            self._schedule_notifications(ticket, [by_id[fid] for fid in nearest_ids])

        return ticket

    @staticmethod
    def _choose_facility(
        severity: Severity,
        nearest_ids: tuple,
        facilities: Dict[str, Facility],
    ) -> Optional[str]:
        if not nearest_ids:
            return None
        if severity == Severity.CRITICAL:
            for fid in nearest_ids:
                if facilities[fid].kind == FacilityKind.HOSPITAL:
                    return fid
        return nearest_ids[0]

    # =========================================================================
    # Notification (fire-and-forget)
    # =========================================================================

    def _schedule_notifications(self, ticket: Ticket, facilities: List[Facility]) -> None:
        for facility in facilities:
            task = asyncio.create_task(self._notify(facility, ticket))
            self._pending_notifications.add(task)
            task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, facility: Facility, ticket: Ticket) -> None:
        try:
            await self._notifier.notify(facility, ticket)
        except Exception as e:
            with LogContext(ticket_id=ticket.id):
                logger.warning("Notification to %s failed: %s", facility.id, e)

    async def wait_for_notifications(self) -> None:
        """Wait until every scheduled alert has been attempted."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

    # =========================================================================
    # Status / Assignment
    # =========================================================================

    async def update_status(self, ticket_id: str, new_status: TicketStatus) -> Optional[Ticket]:
        """
        Set a ticket's status. Returns None for an unknown ticket.

        Off-path transitions (e.g. resolved -> open) are applied with a
        warning unless the manager enforces transitions, in which case they
        raise InvalidStatusTransitionError.
        """
        async with self._locks.hold(ticket_id):
            ticket = await self._repo.get(ticket_id)
            if ticket is None:
                return None

            with LogContext(ticket_id=ticket_id):
                if not is_expected_transition(ticket.status, new_status):
                    if self._enforce_transitions:
                        raise InvalidStatusTransitionError(
                            f"Cannot move ticket from {ticket.status.value} to {new_status.value}",
                            details={"from": ticket.status.value, "to": new_status.value},
                        )
                    logger.warning(
                        "Off-path status change %s -> %s applied",
                        ticket.status.value, new_status.value,
                    )

                now = utc_now()
                resolved_at = ticket.resolved_at
                if new_status == TicketStatus.RESOLVED and resolved_at is None:
                    resolved_at = now

                updated = dataclasses.replace(
                    ticket, status=new_status, updated_at=now, resolved_at=resolved_at
                )
                await self._repo.put(ticket_id, updated)
                logger.info("Ticket status %s -> %s", ticket.status.value, new_status.value)

        return updated

    async def reassign(self, ticket_id: str, facility_id: str) -> Optional[Ticket]:
        """
        Staff override of the assigned facility. Always permitted.

        Returns None for an unknown ticket.

        Raises:
            FacilityNotFoundError: Target facility is not registered
        """
        facility = await self._directory.get(facility_id)
        if facility is None:
            raise FacilityNotFoundError(f"Facility {facility_id} not found", details={"id": facility_id})

        async with self._locks.hold(ticket_id):
            ticket = await self._repo.get(ticket_id)
            if ticket is None:
                return None

            override = facility_id not in ticket.nearest_facility_ids
            status = TicketStatus.ASSIGNED if ticket.status == TicketStatus.OPEN else ticket.status
            updated = dataclasses.replace(
                ticket,
                assigned_facility_id=facility_id,
                assignment_override=override,
                status=status,
                updated_at=utc_now(),
            )
            await self._repo.put(ticket_id, updated)

            with LogContext(ticket_id=ticket_id):
                logger.info(
                    "Ticket reassigned %s -> %s (override=%s)",
                    ticket.assigned_facility_id, facility_id, override,
                )

        return updated

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return await self._repo.get(ticket_id)

    async def list_tickets(self, status: Optional[TicketStatus] = None) -> List[Ticket]:
        tickets = await self._repo.list()
        if status is not None:
            tickets = [t for t in tickets if t.status == status]
        return tickets

    async def list_for_facility(self, facility_id: str) -> List[Ticket]:
        """Tickets the facility was notified about or is assigned to."""
        return [t for t in await self._repo.list() if t.involves(facility_id)]

    async def nearby_facilities(
        self,
        coordinate: Coordinate,
        max_distance_km: float = 50.0,
    ) -> List[FacilityMatch]:
        """Active facilities within max_distance_km, closest first."""
        active = await self._directory.list_active()
        by_id = {f.id: f for f in active}
        matches = geo.nearest(coordinate, [(f.id, f.coordinate) for f in active], NEARBY_RESULT_LIMIT)
        return [
            FacilityMatch(facility=by_id[m.id], distance_km=m.distance_km, bearing=m.bearing)
            for m in matches
            if geo.within_radius(coordinate, by_id[m.id].coordinate, max_distance_km)
        ]

    async def facility_stats(self, facility_id: str) -> FacilityStats:
        """
        Ticket counts for one facility.

        Utilization counts active tickets assigned to the facility against
        its emergency beds (None when it has none).

        Raises:
            FacilityNotFoundError: Unknown facility
        """
        tickets = await self.list_for_facility(facility_id)
        assigned_active = sum(
            1 for t in tickets if t.assigned_facility_id == facility_id and t.is_active
        )
        utilization = await self._directory.utilization(facility_id, assigned_active)

        return FacilityStats(
            facility_id=facility_id,
            total_tickets=len(tickets),
            active_tickets=sum(1 for t in tickets if t.is_active),
            resolved_tickets=sum(1 for t in tickets if t.status == TicketStatus.RESOLVED),
            type_distribution=dict(Counter(t.emergency.type.value for t in tickets)),
            utilization=utilization,
        )
