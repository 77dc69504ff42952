"""
RefugeCare Triage - Facility Directory

Holds facility records and answers capacity queries.

Concurrency:
    Reads go straight to the repository and may run concurrently.
    add / update / remove are serialized through a single asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Iterable, List, Optional
from uuid import uuid4

from refugecare.core.exceptions import (
    CapacityInvariantError,
    DuplicateFacilityError,
    FacilityNotFoundError,
    ValidationError,
)
from refugecare.core.repository import InMemoryRepository, Repository
from refugecare.core.types import (
    Coordinate,
    Facility,
    FacilityKind,
    FacilityStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


def new_facility_id() -> str:
    return f"fac_{uuid4().hex[:10]}"


def validate_facility(facility: Facility) -> None:
    """Reject records that break the capacity invariant or lack a name."""
    if not facility.name or not facility.name.strip():
        raise ValidationError("Facility name must not be empty", details={"id": facility.id})
    if facility.total_beds < 0 or facility.emergency_beds < 0 or facility.staff_count < 0:
        raise ValidationError(
            "Capacity counts must not be negative",
            details={"id": facility.id},
        )
    if facility.emergency_beds > facility.total_beds:
        raise CapacityInvariantError(
            f"Emergency beds ({facility.emergency_beds}) exceed total beds ({facility.total_beds})",
            details={
                "id": facility.id,
                "emergency_beds": facility.emergency_beds,
                "total_beds": facility.total_beds,
            },
        )


class FacilityDirectory:
    """
    Administrative registry of care facilities.

    Usage:
        directory = FacilityDirectory(initial=DEMO_FACILITIES)
        facility = await directory.get("hosp_001")
        pct = await directory.utilization("hosp_001", active_ticket_count=12)
    """

    def __init__(
        self,
        repository: Optional[Repository[Facility]] = None,
        initial: Iterable[Facility] = (),
    ):
        self._repo: Repository[Facility] = repository or InMemoryRepository("facilities")
        self._write_lock = asyncio.Lock()
        self._pending_seed = list(initial)
        for facility in self._pending_seed:
            validate_facility(facility)

    async def _ensure_seeded(self) -> None:
        if not self._pending_seed:
            return
        seed, self._pending_seed = self._pending_seed, []
        for facility in seed:
            await self._repo.put(facility.id, facility)
        logger.info("Facility directory seeded with %d facilities", len(seed))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, facility_id: str) -> Optional[Facility]:
        await self._ensure_seeded()
        return await self._repo.get(facility_id)

    async def list(self) -> List[Facility]:
        await self._ensure_seeded()
        return await self._repo.list()

    async def list_active(self) -> List[Facility]:
        return [f for f in await self.list() if f.is_active]

    async def utilization(self, facility_id: str, active_ticket_count: int) -> Optional[float]:
        """
        Percentage of emergency beds taken by active tickets.

        Returns None when the facility has no emergency beds; utilization
        is undefined there and the caller decides how to present it.
        """
        facility = await self.get(facility_id)
        if facility is None:
            raise FacilityNotFoundError(f"Facility {facility_id} not found", details={"id": facility_id})
        if facility.emergency_beds == 0:
            return None
        return active_ticket_count / facility.emergency_beds * 100.0

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def add(self, facility: Facility) -> Facility:
        validate_facility(facility)
        async with self._write_lock:
            await self._ensure_seeded()
            if await self._repo.get(facility.id) is not None:
                raise DuplicateFacilityError(
                    f"Facility {facility.id} already exists",
                    details={"id": facility.id},
                )
            await self._repo.put(facility.id, facility)
        logger.info("Facility added: %s (%s)", facility.id, facility.kind.value)
        return facility

    async def update(self, facility: Facility) -> Facility:
        """Replace a facility record, keeping its creation timestamp."""
        validate_facility(facility)
        async with self._write_lock:
            existing = await self.get(facility.id)
            if existing is None:
                raise FacilityNotFoundError(f"Facility {facility.id} not found", details={"id": facility.id})
            updated = dataclasses.replace(facility, created_at=existing.created_at, updated_at=utc_now())
            await self._repo.put(facility.id, updated)
        logger.info("Facility updated: %s status=%s", facility.id, updated.status.value)
        return updated

    async def remove(self, facility_id: str) -> bool:
        async with self._write_lock:
            await self._ensure_seeded()
            removed = await self._repo.delete(facility_id)
        if removed:
            logger.info("Facility removed: %s", facility_id)
        return removed


# =============================================================================
# Demo Data
# =============================================================================

DEMO_FACILITIES = (
    Facility(
        id="hosp_001",
        name="Manipal Hospital Bangalore",
        kind=FacilityKind.HOSPITAL,
        coordinate=Coordinate(12.9716, 77.5946),
        total_beds=650,
        emergency_beds=80,
        staff_count=400,
        specialties=frozenset({"emergency_medicine", "cardiology", "neurology", "oncology"}),
        services=frozenset({"emergency_care", "surgery", "mental_health", "vaccination", "maternity"}),
        status=FacilityStatus.ACTIVE,
    ),
    Facility(
        id="hosp_002",
        name="Fortis Hospital Bannerghatta",
        kind=FacilityKind.HOSPITAL,
        coordinate=Coordinate(12.8698, 77.6107),
        total_beds=400,
        emergency_beds=50,
        staff_count=250,
        specialties=frozenset({"emergency_medicine", "orthopedics", "gastroenterology"}),
        services=frozenset({"emergency_care", "surgery", "diagnostics", "pharmacy"}),
        status=FacilityStatus.ACTIVE,
    ),
    Facility(
        id="clinic_001",
        name="Apollo Clinic Electronic City",
        kind=FacilityKind.CLINIC,
        coordinate=Coordinate(12.8456, 77.6603),
        total_beds=20,
        emergency_beds=5,
        staff_count=15,
        specialties=frozenset({"primary_care", "vaccination", "health_screening"}),
        services=frozenset({"primary_care", "vaccination", "health_screening", "telemedicine"}),
        status=FacilityStatus.ACTIVE,
    ),
)
