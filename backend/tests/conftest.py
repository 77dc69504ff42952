"""
RefugeCare Triage - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import asyncio
import os
import sys
from typing import Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from refugecare.config import Settings
from refugecare.core.facility_directory import FacilityDirectory
from refugecare.core.session_accumulator import SessionAccumulator
from refugecare.core.ticket_manager import TicketLifecycleManager
from refugecare.core.types import (
    Coordinate,
    EmergencyDescriptor,
    EmergencyType,
    Facility,
    FacilityKind,
    FacilityStatus,
    Severity,
    SubjectInfo,
    Ticket,
)
from refugecare.services.oracle import AdvisoryContext, AdvisoryResponse


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings with safe defaults.

    Deterministic triage only (no oracle), no demo data.
    """
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        oracle_backend="none",
        seed_demo_facilities=False,
        enforce_status_transitions=False,
        anonymize_logs=True,
    )


# =============================================================================
# Test Doubles
# =============================================================================

class RecordingNotifier:
    """Collects (facility_id, ticket_id) pairs instead of alerting anyone."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def notify(self, facility: Facility, ticket: Ticket) -> None:
        self.sent.append((facility.id, ticket.id))


class FailingNotifier:
    async def notify(self, facility: Facility, ticket: Ticket) -> None:
        raise ConnectionError("SMS gateway unreachable")


class StaticOracle:
    """Returns a fixed payload (AdvisoryResponse or raw dict) and counts calls."""

    def __init__(self, response):
        self._response = response
        self.calls: List[AdvisoryContext] = []

    @property
    def oracle_id(self) -> str:
        return "static"

    async def assess(self, context: AdvisoryContext):
        self.calls.append(context)
        return self._response

    async def close(self) -> None:
        return None


class SlowOracle:
    """Never answers within any reasonable timeout."""

    @property
    def oracle_id(self) -> str:
        return "slow"

    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        await asyncio.sleep(10)
        return AdvisoryResponse(narrative="too late", confidence=0.99)

    async def close(self) -> None:
        return None


class GatedOracle:
    """Holds every call until release() so tests can look at a session mid-input."""

    def __init__(self, response: AdvisoryResponse):
        self._response = response
        self.entered = asyncio.Event()
        self._gate = asyncio.Event()

    @property
    def oracle_id(self) -> str:
        return "gated"

    def release(self) -> None:
        self._gate.set()

    def hold(self) -> None:
        self.entered.clear()
        self._gate.clear()

    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        self.entered.set()
        await self._gate.wait()
        return self._response

    async def close(self) -> None:
        return None


class BrokenOracle:
    @property
    def oracle_id(self) -> str:
        return "broken"

    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        raise RuntimeError("model server crashed")

    async def close(self) -> None:
        return None


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Domain Fixtures
# =============================================================================

def make_facility(
    facility_id: str,
    lat: float,
    lng: float,
    kind: FacilityKind = FacilityKind.CLINIC,
    status: FacilityStatus = FacilityStatus.ACTIVE,
    total_beds: int = 40,
    emergency_beds: int = 10,
) -> Facility:
    return Facility(
        id=facility_id,
        name=f"Facility {facility_id}",
        kind=kind,
        coordinate=Coordinate(lat, lng),
        total_beds=total_beds,
        emergency_beds=emergency_beds,
        staff_count=12,
        specialties=frozenset({"primary_care"}),
        services=frozenset({"emergency_care"}),
        status=status,
    )


@pytest.fixture
def sample_facilities() -> List[Facility]:
    """
    Facilities along the equator.

    From a ticket at (0, 0.4): clinic_a ~44.5 km, hosp_b ~66.7 km,
    mobile_c ~177.9 km. hosp_closed is the closest but inactive.
    """
    return [
        make_facility("clinic_a", 0.0, 0.0, FacilityKind.CLINIC),
        make_facility("hosp_b", 0.0, 1.0, FacilityKind.HOSPITAL, total_beds=300, emergency_beds=40),
        make_facility("mobile_c", 0.0, 2.0, FacilityKind.MOBILE_UNIT, total_beds=4, emergency_beds=0),
        make_facility("hosp_closed", 0.0, 0.3, FacilityKind.HOSPITAL, status=FacilityStatus.MAINTENANCE),
    ]


@pytest.fixture
def directory(sample_facilities: List[Facility]) -> FacilityDirectory:
    """Create a directory pre-loaded with the sample facilities."""
    return FacilityDirectory(initial=sample_facilities)


@pytest.fixture
def manager(directory: FacilityDirectory, recording_notifier: RecordingNotifier) -> TicketLifecycleManager:
    return TicketLifecycleManager(directory, notifier=recording_notifier)


@pytest.fixture
def strict_manager(directory: FacilityDirectory, recording_notifier: RecordingNotifier) -> TicketLifecycleManager:
    """Manager that rejects off-path status transitions."""
    return TicketLifecycleManager(directory, notifier=recording_notifier, enforce_transitions=True)


@pytest.fixture
def accumulator() -> SessionAccumulator:
    return SessionAccumulator()


@pytest.fixture
def subject() -> SubjectInfo:
    return SubjectInfo(
        name="Amina Yusuf",
        group_label="Syrian",
        contact="+90 555 010 2030",
        age=34,
        family_size=5,
    )


@pytest.fixture
def ticket_location() -> Coordinate:
    return Coordinate(0.0, 0.4)


def make_emergency(
    severity: Severity = Severity.MEDIUM,
    emergency_type: EmergencyType = EmergencyType.MEDICAL,
    affected_people: int = 1,
    description: str = "High fever and cough for two days",
) -> EmergencyDescriptor:
    return EmergencyDescriptor(
        type=emergency_type,
        severity=severity,
        description=description,
        affected_people=affected_people,
    )


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app():
    """Create a FastAPI app instance seeded with the demo facilities."""
    # Import here to avoid circular imports
    from main import create_app

    return create_app(Settings(
        app_env="testing",
        app_log_level="WARNING",
        oracle_backend="none",
        seed_demo_facilities=True,
    ))


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
