"""
RefugeCare Triage - Engine Wiring

Bundles the facility directory, ticket manager and session accumulator
into one instance. Each call to create_engine() builds fresh, isolated
state, so tests and multiple app instances never share records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from refugecare.config import Settings
from refugecare.core.facility_directory import DEMO_FACILITIES, FacilityDirectory
from refugecare.core.session_accumulator import SessionAccumulator
from refugecare.core.ticket_manager import TicketLifecycleManager
from refugecare.services.notifier import FacilityNotifier, LoggingNotifier
from refugecare.services.oracle import AdvisoryOracle, create_oracle

logger = logging.getLogger(__name__)


@dataclass
class TriageEngine:
    directory: FacilityDirectory
    tickets: TicketLifecycleManager
    sessions: SessionAccumulator

    async def shutdown(self) -> None:
        """Flush pending alerts and release the oracle's resources."""
        await self.tickets.wait_for_notifications()
        await self.sessions.oracle.close()
        logger.info("Triage engine shut down")


def create_engine(
    settings: Settings,
    oracle: Optional[AdvisoryOracle] = None,
    notifier: Optional[FacilityNotifier] = None,
) -> TriageEngine:
    """
    Factory function to create a configured TriageEngine.

    Args:
        settings: Application settings
        oracle: Override the oracle selected by settings.oracle_backend
        notifier: Override the default logging notifier

    Returns:
        TriageEngine with its own directory, ticket store and session store
    """
    initial = DEMO_FACILITIES if settings.seed_demo_facilities else ()
    directory = FacilityDirectory(initial=initial)

    tickets = TicketLifecycleManager(
        directory,
        notifier=notifier or LoggingNotifier(anonymize=settings.anonymize_logs),
        nearest_limit=settings.nearest_facility_limit,
        enforce_transitions=settings.enforce_status_transitions,
    )
    sessions = SessionAccumulator(
        oracle=oracle or create_oracle(settings),
        oracle_timeout_seconds=settings.oracle_timeout_seconds,
    )

    logger.info(
        "Triage engine created: demo_facilities=%s, oracle=%s",
        settings.seed_demo_facilities, sessions.oracle.oracle_id,
    )
    return TriageEngine(directory=directory, tickets=tickets, sessions=sessions)
