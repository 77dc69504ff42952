"""
RefugeCare Triage - Facility Notification Service

Alerts facilities about new tickets. Delivery is fire-and-forget from the
ticket manager's point of view: a failing notifier never fails intake.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from refugecare.core.logging import LogContext, get_logger
from refugecare.core.types import Facility, Ticket

logger = get_logger(__name__)


@runtime_checkable
class FacilityNotifier(Protocol):
    """Protocol for delivering a new-ticket alert to one facility."""

    @abstractmethod
    async def notify(self, facility: Facility, ticket: Ticket) -> None:
        ...


class LoggingNotifier:
    """
    Writes one structured log event per alert.

    Stands in for push/SMS/email delivery; swap in a real channel by
    implementing FacilityNotifier.
    """

    def __init__(self, anonymize: bool = True):
        self._anonymize = anonymize

    async def notify(self, facility: Facility, ticket: Ticket) -> None:
        data = {
            "facility_id": facility.id,
            "facility_name": facility.name,
            "emergency_type": ticket.emergency.type.value,
            "severity": ticket.emergency.severity.value,
            "affected_people": ticket.emergency.affected_people,
            "assigned": ticket.assigned_facility_id == facility.id,
        }
        if not self._anonymize:
            data["location"] = ticket.coordinate.to_dict()

        with LogContext(ticket_id=ticket.id):
            logger.info("Emergency alert sent", data=data, event_type="facility_alert")
