"""
RefugeCare Triage - Services Package

Contains service interfaces and implementations for:
- Advisory oracle (optional narrative triage guidance)
- Facility notification

Design Pattern:
    Each service defines a Protocol (interface) and one or more implementations.
    The engine is configured with concrete implementations at startup,
    enabling dependency injection and easy testing/swapping of components.
"""

from .oracle import (
    AdvisoryContext,
    AdvisoryOracle,
    AdvisoryResponse,
    HttpAdvisoryOracle,
    NoOpAdvisoryOracle,
    create_oracle,
    validate_advisory,
)
from .notifier import (
    FacilityNotifier,
    LoggingNotifier,
)

__all__ = [
    # Oracle
    "AdvisoryContext",
    "AdvisoryOracle",
    "AdvisoryResponse",
    "HttpAdvisoryOracle",
    "NoOpAdvisoryOracle",
    "create_oracle",
    "validate_advisory",
    # Notification
    "FacilityNotifier",
    "LoggingNotifier",
]
