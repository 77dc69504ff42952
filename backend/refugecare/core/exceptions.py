"""
RefugeCare Triage - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.
"""

from typing import Optional


class RefugeCareError(Exception):
    """Base exception for all RefugeCare errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(RefugeCareError):
    """Input validation error."""
    code = "VALIDATION_ERROR"
    status_code = 400


class CapacityInvariantError(ValidationError):
    """Emergency-bed capacity exceeds total beds."""
    code = "CAPACITY_INVARIANT_VIOLATED"


class DuplicateFacilityError(ValidationError):
    """A facility with this id is already registered."""
    code = "FACILITY_EXISTS"
    status_code = 409


class InvalidStatusTransitionError(ValidationError):
    """Ticket status change is not on the expected lifecycle path."""
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


# =============================================================================
# Not Found Errors
# =============================================================================

class NotFoundError(RefugeCareError):
    """Referenced entity does not exist."""
    code = "NOT_FOUND"
    status_code = 404


class TicketNotFoundError(NotFoundError):
    """Ticket not found."""
    code = "TICKET_NOT_FOUND"


class FacilityNotFoundError(NotFoundError):
    """Facility not found."""
    code = "FACILITY_NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    """Triage session not found."""
    code = "SESSION_NOT_FOUND"


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(RefugeCareError):
    """Error related to triage session handling."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionIncompleteError(SessionError):
    """Session has no classified input yet."""
    code = "SESSION_INCOMPLETE"
    status_code = 409


# =============================================================================
# Advisory Oracle Errors
# =============================================================================

class OracleError(RefugeCareError):
    """Advisory oracle call failed."""
    code = "ORACLE_ERROR"
    status_code = 502


class OracleTimeoutError(OracleError):
    """Advisory oracle did not answer in time."""
    code = "ORACLE_TIMEOUT"
    status_code = 504


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(RefugeCareError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
