"""
RefugeCare Triage - Structured Logging

Log records carry the request correlation id plus the ticket and triage
session they belong to, and an optional structured payload (`data`) with an
`event_type` tag for machine consumers (facility alerts, oracle
degradation).

Privacy:
    Subject PII never reaches a handler in clear text. PrivacyFilter masks
    names, contact strings and credentials in every payload, and with
    anonymization on it also coarsens coordinates to ~1 km.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# Context Variables
# =============================================================================

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
ticket_id_var: ContextVar[Optional[str]] = ContextVar("ticket_id", default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# Context field -> (variable, characters kept in output)
_CONTEXT_FIELDS = {
    "correlation_id": (correlation_id_var, 36),
    "ticket_id": (ticket_id_var, 16),
    "session_id": (session_id_var, 20),
}


class LogContext:
    """
    Bind correlation / ticket / session ids for the duration of a block.

    Usage:
        with LogContext(ticket_id=ticket.id):
            logger.info("Ticket assigned to %s", facility_id)
    """

    def __init__(self, **ids: Optional[str]):
        unknown = set(ids) - set(_CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        self._ids = {name: value for name, value in ids.items() if value}
        self._tokens = []

    def __enter__(self) -> "LogContext":
        for name, value in self._ids.items():
            var = _CONTEXT_FIELDS[name][0]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


def current_context() -> Dict[str, str]:
    """Ids bound in the current context, truncated for output."""
    bound = {}
    for name, (var, keep) in _CONTEXT_FIELDS.items():
        value = var.get()
        if value:
            bound[name] = mask_identifier(value, keep)
    return bound


# =============================================================================
# Masking
# =============================================================================

PII_KEYS = frozenset({"name", "subject_name", "contact", "phone", "email", "address"})
CREDENTIAL_MARKERS = ("key", "secret", "token", "password", "authorization")
LOCATION_KEYS = frozenset({"location", "coordinate"})
COORDINATE_DECIMALS = 2


def mask_identifier(value: Optional[str], keep: int = 12) -> Optional[str]:
    """Truncate an identifier for log output."""
    if not value:
        return None
    return value[:keep]


def mask_text(value: Optional[str]) -> str:
    """Keep only the last two characters of a sensitive string."""
    if not value or len(value) <= 2:
        return "***"
    return "***" + value[-2:]


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return (
        lowered in PII_KEYS
        or "contact" in lowered
        or "phone" in lowered
        or any(marker in lowered for marker in CREDENTIAL_MARKERS)
    )


def _coarsen(value: Any) -> Any:
    if isinstance(value, dict) and {"lat", "lng"} <= value.keys():
        return {
            **value,
            "lat": round(float(value["lat"]), COORDINATE_DECIMALS),
            "lng": round(float(value["lng"]), COORDINATE_DECIMALS),
        }
    return value


def mask_sensitive_data(data: Dict[str, Any], coarsen_locations: bool = False) -> Dict[str, Any]:
    """
    Return a copy of data with PII and credentials masked, recursing into
    nested mappings. Strings keep their last two characters; anything else
    becomes "[REDACTED]".
    """
    masked: Dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive(key):
            masked[key] = mask_text(value) if isinstance(value, str) else "[REDACTED]"
        elif coarsen_locations and key.lower() in LOCATION_KEYS:
            masked[key] = _coarsen(value)
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value, coarsen_locations)
        else:
            masked[key] = value
    return masked


class PrivacyFilter(logging.Filter):
    """Masks the structured payload of every record passing the handler."""

    def __init__(self, anonymize: bool = True):
        super().__init__()
        self.anonymize = anonymize

    def filter(self, record: logging.LogRecord) -> bool:
        data = getattr(record, "data", None)
        if isinstance(data, dict) and data:
            record.data = mask_sensitive_data(data, coarsen_locations=self.anonymize)
        return True


# =============================================================================
# Formatters
# =============================================================================

def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        **current_context(),
        "message": record.getMessage(),
    }
    event_type = getattr(record, "event_type", None)
    if event_type:
        fields["event_type"] = event_type
    data = getattr(record, "data", None)
    if data:
        fields["data"] = mask_sensitive_data(data)
    return fields


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line, e.g.

        {"timestamp": "...", "level": "WARNING",
         "logger": "refugecare.core.session_accumulator",
         "session_id": "session_3f9a0c1d2e4b", "message": "...",
         "event_type": "oracle_degraded", "data": {"oracle": "http:gpt-4o-mini"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        return json.dumps(fields, default=str)


class HumanReadableFormatter(logging.Formatter):
    """`time | LEVEL | logger [ids] | message | {data}` for local development."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        ids = {k: v for k, v in fields.items() if k in _CONTEXT_FIELDS}
        scope = fields["logger"]
        if ids:
            scope += " [" + ", ".join(f"{k}={v}" for k, v in ids.items()) + "]"

        line = f"{fields['timestamp'][:19]} | {fields['level']:<8} | {scope} | {fields['message']}"
        if "event_type" in fields:
            line += f" ({fields['event_type']})"
        if "data" in fields:
            line += " | " + json.dumps(fields["data"], default=str)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
    anonymize: bool = True,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines instead of the human-readable format
        anonymize: Coarsen coordinates in structured payloads
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(PrivacyFilter(anonymize=anonymize))
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter accepting `data=` and `event_type=` keyword arguments.

    Usage:
        events = get_logger(__name__)
        events.warning("Advisory oracle timed out", data={"timeout_s": 5.0},
                       event_type="oracle_degraded")
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        data = kwargs.pop("data", None)
        event_type = kwargs.pop("event_type", None)
        if data:
            extra["data"] = data
        if event_type:
            extra["event_type"] = event_type
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name))
