"""
RefugeCare Triage - Structured Logging Tests

These tests verify:
- Subject names and contact details are masked in log payloads
- Context variables are injected and restored
- Facility alerts are emitted as structured events

Run with: pytest tests/test_logging.py -v
"""

import json
import logging

import pytest

from refugecare.core.logging import (
    LogContext,
    PrivacyFilter,
    StructuredFormatter,
    get_logger,
    mask_identifier,
    mask_sensitive_data,
    session_id_var,
    ticket_id_var,
)
from refugecare.core.types import Coordinate, Ticket
from refugecare.services.notifier import LoggingNotifier

from conftest import make_emergency, make_facility


class TestMasking:

    def test_sensitive_keys_masked(self):
        """Names, contacts and keys should never appear in clear text."""
        masked = mask_sensitive_data({
            "name": "Amina Yusuf",
            "contact": "+90 555 010 2030",
            "oracle_api_key": "sk-abcdef",
            "severity": "critical",
        })
        assert masked["name"] == "***uf"
        assert masked["contact"] == "***30"
        assert masked["oracle_api_key"] == "***ef"
        assert masked["severity"] == "critical"

    def test_nested_and_non_string(self):
        """Nested dicts should be masked; non-string secrets redacted."""
        masked = mask_sensitive_data({"subject": {"phone": 5550102030, "age": 34}})
        assert masked["subject"] == {"phone": "[REDACTED]", "age": 34}

    def test_privacy_filter_coarsens_location(self):
        """With anonymization on, payload coordinates are rounded to ~1 km."""
        record = logging.makeLogRecord({
            "msg": "alert",
            "data": {"location": {"lat": 12.95123, "lng": 77.60987}, "contact": "+90 555"},
        })
        assert PrivacyFilter(anonymize=True).filter(record) is True
        assert record.data["location"] == {"lat": 12.95, "lng": 77.61}
        assert record.data["contact"] == "***55"

    def test_privacy_filter_keeps_location_when_off(self):
        """Without anonymization, coordinates pass through unchanged."""
        record = logging.makeLogRecord({"msg": "alert", "data": {"location": {"lat": 12.95123, "lng": 1.0}}})
        PrivacyFilter(anonymize=False).filter(record)
        assert record.data["location"]["lat"] == 12.95123

    def test_mask_identifier(self):
        """Long identifiers should be truncated."""
        assert mask_identifier("session_0123456789ab") == "session_0123"
        assert mask_identifier("") is None


class TestLogContext:

    def test_sets_and_restores(self):
        """Context variables should be reset on exit."""
        assert ticket_id_var.get() is None
        with LogContext(ticket_id="tkt_1", session_id="session_1"):
            assert ticket_id_var.get() == "tkt_1"
            assert session_id_var.get() == "session_1"
        assert ticket_id_var.get() is None
        assert session_id_var.get() is None

    def test_json_output(self):
        """JSON records should carry context, event type and masked data."""
        record = logging.makeLogRecord({
            "name": "refugecare.test",
            "levelno": logging.INFO,
            "levelname": "INFO",
            "msg": "Emergency alert sent",
            "data": {"name": "Amina Yusuf", "facility_id": "hosp_001"},
            "event_type": "facility_alert",
        })
        with LogContext(ticket_id="tkt_abc"):
            entry = json.loads(StructuredFormatter().format(record))

        assert entry["ticket_id"] == "tkt_abc"
        assert entry["event_type"] == "facility_alert"
        assert entry["data"] == {"name": "***uf", "facility_id": "hosp_001"}

    def test_unknown_context_field(self):
        """Only known context ids may be bound."""
        with pytest.raises(TypeError):
            LogContext(user_id="u1")

    def test_adapter_moves_kwargs_to_record(self, caplog):
        """data= and event_type= should land on the log record."""
        with caplog.at_level(logging.WARNING, logger="refugecare.test.adapter"):
            get_logger("refugecare.test.adapter").warning(
                "Oracle timed out", data={"timeout_s": 5.0}, event_type="oracle_degraded"
            )
        record = caplog.records[-1]
        assert record.event_type == "oracle_degraded"
        assert record.data == {"timeout_s": 5.0}


class TestLoggingNotifier:

    @pytest.fixture
    def ticket(self, subject):
        return Ticket(
            id="tkt_test",
            subject=subject,
            coordinate=Coordinate(0.0, 0.4),
            emergency=make_emergency(),
            nearest_facility_ids=("clinic_a",),
            assigned_facility_id="clinic_a",
        )

    @pytest.mark.asyncio
    async def test_alert_event(self, caplog, ticket):
        """One facility_alert event should be logged without the location."""
        with caplog.at_level(logging.INFO, logger="refugecare.services.notifier"):
            await LoggingNotifier(anonymize=True).notify(make_facility("clinic_a", 0, 0), ticket)

        records = [r for r in caplog.records if getattr(r, "event_type", None) == "facility_alert"]
        assert len(records) == 1
        assert records[0].data["assigned"] is True
        assert "location" not in records[0].data
        assert "Amina" not in caplog.text

    @pytest.mark.asyncio
    async def test_location_when_not_anonymized(self, caplog, ticket):
        """Location should be included only when anonymization is off."""
        with caplog.at_level(logging.INFO, logger="refugecare.services.notifier"):
            await LoggingNotifier(anonymize=False).notify(make_facility("clinic_a", 0, 0), ticket)

        record = next(r for r in caplog.records if getattr(r, "event_type", None) == "facility_alert")
        assert record.data["location"] == {"lat": 0.0, "lng": 0.4}
