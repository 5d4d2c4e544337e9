"""Tests for audit logging and Prometheus metrics."""

from __future__ import annotations

import json
import logging

import pytest

from caregate.alerting import AlertCoordinator
from caregate.monitoring import get_metrics_registry, record_alert, record_decision
from caregate.observability import CaregiverAuditLogger, get_audit_logger


def sample(name: str, labels: dict[str, str]) -> float:
    return get_metrics_registry().get_sample_value(name, labels) or 0.0


class TestCaregiverAuditLogger:
    """Test suite for CaregiverAuditLogger."""

    def test_events_are_json_lines(self, caplog: pytest.LogCaptureFixture) -> None:
        audit = CaregiverAuditLogger()

        with caplog.at_level(logging.INFO, logger="caregate.audit"):
            audit.log_alert_sent("primary", 5, True)

        event = json.loads(caplog.records[-1].getMessage())
        assert event["event_type"] == "alert_sent"
        assert event["level"] == "primary"
        assert event["today_blocked"] == 5
        assert event["delivered"] is True
        assert "timestamp" in event

    def test_settings_log_field_names_only(self, caplog: pytest.LogCaptureFixture) -> None:
        audit = CaregiverAuditLogger()

        with caplog.at_level(logging.INFO, logger="caregate.audit"):
            audit.log_settings_updated(["phone_number"])

        message = caplog.records[-1].getMessage()
        assert "phone_number" in message
        assert "+1555" not in message

    def test_shared_instance(self) -> None:
        assert get_audit_logger() is get_audit_logger()

    def test_events_are_counted(self) -> None:
        before = sample("caregate_audit_events_total", {"event_type": "blocked_cleared"})

        CaregiverAuditLogger().log_blocked_cleared("messages", 3)

        after = sample("caregate_audit_events_total", {"event_type": "blocked_cleared"})
        assert after == before + 1

    @pytest.mark.asyncio
    async def test_coordinator_audits_resets(
        self, coordinator: AlertCoordinator, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="caregate.audit"):
            await coordinator.reset_alerts()

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "caregate.audit"]
        assert events[-1]["event_type"] == "alert_reset"
        assert events[-1]["scope"] == "all"


class TestMetrics:
    """Test suite for Prometheus counters."""

    def test_decisions(self) -> None:
        labels = {"kind": "call", "decision": "denied"}
        before = sample("caregate_communication_decisions_total", labels)

        record_decision("call", False)

        assert sample("caregate_communication_decisions_total", labels) == before + 1

    def test_alerts(self) -> None:
        labels = {"level": "escalation", "outcome": "failed"}
        before = sample("caregate_caregiver_alerts_total", labels)

        record_alert("escalation", "failed")

        assert sample("caregate_caregiver_alerts_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_skipped_alert_is_counted(self, coordinator: AlertCoordinator, block_texts) -> None:
        labels = {"level": "primary", "outcome": "skipped"}
        before = sample("caregate_caregiver_alerts_total", labels)
        await coordinator.update_settings(sms_enabled=False)
        await block_texts(5)

        await coordinator.check_and_send_alerts()

        assert sample("caregate_caregiver_alerts_total", labels) == before + 1
