"""Structured audit logging of caregiver-facing events.

Every alert dispatch and every caregiver action that changes protection
state (resets, history clears, quota edits) is written as one JSON line so
the activity can be reviewed later.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from caregate.monitoring import record_audit_event


class CaregiverAuditLogger:
    """Structured caregiver event logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        """Initialize audit logger.

        Args:
            logger: Logger instance (defaults to 'caregate.audit' logger)
        """
        self.logger = logger or logging.getLogger("caregate.audit")

    def _log_event(self, event_type: str, message: str, **context: Any) -> None:
        event = {
            "timestamp": datetime.now(UTC).isoformat(),
            "event_type": event_type,
            "message": message,
            **context,
        }
        self.logger.info(json.dumps(event, default=str))
        record_audit_event(event_type)

    def log_alert_sent(self, level: str, today_blocked: int, delivered: bool) -> None:
        """Log a caregiver alert dispatch.

        Args:
            level: Alert level (primary, escalation, test)
            today_blocked: Blocked attempts in the rolling 24 hours
            delivered: Whether the gateway accepted the message
        """
        self._log_event(
            event_type="alert_sent",
            message=f"{level} alert dispatched for {today_blocked} blocked attempts",
            level=level,
            today_blocked=today_blocked,
            delivered=delivered,
        )

    def log_alert_reset(self, scope: str, previous_status: str, new_status: str) -> None:
        """Log a caregiver reset of the alert breaker."""
        self._log_event(
            event_type="alert_reset",
            message=f"Alert breaker reset ({scope}): {previous_status} -> {new_status}",
            scope=scope,
            previous_status=previous_status,
            new_status=new_status,
        )

    def log_blocked_cleared(self, scope: str, removed: int) -> None:
        """Log a caregiver clearing blocked-attempt history."""
        self._log_event(
            event_type="blocked_cleared",
            message=f"Cleared {removed} blocked {scope}",
            scope=scope,
            removed=removed,
        )

    def log_quota_updated(self, contact_id: str, quota: dict[str, Any] | None) -> None:
        """Log a quota edit for a contact."""
        self._log_event(
            event_type="quota_updated",
            message=f"Quota updated for contact {contact_id}",
            contact_id=contact_id,
            quota=quota,
        )

    def log_settings_updated(self, changed: list[str]) -> None:
        """Log an alert configuration edit (field names only, never values)."""
        self._log_event(
            event_type="settings_updated",
            message=f"Alert settings updated: {', '.join(changed) or 'nothing'}",
            changed=changed,
        )


_audit_logger: CaregiverAuditLogger | None = None


def get_audit_logger() -> CaregiverAuditLogger:
    """Get the shared audit logger."""
    global _audit_logger

    if _audit_logger is None:
        _audit_logger = CaregiverAuditLogger()

    return _audit_logger
