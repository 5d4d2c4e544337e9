"""Metrics for Caregate."""

from caregate.monitoring.metrics import (
    get_metrics_registry,
    record_alert,
    record_audit_event,
    record_blocked,
    record_decision,
    record_storage_error,
)

__all__ = [
    "get_metrics_registry",
    "record_alert",
    "record_audit_event",
    "record_blocked",
    "record_decision",
    "record_storage_error",
]
