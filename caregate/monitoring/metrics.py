"""Prometheus metrics collection for Caregate.

Provides counters for governor decisions, blocked attempts, caregiver alert
deliveries and storage failures. All metrics live on a dedicated registry so
embedding applications can expose them next to their own.
"""

from __future__ import annotations

import logging
from threading import Lock

from prometheus_client import CollectorRegistry, Counter

logger = logging.getLogger(__name__)

_registry: CollectorRegistry | None = None
_registry_lock = Lock()


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the shared Caregate metrics registry."""
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = CollectorRegistry()
                logger.debug("Created Prometheus metrics registry")

    return _registry


# =============================================================================
# Rate Governor Metrics
# =============================================================================

communication_decisions_total = Counter(
    "caregate_communication_decisions_total",
    "Quota decisions made for communication attempts",
    ["kind", "decision"],
    registry=get_metrics_registry(),
)

blocked_attempts_total = Counter(
    "caregate_blocked_attempts_total",
    "Blocked communication attempts recorded",
    ["kind"],
    registry=get_metrics_registry(),
)

# =============================================================================
# Alerting Metrics
# =============================================================================

caregiver_alerts_total = Counter(
    "caregate_caregiver_alerts_total",
    "Caregiver alerts dispatched by level and delivery outcome",
    ["level", "outcome"],
    registry=get_metrics_registry(),
)

# =============================================================================
# Storage / Audit Metrics
# =============================================================================

storage_errors_total = Counter(
    "caregate_storage_errors_total",
    "Key-value store failures tolerated by a component",
    ["component", "operation"],
    registry=get_metrics_registry(),
)

audit_events_total = Counter(
    "caregate_audit_events_total",
    "Caregiver audit events emitted",
    ["event_type"],
    registry=get_metrics_registry(),
)


def record_decision(kind: str, allowed: bool) -> None:
    """Count a governor decision."""
    communication_decisions_total.labels(kind=kind, decision="allowed" if allowed else "denied").inc()


def record_blocked(kind: str) -> None:
    """Count a stored blocked attempt."""
    blocked_attempts_total.labels(kind=kind).inc()


def record_alert(level: str, outcome: str) -> None:
    """Count a caregiver alert dispatch (outcome: delivered, failed, skipped)."""
    caregiver_alerts_total.labels(level=level, outcome=outcome).inc()


def record_storage_error(component: str, operation: str) -> None:
    """Count a tolerated storage failure."""
    storage_errors_total.labels(component=component, operation=operation).inc()


def record_audit_event(event_type: str) -> None:
    """Count an audit event."""
    audit_events_total.labels(event_type=event_type).inc()
