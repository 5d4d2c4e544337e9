"""Observability module for caregiver audit logging."""

from caregate.observability.audit_logging import CaregiverAuditLogger, get_audit_logger

__all__ = [
    "CaregiverAuditLogger",
    "get_audit_logger",
]
