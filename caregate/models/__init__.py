"""Caregate data models."""

from caregate.models.alert_state import (
    AlertEvaluation,
    AlertLevel,
    AlertSettingsUpdate,
    AlertState,
    AlertStatus,
    ViolationStats,
)
from caregate.models.quota import Contact, ContactQuota, KindQuota, QuietHours
from caregate.models.records import (
    BlockedCall,
    BlockedMessage,
    CommunicationKind,
    CommunicationStats,
    FrequencyRecord,
    Violation,
)

__all__ = [
    "AlertEvaluation",
    "AlertLevel",
    "AlertSettingsUpdate",
    "AlertState",
    "AlertStatus",
    "BlockedCall",
    "BlockedMessage",
    "CommunicationKind",
    "CommunicationStats",
    "Contact",
    "ContactQuota",
    "FrequencyRecord",
    "KindQuota",
    "QuietHours",
    "Violation",
    "ViolationStats",
]
