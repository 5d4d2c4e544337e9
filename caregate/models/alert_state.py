"""Caregiver alert configuration and escalation state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from caregate.models.records import UtcDatetime


class AlertStatus(str, Enum):
    """Escalation breaker states.

    ``READY`` -> ``PRIMARY_SENT`` -> ``ESCALATION_SENT``; only a caregiver
    reset moves the breaker backwards.
    """

    READY = "ready"
    PRIMARY_SENT = "primary_sent"
    ESCALATION_SENT = "escalation_sent"


class AlertLevel(str, Enum):
    """Notification levels the coordinator can send."""

    PRIMARY = "primary"
    ESCALATION = "escalation"


class AlertState(BaseModel):
    """Account-wide caregiver notification settings plus breaker state.

    Instances are immutable; the coordinator replaces its state on every
    mutation and persists the replacement.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    phone_number: str | None = Field(default=None, alias="phoneNumber")
    notifications_enabled: bool = Field(default=False, alias="notificationsEnabled")
    sms_enabled: bool = Field(default=True, alias="smsEnabled")
    primary_threshold: int = Field(default=5, ge=1, alias="primaryThreshold")
    escalation_enabled: bool = Field(default=False, alias="escalationEnabled")
    escalation_threshold: int = Field(default=15, ge=1, alias="escalationThreshold")
    status: AlertStatus = AlertStatus.READY
    last_reset_at: UtcDatetime | None = Field(default=None, alias="lastResetAt")
    primary_sent_at: UtcDatetime | None = Field(default=None, alias="primarySentAt")
    escalation_sent_at: UtcDatetime | None = Field(default=None, alias="escalationSentAt")

    @property
    def escalation_configured(self) -> bool:
        """Escalation is reachable only when enabled and above the primary threshold."""
        return self.escalation_enabled and self.escalation_threshold > self.primary_threshold

    @property
    def can_deliver_sms(self) -> bool:
        return self.sms_enabled and bool(self.phone_number)


class AlertSettingsUpdate(BaseModel):
    """Caregiver edit of the alert configuration; unset fields stay unchanged."""

    model_config = ConfigDict(extra="forbid")

    phone_number: str | None = None
    notifications_enabled: bool | None = None
    sms_enabled: bool | None = None
    primary_threshold: int | None = Field(default=None, ge=1)
    escalation_enabled: bool | None = None
    escalation_threshold: int | None = Field(default=None, ge=1)


class ViolationStats(BaseModel):
    """Read-only projection of blocked-attempt activity for the settings screen."""

    today_blocked: int
    lifetime_blocked: int
    status: AlertStatus
    primary_triggered: bool
    escalation_triggered: bool
    primary_sent_at: datetime | None = None
    escalation_sent_at: datetime | None = None
    primary_threshold_reached_at: datetime | None = None
    escalation_threshold_reached_at: datetime | None = None


class AlertEvaluation(BaseModel):
    """Outcome of one alert evaluation."""

    today_blocked: int = 0
    level: AlertLevel | None = None
    delivered: bool = False
    forced: bool = False

    @property
    def transitioned(self) -> bool:
        return self.level is not None
