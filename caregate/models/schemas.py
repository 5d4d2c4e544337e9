"""Versioned load path for persisted Caregate state.

Everything read back from the key-value store passes through this module.
Missing or corrupt documents resolve to empty collections or default state,
malformed entries are dropped individually, and older alert-state shapes are
migrated to the current schema before validation. Nothing outside this module
has to defend against partial or legacy shapes.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from caregate.models.alert_state import AlertState, AlertStatus
from caregate.models.quota import Contact
from caregate.windows import utc_now

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ALERT_STATE_SCHEMA_VERSION = 2

_STATUS_ALIASES: dict[str, AlertStatus] = {
    "": AlertStatus.READY,
    "none": AlertStatus.READY,
    "idle": AlertStatus.READY,
    "ready": AlertStatus.READY,
    "primary": AlertStatus.PRIMARY_SENT,
    "primary_sent": AlertStatus.PRIMARY_SENT,
    "primarysent": AlertStatus.PRIMARY_SENT,
    "escalation": AlertStatus.ESCALATION_SENT,
    "escalated": AlertStatus.ESCALATION_SENT,
    "escalation_sent": AlertStatus.ESCALATION_SENT,
    "escalationsent": AlertStatus.ESCALATION_SENT,
}


def decode_document(raw: str | None, key: str) -> Any | None:
    """Decode a stored JSON document, returning None when absent or corrupt."""
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Discarding corrupt document under '{key}': {e}")
        return None


def parse_record_list(raw: str | None, model: type[ModelT], key: str) -> list[ModelT]:
    """Parse a stored JSON array into validated models.

    Args:
        raw: Stored document (may be None)
        model: Model class for each entry
        key: Storage key, used for diagnostics

    Returns:
        Valid entries in stored order; invalid entries are skipped
    """
    data = decode_document(raw, key)
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning(f"Expected a list under '{key}', got {type(data).__name__}")
        return []

    records: list[ModelT] = []
    dropped = 0
    for entry in data:
        try:
            records.append(model.model_validate(entry))
        except ValidationError:
            dropped += 1

    if dropped:
        logger.warning(f"Dropped {dropped} malformed entries from '{key}'")
    return records


def dump_models(models: Iterable[BaseModel]) -> str:
    """Serialize models to the on-disk JSON array form."""
    return json.dumps([m.model_dump(mode="json", by_alias=True) for m in models])


def parse_contacts(raw: str | None, key: str) -> list[Contact]:
    """Parse stored contacts, salvaging limits when only quiet hours are malformed."""
    data = decode_document(raw, key)
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning(f"Expected a list under '{key}', got {type(data).__name__}")
        return []

    contacts: list[Contact] = []
    for entry in data:
        try:
            contacts.append(Contact.model_validate(entry))
            continue
        except ValidationError as e:
            first_error = e

        salvaged = _without_quiet_hours(entry)
        if salvaged is not None:
            try:
                contacts.append(Contact.model_validate(salvaged))
                logger.warning(f"Ignored invalid quiet hours for contact {salvaged.get('id')}")
                continue
            except ValidationError:
                pass

        logger.warning(f"Dropped malformed contact from '{key}': {first_error.error_count()} errors")

    return contacts


def _without_quiet_hours(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, dict):
        return None
    settings = entry.get("frequencySettings")
    if not isinstance(settings, dict) or "quietHours" not in settings:
        return None
    return {**entry, "frequencySettings": {k: v for k, v in settings.items() if k != "quietHours"}}


def _legacy_status(data: dict[str, Any]) -> AlertStatus:
    raw_status = data.get("status")
    if isinstance(raw_status, str):
        normalized = raw_status.strip().lower().replace("-", "_")
        if normalized in _STATUS_ALIASES:
            return _STATUS_ALIASES[normalized]
        logger.warning(f"Unknown alert status {raw_status!r}, resetting to ready")
        return AlertStatus.READY

    # Pre-status shapes tracked each level with a boolean flag
    if data.get("escalationAlertSent"):
        return AlertStatus.ESCALATION_SENT
    if data.get("primaryAlertSent"):
        return AlertStatus.PRIMARY_SENT
    return AlertStatus.READY


def migrate_alert_state(data: dict[str, Any]) -> dict[str, Any]:
    """Bring a stored alert-state document up to the current schema version.

    Version 1 documents (the pre-escalation single-threshold settings) carry
    ``alertThreshold`` and no breaker status. Thresholds below one, or of the
    wrong type, fall back to the minimum or the default respectively.
    """
    migrated = dict(data)
    version = migrated.get("schemaVersion", 1)

    if not isinstance(version, int) or version < 2:
        if "alertThreshold" in migrated and "primaryThreshold" not in migrated:
            migrated["primaryThreshold"] = migrated.pop("alertThreshold")

    migrated["status"] = _legacy_status(migrated).value

    for key in ("primaryThreshold", "escalationThreshold"):
        value = migrated.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning(f"Ignoring non-integer {key}={value!r}")
            migrated.pop(key)
        elif value < 1:
            migrated[key] = 1

    migrated["schemaVersion"] = ALERT_STATE_SCHEMA_VERSION
    return migrated


def normalize_alert_state(state: AlertState, now: datetime | None = None) -> AlertState:
    """Restore the status/timestamp invariants on a freshly loaded state."""
    now = now or utc_now()
    status = state.status

    if status is AlertStatus.ESCALATION_SENT and not state.escalation_configured:
        logger.warning("Escalation recorded but escalation is not configured, stepping back")
        status = AlertStatus.PRIMARY_SENT

    if status is AlertStatus.READY:
        return state.model_copy(
            update={"status": status, "primary_sent_at": None, "escalation_sent_at": None}
        )

    if status is AlertStatus.PRIMARY_SENT:
        return state.model_copy(
            update={
                "status": status,
                "primary_sent_at": state.primary_sent_at or now,
                "escalation_sent_at": None,
            }
        )

    escalation_sent_at = state.escalation_sent_at or now
    return state.model_copy(
        update={
            "status": status,
            "primary_sent_at": state.primary_sent_at or escalation_sent_at,
            "escalation_sent_at": escalation_sent_at,
        }
    )


def parse_alert_state(
    raw: str | None,
    legacy_raw: str | None = None,
    now: datetime | None = None,
) -> AlertState:
    """Load the alert state, falling back to the legacy settings document.

    Args:
        raw: Current-key document
        legacy_raw: Document stored under the pre-escalation settings key
        now: Timestamp used to fill missing breaker timestamps

    Returns:
        A valid AlertState honoring every status/timestamp invariant
    """
    data = decode_document(raw, "alert_state")
    if data is None and legacy_raw is not None:
        data = decode_document(legacy_raw, "legacy_alert_settings")
        if data is not None:
            logger.info("Migrating legacy caregiver notification settings")

    if not isinstance(data, dict):
        return AlertState()

    try:
        state = AlertState.model_validate(migrate_alert_state(data))
    except ValidationError as e:
        logger.warning(f"Alert state failed validation, using defaults: {e.error_count()} errors")
        return AlertState()

    return normalize_alert_state(state, now)


def dump_alert_state(state: AlertState) -> str:
    """Serialize the alert state with its schema version."""
    payload = {"schemaVersion": ALERT_STATE_SCHEMA_VERSION}
    payload.update(state.model_dump(mode="json", by_alias=True))
    return json.dumps(payload)
