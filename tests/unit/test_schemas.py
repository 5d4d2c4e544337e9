"""Tests for the persisted-state load path."""

from __future__ import annotations

import json
from datetime import UTC, datetime

from caregate.models import (
    AlertState,
    AlertStatus,
    BlockedCall,
    BlockedMessage,
    CommunicationKind,
    FrequencyRecord,
)
from caregate.models.schemas import (
    ALERT_STATE_SCHEMA_VERSION,
    dump_alert_state,
    dump_models,
    parse_alert_state,
    parse_contacts,
    parse_record_list,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=UTC)


class TestRecordLists:
    """Test suite for tolerant record-list parsing."""

    def test_missing_document_is_empty(self) -> None:
        assert parse_record_list(None, FrequencyRecord, "frequency_records") == []
        assert parse_record_list("  ", FrequencyRecord, "frequency_records") == []

    def test_corrupt_document_is_empty(self) -> None:
        assert parse_record_list("{not json", BlockedMessage, "blocked_messages") == []

    def test_non_list_document_is_empty(self) -> None:
        assert parse_record_list('{"a": 1}', BlockedCall, "blocked_calls") == []

    def test_malformed_entries_are_dropped(self) -> None:
        raw = json.dumps(
            [
                {"contactId": "c1", "kind": "call", "occurredAt": "2024-03-04T11:00:00Z"},
                {"contactId": "c1", "kind": "fax", "occurredAt": "2024-03-04T11:00:00Z"},
                {"kind": "text"},
                "garbage",
            ]
        )

        records = parse_record_list(raw, FrequencyRecord, "frequency_records")

        assert len(records) == 1
        assert records[0].kind is CommunicationKind.CALL

    def test_legacy_field_names(self) -> None:
        """Older app versions stored type/timestamp (epoch ms) and message."""
        epoch_ms = int(NOW.timestamp() * 1000)
        records = parse_record_list(
            json.dumps([{"contactId": "c1", "type": "text", "timestamp": epoch_ms}]),
            FrequencyRecord,
            "frequency_records",
        )
        messages = parse_record_list(
            json.dumps([{"id": "m1", "contactId": "c1", "message": "hi", "timestamp": epoch_ms}]),
            BlockedMessage,
            "blocked_messages",
        )
        calls = parse_record_list(
            json.dumps(
                [{"id": "k1", "contactId": "c1", "timestamp": epoch_ms, "voicemailRecordingUrl": "vm1"}]
            ),
            BlockedCall,
            "blocked_calls",
        )

        assert records[0].occurred_at == NOW
        assert records[0].kind is CommunicationKind.TEXT
        assert messages[0].text == "hi"
        assert calls[0].voicemail_ref == "vm1"

    def test_dump_uses_camel_case(self) -> None:
        record = FrequencyRecord(contact_id="c1", kind=CommunicationKind.CALL, occurred_at=NOW)

        data = json.loads(dump_models([record]))

        assert data == [{"contactId": "c1", "kind": "call", "occurredAt": "2024-03-04T12:00:00Z"}]

    def test_dump_and_parse_preserves_blocked_message(self) -> None:
        message = BlockedMessage(contact_id="c1", text="hello", occurred_at=NOW)

        parsed = parse_record_list(dump_models([message]), BlockedMessage, "blocked_messages")

        assert parsed == [message]


class TestContacts:
    """Test suite for contact parsing."""

    def test_contact_with_quota(self) -> None:
        raw = json.dumps(
            [
                {
                    "id": "c1",
                    "name": "Alex",
                    "phoneNumber": "+15550001111",
                    "photo": "file://alex.png",
                    "frequencySettings": {
                        "calls": {"enabled": True, "maxPerHour": 2, "maxPerDay": 6},
                        "texts": {"enabled": False, "maxPerHour": 5, "maxPerDay": 20},
                        "voicemailAllowed": 1,
                        "quietHours": {"start": "22:00", "end": "06:00"},
                    },
                }
            ]
        )

        (contact,) = parse_contacts(raw, "selected_contacts")

        assert contact.quota is not None
        assert contact.quota.calls.max_per_hour == 2
        assert contact.quota.voicemail_allowance == 1
        assert contact.quota.quiet_hours is not None
        assert contact.quota.quiet_hours.start == "22:00"
        assert contact.model_extra == {"photo": "file://alex.png"}

    def test_invalid_quiet_hours_are_ignored_not_the_contact(self) -> None:
        raw = json.dumps(
            [
                {
                    "id": "c1",
                    "frequencySettings": {
                        "calls": {"enabled": True, "maxPerHour": 2, "maxPerDay": 6},
                        "quietHours": {"start": "25:00", "end": "06:00"},
                    },
                }
            ]
        )

        (contact,) = parse_contacts(raw, "selected_contacts")

        assert contact.quota is not None
        assert contact.quota.calls.enabled
        assert contact.quota.quiet_hours is None

    def test_contact_without_quota(self) -> None:
        (contact,) = parse_contacts(json.dumps([{"id": "c1"}]), "selected_contacts")

        assert contact.quota is None

    def test_contact_without_id_is_dropped(self) -> None:
        assert parse_contacts(json.dumps([{"name": "Nobody"}]), "selected_contacts") == []


class TestAlertState:
    """Test suite for alert-state loading and migration."""

    def test_missing_state_uses_defaults(self) -> None:
        state = parse_alert_state(None)

        assert state == AlertState()
        assert state.status is AlertStatus.READY
        assert state.primary_threshold == 5

    def test_corrupt_state_uses_defaults(self) -> None:
        assert parse_alert_state("][") == AlertState()

    def test_invalid_state_uses_defaults(self) -> None:
        raw = json.dumps({"notificationsEnabled": "maybe"})

        assert parse_alert_state(raw) == AlertState()

    def test_round_trip_with_schema_version(self) -> None:
        state = AlertState(
            phone_number="+15559998888",
            notifications_enabled=True,
            status=AlertStatus.PRIMARY_SENT,
            primary_sent_at=NOW,
        )

        raw = dump_alert_state(state)

        assert json.loads(raw)["schemaVersion"] == ALERT_STATE_SCHEMA_VERSION
        assert parse_alert_state(raw, now=NOW) == state

    def test_legacy_settings_document_is_migrated(self) -> None:
        legacy = json.dumps(
            {
                "phoneNumber": "+15559998888",
                "notificationsEnabled": True,
                "smsEnabled": True,
                "alertThreshold": 3,
                "primaryAlertSent": True,
            }
        )

        state = parse_alert_state(None, legacy_raw=legacy, now=NOW)

        assert state.primary_threshold == 3
        assert state.status is AlertStatus.PRIMARY_SENT
        assert state.primary_sent_at == NOW
        assert state.escalation_sent_at is None

    def test_current_document_wins_over_legacy(self) -> None:
        current = json.dumps({"schemaVersion": 2, "primaryThreshold": 7})
        legacy = json.dumps({"alertThreshold": 3})

        assert parse_alert_state(current, legacy_raw=legacy).primary_threshold == 7

    def test_zero_threshold_is_clamped(self) -> None:
        state = parse_alert_state(json.dumps({"primaryThreshold": 0}))

        assert state.primary_threshold == 1

    def test_non_integer_threshold_uses_default(self) -> None:
        state = parse_alert_state(json.dumps({"primaryThreshold": "five"}))

        assert state.primary_threshold == 5

    def test_unknown_status_resets_to_ready(self) -> None:
        state = parse_alert_state(json.dumps({"status": "exploded", "primarySentAt": NOW.isoformat()}))

        assert state.status is AlertStatus.READY
        assert state.primary_sent_at is None

    def test_escalation_without_escalation_configured_steps_back(self) -> None:
        raw = json.dumps(
            {
                "status": "escalation_sent",
                "escalationEnabled": False,
                "primarySentAt": "2024-03-04T10:00:00Z",
                "escalationSentAt": "2024-03-04T11:00:00Z",
            }
        )

        state = parse_alert_state(raw, now=NOW)

        assert state.status is AlertStatus.PRIMARY_SENT
        assert state.escalation_sent_at is None
        assert state.primary_sent_at == datetime(2024, 3, 4, 10, 0, tzinfo=UTC)

    def test_missing_timestamps_are_filled(self) -> None:
        raw = json.dumps(
            {
                "status": "escalation_sent",
                "escalationEnabled": True,
                "primaryThreshold": 5,
                "escalationThreshold": 15,
            }
        )

        state = parse_alert_state(raw, now=NOW)

        assert state.status is AlertStatus.ESCALATION_SENT
        assert state.primary_sent_at == NOW
        assert state.escalation_sent_at == NOW
