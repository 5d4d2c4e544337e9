"""Communication rate governor.

Owns the catalog of allowed and blocked communication attempts, answers
whether a contact may be called or texted right now, and records outcomes.
The in-memory catalog is the single source of truth once loaded; every
mutation is written through to the key-value store.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, tzinfo

from caregate.models import (
    BlockedCall,
    BlockedMessage,
    CommunicationKind,
    CommunicationStats,
    Contact,
    FrequencyRecord,
    QuietHours,
    Violation,
)
from caregate.models.schemas import dump_models, parse_record_list
from caregate.monitoring import record_blocked, record_storage_error
from caregate.observability import CaregiverAuditLogger, get_audit_logger
from caregate.storage import KeyValueStore, StorageError
from caregate.windows import (
    DAY,
    HOUR,
    Clock,
    count_within,
    in_quiet_hours,
    to_local,
    utc_now,
    within_window,
)

logger = logging.getLogger(__name__)

FREQUENCY_RECORDS_KEY = "frequency_records"
BLOCKED_MESSAGES_KEY = "blocked_messages"
BLOCKED_CALLS_KEY = "blocked_calls"


class RateGovernor:
    """Per-contact quota enforcement over rolling hour and day windows.

    Example:
        governor = RateGovernor(store)
        await governor.load_records()

        if governor.can_communicate(contact, CommunicationKind.TEXT):
            await gateway.send_text(contact.phone_number, body)
            await governor.record_communication(contact.id, CommunicationKind.TEXT)
        else:
            await governor.store_blocked_message(contact.id, body)
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = utc_now,
        timezone: tzinfo | None = None,
        audit_logger: CaregiverAuditLogger | None = None,
    ) -> None:
        """Initialize rate governor.

        Args:
            store: Key-value store holding the three record collections
            clock: Source of the current aware UTC time
            timezone: Zone used for quiet hours (None for system local time)
            audit_logger: Audit logger for caregiver history clears
        """
        self._store = store
        self._clock = clock
        self._timezone = timezone
        self._audit = audit_logger or get_audit_logger()
        self._records: list[FrequencyRecord] = []
        self._blocked_messages: list[BlockedMessage] = []
        self._blocked_calls: list[BlockedCall] = []
        self._lock = asyncio.Lock()
        self._loaded = False
        # Keys whose stored documents could not be read at load
        self._unreadable: set[str] = set()

    @property
    def loaded(self) -> bool:
        return self._loaded

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load_records(self) -> None:
        """Load all collections from storage and prune stale allowed records.

        Missing or corrupt documents load as empty collections. Allowed
        records older than 24 hours are dropped and the pruned set is written
        back, unless the read itself failed. A collection whose read failed
        is re-read and merged before its next write, so stored history is
        never replaced by what was recorded since the failed load.
        """
        async with self._lock:
            records_raw, records_ok = await self._read(FREQUENCY_RECORDS_KEY)
            messages_raw, messages_ok = await self._read(BLOCKED_MESSAGES_KEY)
            calls_raw, calls_ok = await self._read(BLOCKED_CALLS_KEY)

            self._unreadable = {
                key
                for key, ok in (
                    (FREQUENCY_RECORDS_KEY, records_ok),
                    (BLOCKED_MESSAGES_KEY, messages_ok),
                    (BLOCKED_CALLS_KEY, calls_ok),
                )
                if not ok
            }

            records = parse_record_list(records_raw, FrequencyRecord, FREQUENCY_RECORDS_KEY)
            now = self._clock()
            fresh = [r for r in records if within_window(r.occurred_at, now, DAY)]

            self._records = fresh
            self._blocked_messages = parse_record_list(
                messages_raw, BlockedMessage, BLOCKED_MESSAGES_KEY
            )
            self._blocked_calls = parse_record_list(calls_raw, BlockedCall, BLOCKED_CALLS_KEY)
            self._loaded = True

            if records_ok:
                await self._persist(FREQUENCY_RECORDS_KEY, dump_models(self._records))

            logger.info(
                f"Loaded {len(fresh)} frequency records (pruned {len(records) - len(fresh)}), "
                f"{len(self._blocked_messages)} blocked messages, "
                f"{len(self._blocked_calls)} blocked calls"
            )

    async def ensure_loaded(self) -> None:
        """Load records unless a load already happened."""
        if not self._loaded:
            await self.load_records()

    async def _read(self, key: str) -> tuple[str | None, bool]:
        try:
            return await self._store.get(key), True
        except StorageError as e:
            logger.warning(f"Could not read '{key}', treating as empty: {e}")
            record_storage_error("governor", "read")
            return None, False

    async def _persist(self, key: str, payload: str) -> bool:
        try:
            await self._store.set(key, payload)
            return True
        except StorageError as e:
            logger.error(f"Failed to persist '{key}': {e}")
            record_storage_error("governor", "write")
            return False

    async def _write_through(self, key: str) -> bool:
        """Persist one collection, first recovering it if its load failed.

        Returns False when the stored document is still unreadable; the
        write is then skipped and the mutation stays in memory only.
        """
        if key in self._unreadable:
            raw, ok = await self._read(key)
            if not ok:
                logger.error(f"Skipping write to '{key}': stored history is still unreadable")
                record_storage_error("governor", "write_skipped")
                return False
            self._merge_stored(key, raw)
            self._unreadable.discard(key)
            logger.info(f"Recovered '{key}' after an earlier read failure")

        return await self._persist(key, self._dump(key))

    def _merge_stored(self, key: str, raw: str | None) -> None:
        if key == FREQUENCY_RECORDS_KEY:
            stored = parse_record_list(raw, FrequencyRecord, key)
            known = set(stored)
            now = self._clock()
            self._records = sorted(
                (
                    r
                    for r in stored + [r for r in self._records if r not in known]
                    if within_window(r.occurred_at, now, DAY)
                ),
                key=lambda r: r.occurred_at,
            )
        elif key == BLOCKED_MESSAGES_KEY:
            messages = parse_record_list(raw, BlockedMessage, key)
            ids = {m.id for m in messages}
            messages.extend(m for m in self._blocked_messages if m.id not in ids)
            self._blocked_messages = sorted(messages, key=lambda m: m.occurred_at)
        else:
            calls = parse_record_list(raw, BlockedCall, key)
            ids = {c.id for c in calls}
            calls.extend(c for c in self._blocked_calls if c.id not in ids)
            self._blocked_calls = sorted(calls, key=lambda c: c.occurred_at)

    def _dump(self, key: str) -> str:
        if key == FREQUENCY_RECORDS_KEY:
            return dump_models(self._records)
        if key == BLOCKED_MESSAGES_KEY:
            return dump_models(self._blocked_messages)
        return dump_models(self._blocked_calls)

    async def _replace(self, key: str) -> None:
        # Clears overwrite whatever is stored, readable or not
        if await self._persist(key, self._dump(key)):
            self._unreadable.discard(key)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def is_quiet_hours(self, quiet_hours: QuietHours, now: datetime | None = None) -> bool:
        """Check whether local wall-clock time falls inside ``quiet_hours``."""
        local = to_local(now or self._clock(), self._timezone)
        return in_quiet_hours(quiet_hours.start, quiet_hours.end, local.time())

    def can_communicate(self, contact: Contact, kind: CommunicationKind) -> bool:
        """Decide whether ``contact`` may be reached with ``kind`` right now.

        Evaluated in order: no quota or a disabled sub-quota allows; quiet
        hours deny; otherwise both the hourly and daily counts of allowed
        records must be below their caps. Has no side effects.
        """
        quota = contact.quota
        if quota is None:
            return True

        limits = quota.for_kind(kind)
        if not limits.enabled:
            return True

        now = self._clock()
        if quota.quiet_hours is not None and self.is_quiet_hours(quota.quiet_hours, now):
            return False

        timestamps = [
            r.occurred_at for r in self._records if r.contact_id == contact.id and r.kind is kind
        ]
        hourly_count = count_within(timestamps, now, HOUR)
        daily_count = count_within(timestamps, now, DAY)

        return hourly_count < limits.max_per_hour and daily_count < limits.max_per_day

    def can_leave_voicemail(self, contact: Contact) -> bool:
        """Whether a blocked call from ``contact`` may still leave a voicemail.

        Each contact gets ``voicemail_allowance`` voicemails per rolling 24
        hours; beyond that the caller only hears a busy line.
        """
        if contact.quota is None:
            return True

        now = self._clock()
        blocked_today = count_within(
            (c.occurred_at for c in self._blocked_calls if c.contact_id == contact.id),
            now,
            DAY,
        )
        return blocked_today < contact.quota.voicemail_allowance

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_communication(
        self, contact_id: str, kind: CommunicationKind
    ) -> FrequencyRecord:
        """Record an allowed communication that was carried out.

        Records older than 24 hours are pruned before the new one is stored.
        """
        async with self._lock:
            now = self._clock()
            record = FrequencyRecord(contact_id=contact_id, kind=kind, occurred_at=now)
            self._records = [r for r in self._records if within_window(r.occurred_at, now, DAY)]
            self._records.append(record)
            await self._write_through(FREQUENCY_RECORDS_KEY)
            return record

    async def store_blocked_message(self, contact_id: str, text: str) -> BlockedMessage:
        """Keep a denied text for caregiver review. Never raises on storage failure."""
        async with self._lock:
            blocked = BlockedMessage(contact_id=contact_id, text=text, occurred_at=self._clock())
            self._blocked_messages.append(blocked)
            await self._write_through(BLOCKED_MESSAGES_KEY)

        record_blocked(CommunicationKind.TEXT.value)
        logger.info(f"Stored blocked message for contact {contact_id}")
        return blocked

    async def store_blocked_call(
        self, contact_id: str, voicemail_ref: str | None = None
    ) -> BlockedCall:
        """Keep a denied call for caregiver review. Never raises on storage failure."""
        async with self._lock:
            blocked = BlockedCall(
                contact_id=contact_id, voicemail_ref=voicemail_ref, occurred_at=self._clock()
            )
            self._blocked_calls.append(blocked)
            await self._write_through(BLOCKED_CALLS_KEY)

        record_blocked(CommunicationKind.CALL.value)
        logger.info(f"Stored blocked call for contact {contact_id}")
        return blocked

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_communication_stats(self, contact_id: str) -> CommunicationStats:
        """Count allowed calls and texts for a contact in the last 24 hours."""
        now = self._clock()
        recent = [
            r for r in self._records
            if r.contact_id == contact_id and within_window(r.occurred_at, now, DAY)
        ]
        return CommunicationStats(
            calls=sum(1 for r in recent if r.kind is CommunicationKind.CALL),
            texts=sum(1 for r in recent if r.kind is CommunicationKind.TEXT),
        )

    def get_blocked_messages(self) -> tuple[BlockedMessage, ...]:
        return tuple(self._blocked_messages)

    def get_blocked_calls(self) -> tuple[BlockedCall, ...]:
        return tuple(self._blocked_calls)

    def iter_violations(self) -> list[Violation]:
        """All blocked calls and texts merged, oldest first."""
        violations = [Violation.from_message(m) for m in self._blocked_messages]
        violations.extend(Violation.from_call(c) for c in self._blocked_calls)
        violations.sort(key=lambda v: v.occurred_at)
        return violations

    def count_blocked_since(self, cutoff: datetime) -> int:
        """Count blocked calls and texts that occurred after ``cutoff``."""
        return sum(1 for m in self._blocked_messages if m.occurred_at > cutoff) + sum(
            1 for c in self._blocked_calls if c.occurred_at > cutoff
        )

    def count_blocked_total(self) -> int:
        return len(self._blocked_messages) + len(self._blocked_calls)

    # ------------------------------------------------------------------
    # Caregiver clearing
    # ------------------------------------------------------------------

    async def clear_blocked_messages(self) -> int:
        """Irreversibly drop every blocked message. Returns the number removed."""
        async with self._lock:
            removed = len(self._blocked_messages)
            self._blocked_messages = []
            await self._replace(BLOCKED_MESSAGES_KEY)

        self._audit.log_blocked_cleared("messages", removed)
        return removed

    async def clear_blocked_calls(self) -> int:
        """Irreversibly drop every blocked call. Returns the number removed."""
        async with self._lock:
            removed = len(self._blocked_calls)
            self._blocked_calls = []
            await self._replace(BLOCKED_CALLS_KEY)

        self._audit.log_blocked_cleared("calls", removed)
        return removed

    async def clear_all_blocked(self) -> int:
        """Irreversibly drop all blocked history. Returns the number removed."""
        async with self._lock:
            removed = len(self._blocked_messages) + len(self._blocked_calls)
            self._blocked_messages = []
            self._blocked_calls = []
            await self._replace(BLOCKED_MESSAGES_KEY)
            await self._replace(BLOCKED_CALLS_KEY)

        self._audit.log_blocked_cleared("communications", removed)
        return removed
