"""Contact registry owning the per-contact quota map.

Quotas are stored with the contact records they belong to. Edits take
effect immediately for the next governor decision; counts already recorded
are never grandfathered.
"""

from __future__ import annotations

import asyncio
import json
import logging

from caregate.models import Contact, ContactQuota, KindQuota
from caregate.models.schemas import dump_models, parse_contacts
from caregate.monitoring import record_storage_error
from caregate.observability import CaregiverAuditLogger, get_audit_logger
from caregate.storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

CONTACTS_KEY = "selected_contacts"

# Limits at or above these (per hour, per day) count as "unlimited" when auto-enabling
UNLIMITED_CALL_LIMITS = (10, 20)
UNLIMITED_TEXT_LIMITS = (20, 50)


def default_quota() -> ContactQuota:
    """Starting quota for a contact: limits configured but not enforced."""
    return ContactQuota(
        calls=KindQuota(enabled=False, max_per_hour=3, max_per_day=10),
        texts=KindQuota(enabled=False, max_per_hour=5, max_per_day=20),
        voicemail_allowance=2,
    )


def _tighter_than(limits: KindQuota, reference: tuple[int, int]) -> bool:
    max_hour, max_day = reference
    return limits.max_per_hour < max_hour or limits.max_per_day < max_day


def auto_enable(quota: ContactQuota) -> ContactQuota:
    """Enable each sub-quota exactly when its limits are tighter than unlimited."""
    return quota.model_copy(
        update={
            "calls": quota.calls.model_copy(
                update={"enabled": _tighter_than(quota.calls, UNLIMITED_CALL_LIMITS)}
            ),
            "texts": quota.texts.model_copy(
                update={"enabled": _tighter_than(quota.texts, UNLIMITED_TEXT_LIMITS)}
            ),
        }
    )


class ContactRegistry:
    """Loads, edits and persists contacts with their quotas."""

    def __init__(
        self,
        store: KeyValueStore,
        audit_logger: CaregiverAuditLogger | None = None,
    ) -> None:
        self._store = store
        self._audit = audit_logger or get_audit_logger()
        self._contacts: dict[str, Contact] = {}
        self._lock = asyncio.Lock()
        self._read_failed = False

    async def load(self) -> None:
        """Load contacts from storage (missing or corrupt data loads as empty)."""
        async with self._lock:
            try:
                raw = await self._store.get(CONTACTS_KEY)
                self._read_failed = False
            except StorageError as e:
                logger.warning(f"Could not read contacts, starting empty: {e}")
                record_storage_error("contacts", "read")
                raw = None
                self._read_failed = True

            self._contacts = {c.id: c for c in parse_contacts(raw, CONTACTS_KEY)}
            logger.info(f"Loaded {len(self._contacts)} contacts")

    def get_contact(self, contact_id: str) -> Contact | None:
        return self._contacts.get(contact_id)

    def list_contacts(self) -> list[Contact]:
        return list(self._contacts.values())

    def contact_name(self, contact_id: str) -> str | None:
        """Display name for a contact, if known and non-empty."""
        contact = self._contacts.get(contact_id)
        return contact.name if contact and contact.name else None

    async def save_contact(self, contact: Contact) -> None:
        """Insert or replace a contact record."""
        async with self._lock:
            self._contacts[contact.id] = contact
            await self._persist()

    async def update_quota(
        self,
        contact_id: str,
        quota: ContactQuota | None,
        auto_enable_limits: bool = True,
    ) -> Contact:
        """Replace a contact's quota.

        Args:
            contact_id: Contact to edit
            quota: New quota, or None to remove all limits
            auto_enable_limits: Derive each ``enabled`` flag from the limits

        Returns:
            The updated contact

        Raises:
            KeyError: If the contact is unknown
        """
        async with self._lock:
            contact = self._contacts.get(contact_id)
            if contact is None:
                raise KeyError(f"Unknown contact: {contact_id}")

            if quota is not None and auto_enable_limits:
                quota = auto_enable(quota)

            updated = contact.model_copy(update={"quota": quota})
            self._contacts[contact_id] = updated
            await self._persist()

        self._audit.log_quota_updated(
            contact_id, quota.model_dump(mode="json", by_alias=True) if quota else None
        )
        return updated

    async def _persist(self) -> None:
        if self._read_failed:
            # Stored contacts could not be read; writing now would replace them
            logger.error("Skipping contact write: stored contacts were unreadable at load")
            record_storage_error("contacts", "write_skipped")
            return

        try:
            await self._store.set(CONTACTS_KEY, dump_models(self._contacts.values()))
        except StorageError as e:
            logger.error(f"Failed to persist contacts: {e}")
            record_storage_error("contacts", "write")

    def export(self) -> str:
        """Pretty JSON export of all contacts (for the CLI)."""
        return json.dumps(json.loads(dump_models(self._contacts.values())), indent=2)
