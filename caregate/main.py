"""Caregate application wiring and the caller-facing attempt flow."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from caregate.alerting import AlertCoordinator
from caregate.config import CaregateConfig
from caregate.gateway import GatewayError, MessagingGateway, TwilioGateway
from caregate.governor import ContactRegistry, RateGovernor
from caregate.models import CommunicationKind
from caregate.monitoring import record_decision
from caregate.storage import DuckDBKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from caregate.windows import Clock, resolve_timezone, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of a call or text attempt.

    ``completed`` is what the person using the app is shown and is always
    True: blocked attempts look like normal completions. ``allowed`` and
    ``delivered`` are for caregiver surfaces and diagnostics only.
    """

    contact_id: str
    kind: CommunicationKind
    allowed: bool
    delivered: bool = False
    voicemail_allowed: bool = False
    completed: bool = True


class CaregateApplication:
    """Owns one instance of every Caregate service for the process.

    Attributes:
        store: Shared key-value store (partitioned by key per component)
        governor: Rate governor
        contacts: Contact and quota registry
        coordinator: Caregiver alert coordinator
        gateway: Messaging gateway
    """

    def __init__(
        self,
        store: KeyValueStore,
        gateway: MessagingGateway,
        clock: Clock = utc_now,
        timezone_name: str | None = None,
        debounce_seconds: float = 1.0,
        recent_limit: int = 5,
        preview_length: int = 30,
        delivery_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.timezone = timezone = resolve_timezone(timezone_name)

        self.governor = RateGovernor(store, clock=clock, timezone=timezone)
        self.contacts = ContactRegistry(store)
        self.coordinator = AlertCoordinator(
            store,
            self.governor,
            gateway,
            clock=clock,
            timezone=timezone,
            debounce_seconds=debounce_seconds,
            recent_limit=recent_limit,
            preview_length=preview_length,
            delivery_timeout=delivery_timeout,
            contact_names=self.contacts.contact_name,
        )
        self._delivery_timeout = delivery_timeout

    async def start(self) -> None:
        """Initialize storage and load contacts, records and alert state."""
        logger.info("Starting Caregate application")
        await self.store.initialize()
        await self.contacts.load()
        await self.governor.load_records()
        await self.coordinator.load_state()
        logger.info("✅ Caregate application started")

    async def close(self) -> None:
        """Let pending alert checks finish, then release storage and network resources."""
        logger.info("Shutting down Caregate application")
        try:
            await asyncio.wait_for(self.coordinator.wait_for_pending(), timeout=self._delivery_timeout)
        except TimeoutError:
            logger.warning("⚠️ Pending alert check did not finish, cancelling")
        await self.coordinator.close()
        await self.gateway.close()
        await self.store.close()
        logger.info("✅ Caregate application shutdown complete")

    async def attempt_call(self, contact_id: str) -> AttemptOutcome:
        """Place a call to a contact if its quota allows it.

        Args:
            contact_id: Contact being called

        Returns:
            Outcome; ``completed`` is True whether or not the call was blocked
        """
        kind = CommunicationKind.CALL
        contact = self.contacts.get_contact(contact_id)
        if contact is None:
            raise KeyError(f"Unknown contact: {contact_id}")

        allowed = self.governor.can_communicate(contact, kind)
        record_decision(kind.value, allowed)

        if not allowed:
            voicemail_allowed = self.governor.can_leave_voicemail(contact)
            await self.governor.store_blocked_call(contact_id)
            self.coordinator.on_communication_blocked()
            return AttemptOutcome(
                contact_id, kind, allowed=False, voicemail_allowed=voicemail_allowed
            )

        delivered = await self._carry_out(kind, contact.phone_number, None)
        if delivered:
            await self.governor.record_communication(contact_id, kind)
        return AttemptOutcome(contact_id, kind, allowed=True, delivered=delivered)

    async def attempt_text(self, contact_id: str, text: str) -> AttemptOutcome:
        """Send a text to a contact if its quota allows it.

        Args:
            contact_id: Contact being texted
            text: Message body

        Returns:
            Outcome; ``completed`` is True whether or not the text was blocked
        """
        kind = CommunicationKind.TEXT
        contact = self.contacts.get_contact(contact_id)
        if contact is None:
            raise KeyError(f"Unknown contact: {contact_id}")

        allowed = self.governor.can_communicate(contact, kind)
        record_decision(kind.value, allowed)

        if not allowed:
            await self.governor.store_blocked_message(contact_id, text)
            self.coordinator.on_communication_blocked()
            return AttemptOutcome(contact_id, kind, allowed=False)

        delivered = await self._carry_out(kind, contact.phone_number, text)
        if delivered:
            await self.governor.record_communication(contact_id, kind)
        return AttemptOutcome(contact_id, kind, allowed=True, delivered=delivered)

    async def _carry_out(
        self, kind: CommunicationKind, phone_number: str | None, text: str | None
    ) -> bool:
        if not phone_number:
            logger.warning(f"Contact has no phone number, {kind.value} not placed")
            return False

        try:
            if kind is CommunicationKind.CALL:
                await self.gateway.place_call(phone_number)
            else:
                await self.gateway.send_text(phone_number, text or "")
        except GatewayError as e:
            logger.error(f"❌ {kind.value.capitalize()} failed: {e}")
            return False
        return True


def build_store(config: CaregateConfig) -> KeyValueStore:
    """Create the configured key-value store."""
    if config.storage.backend == "memory":
        return InMemoryKeyValueStore()
    return DuckDBKeyValueStore(database_path=config.storage.path)


def build_application(config: CaregateConfig, clock: Clock = utc_now) -> CaregateApplication:
    """Wire a CaregateApplication from configuration.

    Args:
        config: Loaded configuration
        clock: Source of the current aware UTC time

    Returns:
        Application ready for ``start()``
    """
    return CaregateApplication(
        store=build_store(config),
        gateway=TwilioGateway.from_config(config.twilio),
        clock=clock,
        timezone_name=config.timezone,
        debounce_seconds=config.alerting.debounce_seconds,
        recent_limit=config.alerting.recent_violation_limit,
        preview_length=config.alerting.preview_length,
        delivery_timeout=config.alerting.delivery_timeout_seconds,
    )
