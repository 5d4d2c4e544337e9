"""Pytest configuration and fixtures for Caregate tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from caregate.alerting import AlertCoordinator
from caregate.gateway import DeliveryResult, GatewayError, MessagingGateway
from caregate.governor import RateGovernor
from caregate.models import Contact, ContactQuota, KindQuota
from caregate.storage import InMemoryKeyValueStore, StorageError


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 4, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingGateway(MessagingGateway):
    """Gateway that records every request instead of sending it."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.texts: list[tuple[str, str]] = []
        self.calls: list[str] = []
        self.closed = False

    async def send_text(self, to_number: str, body: str) -> DeliveryResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.texts.append((to_number, body))
        if self.fail:
            raise GatewayError("provider rejected message", status_code=500)
        return DeliveryResult(to_number=to_number, status="queued", sid=f"SM{len(self.texts)}")

    async def place_call(self, to_number: str) -> DeliveryResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(to_number)
        if self.fail:
            raise GatewayError("provider rejected call", status_code=500)
        return DeliveryResult(to_number=to_number, status="queued", sid=f"CA{len(self.calls)}")

    async def close(self) -> None:
        self.closed = True


class FailingStore(InMemoryKeyValueStore):
    """In-memory store whose reads and/or writes raise StorageError."""

    def __init__(
        self,
        initial: dict[str, str] | None = None,
        fail_reads: bool = False,
        fail_writes: bool = True,
    ) -> None:
        super().__init__(initial)
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise StorageError("disk unavailable", key)
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError("disk full", key)
        await super().set(key, value)


def limited_contact(
    contact_id: str = "c1",
    calls: tuple[int, int] | None = (3, 10),
    texts: tuple[int, int] | None = None,
    **quota_kwargs,
) -> Contact:
    """Contact whose given kinds are enforced with (per hour, per day) limits."""
    call_limits = KindQuota(
        enabled=calls is not None,
        max_per_hour=calls[0] if calls else 3,
        max_per_day=calls[1] if calls else 10,
    )
    text_limits = KindQuota(
        enabled=texts is not None,
        max_per_hour=texts[0] if texts else 5,
        max_per_day=texts[1] if texts else 20,
    )
    return Contact(
        id=contact_id,
        name=f"Contact {contact_id}",
        phone_number="+15550000001",
        quota=ContactQuota(calls=call_limits, texts=text_limits, **quota_kwargs),
    )


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at 2024-03-04 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def gateway() -> RecordingGateway:
    """Gateway recording texts and calls."""
    return RecordingGateway()


@pytest.fixture
async def governor(store: InMemoryKeyValueStore, clock: FakeClock) -> RateGovernor:
    """Loaded rate governor evaluating quiet hours in UTC."""
    governor = RateGovernor(store, clock=clock, timezone=UTC)
    await governor.load_records()
    return governor


@pytest.fixture
async def coordinator(
    store: InMemoryKeyValueStore,
    governor: RateGovernor,
    gateway: RecordingGateway,
    clock: FakeClock,
) -> AlertCoordinator:
    """Loaded alert coordinator with a short debounce and a configured caregiver."""
    coordinator = AlertCoordinator(
        store,
        governor,
        gateway,
        clock=clock,
        timezone=UTC,
        debounce_seconds=0.05,
        delivery_timeout=1.0,
    )
    await coordinator.load_state()
    await coordinator.update_settings(
        phone_number="+15559998888",
        notifications_enabled=True,
        primary_threshold=5,
        escalation_enabled=True,
        escalation_threshold=15,
    )
    yield coordinator
    await coordinator.close()


@pytest.fixture
def make_contact():
    """Factory for contacts with enforced limits."""
    return limited_contact


@pytest.fixture
def failing_store():
    """Factory for stores that raise StorageError."""
    return FailingStore


@pytest.fixture
def block_texts(governor: RateGovernor, clock: FakeClock):
    """Store a number of blocked texts, one minute apart."""

    async def block(count: int, contact_id: str = "c1") -> None:
        for i in range(count):
            await governor.store_blocked_message(contact_id, f"blocked text {i}")
            clock.advance(minutes=1)

    return block
