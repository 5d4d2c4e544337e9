"""Tests for the contact quota registry."""

from __future__ import annotations

import json

import pytest

from caregate.governor import ContactRegistry, auto_enable, default_quota
from caregate.governor.contacts import CONTACTS_KEY
from caregate.models import Contact, ContactQuota, KindQuota, QuietHours
from caregate.storage import InMemoryKeyValueStore


class TestDefaultQuota:
    """Test suite for quota defaults and auto-enabling."""

    def test_default_quota(self) -> None:
        quota = default_quota()

        assert (quota.calls.max_per_hour, quota.calls.max_per_day) == (3, 10)
        assert (quota.texts.max_per_hour, quota.texts.max_per_day) == (5, 20)
        assert not quota.calls.enabled
        assert not quota.texts.enabled
        assert quota.voicemail_allowance == 2
        assert quota.quiet_hours is None

    def test_auto_enable_tight_limits(self) -> None:
        quota = auto_enable(default_quota())

        assert quota.calls.enabled
        assert quota.texts.enabled

    def test_auto_enable_unlimited_reference_values(self) -> None:
        quota = auto_enable(
            ContactQuota(
                calls=KindQuota(enabled=True, max_per_hour=10, max_per_day=20),
                texts=KindQuota(enabled=True, max_per_hour=20, max_per_day=50),
            )
        )

        assert not quota.calls.enabled
        assert not quota.texts.enabled

    def test_auto_enable_one_tight_limit_is_enough(self) -> None:
        quota = auto_enable(
            ContactQuota(
                calls=KindQuota(max_per_hour=10, max_per_day=19),
                texts=KindQuota(max_per_hour=25, max_per_day=60),
            )
        )

        assert quota.calls.enabled
        assert not quota.texts.enabled


class TestContactRegistry:
    """Test suite for ContactRegistry."""

    @pytest.fixture
    async def registry(self, store: InMemoryKeyValueStore) -> ContactRegistry:
        await store.set(
            CONTACTS_KEY,
            json.dumps(
                [
                    {"id": "c1", "name": "Alex", "phoneNumber": "+15550001111", "photo": "p.png"},
                    {"id": "c2", "name": "", "phoneNumber": "+15550002222"},
                ]
            ),
        )
        registry = ContactRegistry(store)
        await registry.load()
        return registry

    @pytest.mark.asyncio
    async def test_load(self, registry: ContactRegistry) -> None:
        assert [c.id for c in registry.list_contacts()] == ["c1", "c2"]
        assert registry.get_contact("c1").phone_number == "+15550001111"
        assert registry.get_contact("missing") is None

    @pytest.mark.asyncio
    async def test_contact_name(self, registry: ContactRegistry) -> None:
        assert registry.contact_name("c1") == "Alex"
        assert registry.contact_name("c2") is None
        assert registry.contact_name("missing") is None

    @pytest.mark.asyncio
    async def test_update_quota_auto_enables_and_persists(
        self, registry: ContactRegistry, store: InMemoryKeyValueStore
    ) -> None:
        quota = ContactQuota(
            calls=KindQuota(max_per_hour=2, max_per_day=5),
            quiet_hours=QuietHours(start="21:00", end="08:00"),
        )

        updated = await registry.update_quota("c1", quota)

        assert updated.quota.calls.enabled
        stored = json.loads(store.snapshot()[CONTACTS_KEY])
        settings = stored[0]["frequencySettings"]
        assert settings["calls"] == {"enabled": True, "maxPerHour": 2, "maxPerDay": 5}
        assert settings["quietHours"] == {"start": "21:00", "end": "08:00"}
        assert settings["voicemailAllowance"] == 2
        # Fields owned by other screens survive the edit
        assert stored[0]["photo"] == "p.png"

    @pytest.mark.asyncio
    async def test_update_quota_without_auto_enable(self, registry: ContactRegistry) -> None:
        quota = ContactQuota(calls=KindQuota(enabled=False, max_per_hour=1, max_per_day=1))

        updated = await registry.update_quota("c1", quota, auto_enable_limits=False)

        assert not updated.quota.calls.enabled

    @pytest.mark.asyncio
    async def test_remove_quota(self, registry: ContactRegistry) -> None:
        await registry.update_quota("c1", default_quota())

        updated = await registry.update_quota("c1", None)

        assert updated.quota is None

    @pytest.mark.asyncio
    async def test_update_unknown_contact(self, registry: ContactRegistry) -> None:
        with pytest.raises(KeyError):
            await registry.update_quota("missing", default_quota())

    @pytest.mark.asyncio
    async def test_save_contact_and_reload(
        self, registry: ContactRegistry, store: InMemoryKeyValueStore
    ) -> None:
        await registry.save_contact(Contact(id="c3", name="Sam", quota=default_quota()))

        reloaded = ContactRegistry(store)
        await reloaded.load()

        assert reloaded.contact_name("c3") == "Sam"
        assert reloaded.get_contact("c3").quota == default_quota()

    @pytest.mark.asyncio
    async def test_export(self, registry: ContactRegistry) -> None:
        exported = json.loads(registry.export())

        assert [c["id"] for c in exported] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_unreadable_contacts_are_not_overwritten(self, failing_store) -> None:
        original = json.dumps([{"id": "c1"}])
        store = failing_store({CONTACTS_KEY: original}, fail_reads=True, fail_writes=False)
        registry = ContactRegistry(store)
        await registry.load()

        await registry.save_contact(Contact(id="c9"))

        assert store.snapshot()[CONTACTS_KEY] == original
