"""Tests for the reminder and settings stores."""

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from crud import KeyValueStore, ReminderStore
from errors import StorageError
from schemas import NotificationPreferences, ReminderCategory, ReminderRecord

BASE = datetime(2026, 10, 18, 10, 30, 15, 123456, tzinfo=timezone.utc)


def make_record(message="Drink water", days=1, **kwargs) -> ReminderRecord:
    return ReminderRecord(
        message=message,
        scheduled_time=BASE + timedelta(days=days),
        created_at=BASE,
        **kwargs,
    )


def test_absent_key_loads_empty(store):
    assert asyncio.run(store.load_all()) == []


def test_round_trip_preserves_fields(store):
    records = [
        make_record("Manual one", notification_handle="n-1"),
        make_record("From goal", days=3, category=ReminderCategory.WEEKLY_REVIEW, goal="Learn Spanish",
                    is_ai_generated=True, is_active=False),
    ]

    async def scenario():
        for record in records:
            await store.add(record)
        return await store.load_all()

    loaded = asyncio.run(scenario())

    assert loaded == records
    for original, restored in zip(records, loaded):
        assert restored.scheduled_time == original.scheduled_time
        assert restored.scheduled_time.microsecond == 123456
        assert isinstance(restored.created_at, datetime)
        assert restored.category == original.category
        assert restored.is_active == original.is_active
        assert restored.is_ai_generated == original.is_ai_generated


def test_stored_document_is_camel_case_json_with_iso_strings(store, kv):
    asyncio.run(store.add(make_record(notification_handle="n-1", is_ai_generated=True)))
    raw = json.loads(asyncio.run(kv.read("motivations")))

    assert isinstance(raw, list)
    item = raw[0]
    assert item["scheduledTime"].startswith("2026-10-19T10:30:15.123456")
    assert item["notificationId"] == "n-1"
    assert item["isAIGenerated"] is True
    assert item["isActive"] is True


def test_update_delete_and_clear(store):
    first, second = make_record("First"), make_record("Second", days=2)

    async def scenario():
        await store.add(first)
        await store.add(second)
        assert await store.update(first.model_copy(update={"is_active": False})) is True
        assert await store.update(make_record("Never stored")) is False
        assert (await store.get(first.id)).is_active is False

        assert await store.delete(second.id) is True
        assert await store.delete("missing") is False
        assert [r.id for r in await store.load_all()] == [first.id]

        await store.clear()
        return await store.load_all()

    assert asyncio.run(scenario()) == []


def test_duplicate_id_is_rejected(store):
    record = make_record()

    async def scenario():
        await store.add(record)
        await store.add(record)

    with pytest.raises(StorageError):
        asyncio.run(scenario())


def test_concurrent_adds_are_not_lost(store):
    records = [make_record(f"Reminder {i}", days=i + 1) for i in range(10)]

    async def scenario():
        await asyncio.gather(*(store.add(r) for r in records))
        return await store.load_all()

    loaded = asyncio.run(scenario())
    assert {r.id for r in loaded} == {r.id for r in records}


def test_corrupt_collection_raises_storage_error(store, kv):
    asyncio.run(kv.write("motivations", "{this is not json"))
    with pytest.raises(StorageError):
        asyncio.run(store.load_all())


def test_unknown_stored_category_loads_as_custom(store, kv):
    item = make_record().model_dump(mode="json", by_alias=True)
    item["category"] = "Something Else"
    asyncio.run(kv.write("motivations", json.dumps([item])))

    assert asyncio.run(store.load_all())[0].category == ReminderCategory.CUSTOM


def test_legacy_reminders_are_migrated(store, kv):
    existing = make_record("Already here")
    legacy = [
        {
            "id": "legacy-1",
            "message": "Call mom",
            "dateTime": "2026-12-01T09:00:00.000Z",
            "notificationId": "old-handle",
            "isActive": True,
            "createdAt": "2026-01-01T00:00:00.000Z",
        },
        {
            "id": existing.id,
            "message": "Already here",
            "dateTime": "2026-12-02T09:00:00.000Z",
            "isActive": True,
            "createdAt": "2026-01-01T00:00:00.000Z",
        },
    ]

    async def scenario():
        await store.add(existing)
        await kv.write("reminders", json.dumps(legacy))
        migrated = await store.migrate_legacy()
        return migrated, await store.load_all(), await kv.read("reminders")

    migrated, records, legacy_left = asyncio.run(scenario())

    assert migrated == 1
    assert legacy_left is None
    moved = next(r for r in records if r.id == "legacy-1")
    assert moved.category == ReminderCategory.CUSTOM
    assert moved.notification_handle == "old-handle"
    assert moved.scheduled_time == datetime(2026, 12, 1, 9, 0, tzinfo=timezone.utc)


def test_unreadable_legacy_data_is_dropped(store, kv):
    async def scenario():
        await kv.write("reminders", "garbage")
        return await store.migrate_legacy(), await kv.read("reminders")

    assert asyncio.run(scenario()) == (0, None)


def test_slow_storage_times_out(session_factory):
    class SlowKeyValueStore(KeyValueStore):
        def _read_sync(self, key):
            time.sleep(0.3)
            return None

    slow_store = ReminderStore(SlowKeyValueStore(session_factory, timeout=0.05))
    with pytest.raises(StorageError):
        asyncio.run(slow_store.load_all())


def test_settings_defaults_and_partial_save(settings_store, kv):
    async def scenario():
        defaults = await settings_store.get()
        await settings_store.save(api_key="secret-key")
        await settings_store.save(notification_preferences=NotificationPreferences(enabled=False))
        return defaults, await settings_store.get()

    defaults, saved = asyncio.run(scenario())

    assert defaults.api_key == ""
    assert defaults.notification_preferences.enabled is True
    assert saved.api_key == "secret-key"
    assert saved.notification_preferences.enabled is False
    assert saved.ai_preferences.enabled is True
    assert "apiKey" in json.loads(asyncio.run(kv.read("app_settings")))
