"""Persistence operations for Goal Reminder Service.

The reminder collection is one JSON document under a namespaced key.
Every mutation reads the whole collection, changes it in memory and
writes it back (last writer wins); writes are serialized per process by
an asyncio.Lock. Every call is bounded by STORAGE_TIMEOUT.

IMPORTANT: timestamps are ISO-8601 strings on disk and datetime objects
after load.
"""

import asyncio
import json
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from clock import utc_now
from config import settings
from database import KeyValue
from errors import StorageError
from logger_config import setup_logger
from schemas import AppSettings, ReminderCategory, ReminderRecord
from timeouts import bounded

logger = setup_logger(__name__, 'store.log')

_records_adapter = TypeAdapter(List[ReminderRecord])


class KeyValueStore:
    """Async access to the kv_store table."""

    def __init__(self, session_factory: Callable, timeout: float = None):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT

    def _read_sync(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.get(KeyValue, key)
            return row.value if row else None
        finally:
            db.close()

    def _write_sync(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(KeyValue, key)
            if row is None:
                db.add(KeyValue(key=key, value=value, updated_at=utc_now()))
            else:
                row.value = value
                row.updated_at = utc_now()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def _remove_sync(self, key: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(KeyValue, key)
            if row is not None:
                db.delete(row)
                db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def _run(self, operation: str, key: str, func, *args):
        try:
            return await bounded(
                asyncio.to_thread(func, key, *args),
                self.timeout,
                lambda: StorageError(f"Storage {operation} of '{key}' timed out after {self.timeout}s"),
            )
        except SQLAlchemyError as e:
            logger.error(f"Storage {operation} of '{key}' failed: {str(e)}")
            raise StorageError(f"Storage {operation} of '{key}' failed") from e

    async def read(self, key: str) -> Optional[str]:
        return await self._run("read", key, self._read_sync)

    async def write(self, key: str, value: str) -> None:
        await self._run("write", key, self._write_sync, value)

    async def remove(self, key: str) -> None:
        await self._run("remove", key, self._remove_sync)


class ReminderStore:
    """Whole-collection CRUD over reminder records."""

    def __init__(
        self,
        kv: KeyValueStore,
        key: str = None,
        legacy_key: str = None,
    ):
        self.kv = kv
        self.key = key or settings.STORAGE_KEY
        self.legacy_key = legacy_key or settings.LEGACY_STORAGE_KEY
        self._write_lock = asyncio.Lock()

    @staticmethod
    def serialize(records: List[ReminderRecord]) -> str:
        return _records_adapter.dump_json(records, by_alias=True).decode("utf-8")

    @staticmethod
    def deserialize(raw: str) -> List[ReminderRecord]:
        try:
            return _records_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Stored reminders are corrupt: {e.error_count()} error(s)")
            raise StorageError("Stored reminders could not be read") from e

    async def load_all(self) -> List[ReminderRecord]:
        """Load every record; an absent key means an empty collection."""
        raw = await self.kv.read(self.key)
        if raw is None:
            return []
        return self.deserialize(raw)

    async def save_all(self, records: List[ReminderRecord]) -> None:
        await self.kv.write(self.key, self.serialize(records))

    async def get(self, record_id: str) -> Optional[ReminderRecord]:
        for record in await self.load_all():
            if record.id == record_id:
                return record
        return None

    async def add(self, record: ReminderRecord) -> None:
        async with self._write_lock:
            records = await self.load_all()
            if any(r.id == record.id for r in records):
                raise StorageError(f"A reminder with id {record.id} already exists")
            records.append(record)
            await self.save_all(records)

    async def update(self, record: ReminderRecord) -> bool:
        """Replace the record with the same id. Returns False if absent."""
        async with self._write_lock:
            records = await self.load_all()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    await self.save_all(records)
                    return True
            return False

    async def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if it was not stored."""
        async with self._write_lock:
            records = await self.load_all()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            await self.save_all(remaining)
            return True

    async def clear(self) -> None:
        async with self._write_lock:
            await self.kv.remove(self.key)

    async def migrate_legacy(self) -> int:
        """Move records from the legacy key into the collection.

        Legacy entries use ``dateTime`` instead of ``scheduledTime`` and
        carry no category. Unreadable legacy data is logged and dropped.

        Returns:
            int: Number of records migrated
        """
        raw = await self.kv.read(self.legacy_key)
        if raw is None:
            return 0

        logger.info(f"Found legacy reminders under '{self.legacy_key}', migrating...")
        migrated = []
        try:
            for item in json.loads(raw):
                migrated.append(ReminderRecord(
                    id=item["id"],
                    message=item["message"],
                    scheduled_time=item.get("dateTime") or item["scheduledTime"],
                    notification_handle=item.get("notificationId"),
                    is_active=item.get("isActive", True),
                    category=ReminderCategory.CUSTOM,
                    created_at=item.get("createdAt") or utc_now(),
                ))
        except (ValueError, KeyError, TypeError, PydanticValidationError) as e:
            logger.warning(f"Legacy reminders could not be read and were dropped: {str(e)}")
            migrated = []

        async with self._write_lock:
            records = await self.load_all()
            known = {r.id for r in records}
            added = [r for r in migrated if r.id not in known]
            if added:
                await self.save_all(records + added)
            await self.kv.remove(self.legacy_key)

        logger.info(f"Migrated {len(added)} legacy reminder(s)")
        return len(added)


class SettingsStore:
    """AppSettings document with defaults merged under stored values."""

    def __init__(self, kv: KeyValueStore, key: str = None):
        self.kv = kv
        self.key = key or settings.SETTINGS_KEY
        self._write_lock = asyncio.Lock()

    async def get(self) -> AppSettings:
        raw = await self.kv.read(self.key)
        if raw is None:
            return AppSettings()
        try:
            return AppSettings.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Stored settings are corrupt, using defaults: {e.error_count()} error(s)")
            return AppSettings()

    async def save(self, **changes) -> AppSettings:
        """Apply a partial update and persist the merged settings."""
        async with self._write_lock:
            current = await self.get()
            updated = current.model_copy(update={k: v for k, v in changes.items() if v is not None})
            await self.kv.write(self.key, updated.model_dump_json(by_alias=True))
            return updated

    async def clear(self) -> None:
        await self.kv.remove(self.key)
