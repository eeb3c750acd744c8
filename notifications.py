"""Notification scheduling for Goal Reminder Service.

NotificationScheduler is the contract the reminder manager and the sync
pass depend on. DatabaseNotificationScheduler keeps pending notifications
in the database; background_worker delivers them when they fall due.
BoundedScheduler adds the NOTIFICATION_TIMEOUT bound to any scheduler.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from clock import as_utc, utc_now
from config import settings
from database import NotificationStatusEnum, ScheduledNotification
from errors import SchedulingError, SchedulingErrorKind
from logger_config import setup_logger
from timeouts import bounded

logger = setup_logger(__name__, 'notifications.log')


class NotificationScheduler(ABC):
    """Contract for anything that can fire a notification at a given time."""

    @abstractmethod
    async def schedule(self, title: str, body: str, fire_time: datetime) -> str:
        """Schedule a notification and return its handle.

        Raises:
            SchedulingError: PAST_TIME, PERMISSION_DENIED or PLATFORM_ERROR
        """

    @abstractmethod
    async def cancel(self, handle: str) -> None:
        pass

    @abstractmethod
    async def cancel_all(self) -> None:
        pass

    @abstractmethod
    async def list_scheduled(self) -> List[str]:
        """Handles of notifications that have not fired yet."""


class DatabaseNotificationScheduler(NotificationScheduler):
    """Stores notifications in scheduled_notifications until delivery.

    Args:
        session_factory: SQLAlchemy session factory
        permission_check: Optional async callable returning whether the user
            allows notifications; False makes schedule() fail with
            PERMISSION_DENIED
    """

    def __init__(self, session_factory: Callable, permission_check: Optional[Callable] = None):
        self.session_factory = session_factory
        self.permission_check = permission_check

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            logger.error(f"Notification {operation} failed: {str(e)}")
            raise SchedulingError(SchedulingErrorKind.PLATFORM_ERROR, f"Notification {operation} failed") from e

    def _schedule_sync(self, title: str, body: str, fire_time: datetime) -> str:
        db = self.session_factory()
        try:
            notification = ScheduledNotification(
                id=str(uuid.uuid4()),
                title=title,
                body=body,
                fire_at=fire_time,
                status=NotificationStatusEnum.PENDING,
                attempts=0,
                created_at=utc_now(),
            )
            db.add(notification)
            db.commit()
            return notification.id
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def schedule(self, title: str, body: str, fire_time: datetime) -> str:
        fire_time = as_utc(fire_time)
        if fire_time <= utc_now():
            raise SchedulingError(SchedulingErrorKind.PAST_TIME, "Cannot schedule a notification in the past")

        if self.permission_check is not None and not await self.permission_check():
            raise SchedulingError(SchedulingErrorKind.PERMISSION_DENIED, "Notifications are disabled")

        handle = await self._run("schedule", self._schedule_sync, title, body, fire_time)
        logger.info(f"Notification {handle} scheduled for {fire_time.isoformat()}")
        return handle

    def _set_status_sync(self, handles: Optional[List[str]], status: NotificationStatusEnum) -> int:
        db = self.session_factory()
        try:
            query = db.query(ScheduledNotification).filter(
                ScheduledNotification.status == NotificationStatusEnum.PENDING
            )
            if handles is not None:
                query = query.filter(ScheduledNotification.id.in_(handles))

            changed = 0
            for notification in query.all():
                notification.status = status
                if status == NotificationStatusEnum.DELIVERED:
                    notification.delivered_at = utc_now()
                changed += 1
            db.commit()
            return changed
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def cancel(self, handle: str) -> None:
        """Cancel a pending notification; unknown handles are ignored."""
        changed = await self._run("cancel", self._set_status_sync, [handle], NotificationStatusEnum.CANCELLED)
        if changed:
            logger.info(f"Notification cancelled: {handle}")

    async def cancel_all(self) -> None:
        changed = await self._run("cancel_all", self._set_status_sync, None, NotificationStatusEnum.CANCELLED)
        logger.info(f"Cancelled {changed} pending notification(s)")

    def _pending_sync(self, due_before: Optional[datetime]) -> List[ScheduledNotification]:
        db = self.session_factory()
        try:
            query = db.query(ScheduledNotification).filter(
                ScheduledNotification.status == NotificationStatusEnum.PENDING
            )
            if due_before is not None:
                query = query.filter(ScheduledNotification.fire_at <= due_before)
            return query.order_by(ScheduledNotification.fire_at).all()
        finally:
            db.close()

    async def list_scheduled(self) -> List[str]:
        pending = await self._run("list", self._pending_sync, None)
        return [n.id for n in pending]

    async def due_notifications(self, now: Optional[datetime] = None) -> List[ScheduledNotification]:
        """Pending notifications whose fire time has passed."""
        return await self._run("due query", self._pending_sync, as_utc(now or utc_now()))

    async def mark_delivered(self, handle: str) -> None:
        await self._run("mark_delivered", self._set_status_sync, [handle], NotificationStatusEnum.DELIVERED)

    async def mark_failed(self, handle: str) -> None:
        await self._run("mark_failed", self._set_status_sync, [handle], NotificationStatusEnum.FAILED)

    def _record_attempt_sync(self, handle: str) -> int:
        db = self.session_factory()
        try:
            notification = db.get(ScheduledNotification, handle)
            if notification is None:
                return 0
            notification.attempts = (notification.attempts or 0) + 1
            db.commit()
            return notification.attempts
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def record_attempt(self, handle: str) -> int:
        """Increment and return the delivery attempt count."""
        return await self._run("record_attempt", self._record_attempt_sync, handle)


class BoundedScheduler(NotificationScheduler):
    """Applies NOTIFICATION_TIMEOUT to every call of the wrapped scheduler."""

    def __init__(self, inner: NotificationScheduler, timeout: float = None):
        self.inner = inner
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT

    def _timed_out(self, operation: str) -> Callable[[], SchedulingError]:
        return lambda: SchedulingError(
            SchedulingErrorKind.PLATFORM_ERROR,
            f"Notification {operation} timed out after {self.timeout}s",
        )

    async def schedule(self, title: str, body: str, fire_time: datetime) -> str:
        return await bounded(self.inner.schedule(title, body, fire_time), self.timeout, self._timed_out("schedule"))

    async def cancel(self, handle: str) -> None:
        await bounded(self.inner.cancel(handle), self.timeout, self._timed_out("cancel"))

    async def cancel_all(self) -> None:
        await bounded(self.inner.cancel_all(), self.timeout, self._timed_out("cancel_all"))

    async def list_scheduled(self) -> List[str]:
        return await bounded(self.inner.list_scheduled(), self.timeout, self._timed_out("list"))
