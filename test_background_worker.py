"""Tests for webhook delivery of due notifications."""

import asyncio
import json
from datetime import timedelta

import httpx

from background_worker import process_due_notifications
from clock import utc_now
from database import NotificationStatusEnum, ScheduledNotification
from notifications import DatabaseNotificationScheduler


def add_due_notification(session_factory, handle="due-1", body="Drink water"):
    db = session_factory()
    try:
        db.add(ScheduledNotification(
            id=handle,
            title="Reminder",
            body=body,
            fire_at=utc_now() - timedelta(minutes=1),
            status=NotificationStatusEnum.PENDING,
            attempts=0,
            created_at=utc_now() - timedelta(hours=1),
        ))
        db.commit()
    finally:
        db.close()


def load(session_factory, handle):
    db = session_factory()
    try:
        return db.get(ScheduledNotification, handle)
    finally:
        db.close()


def run_worker(session_factory, handler, **kwargs):
    scheduler = DatabaseNotificationScheduler(session_factory)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await process_due_notifications(scheduler, client, **kwargs)

    return asyncio.run(scenario())


def test_due_notification_is_delivered(session_factory):
    add_due_notification(session_factory)
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    delivered = run_worker(session_factory, handler)

    assert delivered == 1
    assert payloads[0]["notification_id"] == "due-1"
    assert payloads[0]["body"] == "Drink water"
    row = load(session_factory, "due-1")
    assert row.status == NotificationStatusEnum.DELIVERED
    assert row.attempts == 1


def test_failing_webhook_marks_notification_failed(session_factory):
    add_due_notification(session_factory)
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    delivered = run_worker(session_factory, handler, max_retries=2, backoff_base=0.0)

    assert delivered == 0
    assert len(calls) == 2
    row = load(session_factory, "due-1")
    assert row.status == NotificationStatusEnum.FAILED
    assert row.attempts == 2


def test_future_notifications_are_not_delivered(session_factory):
    scheduler = DatabaseNotificationScheduler(session_factory)
    asyncio.run(scheduler.schedule("Reminder", "Later", utc_now() + timedelta(hours=1)))

    def handler(request):
        raise AssertionError("nothing should be delivered")

    assert run_worker(session_factory, handler) == 0
