"""Tests for the REST API using FastAPI's TestClient."""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api_server import create_app
from conftest import NOW, FakeGateway, FakeScheduler
from errors import GatewayError, GatewayErrorKind
from service import ReminderManager


def iso(delta: timedelta) -> str:
    return (NOW + delta).isoformat()


@pytest.fixture
def client(manager):
    with TestClient(create_app(manager)) as test_client:
        yield test_client


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "healthy"
    assert client.get("/health").json()["service"] == "goal_reminder_service"


def test_create_get_and_list(client):
    response = client.post("/reminders", json={
        "message": "Buy milk",
        "scheduled_time": iso(timedelta(hours=2)),
        "goal": "Groceries",
    })
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "active"
    assert created["category"] == "Custom"
    assert created["notification_handle"] == "handle-1"

    fetched = client.get(f"/reminders/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["message"] == "Buy milk"

    listed = client.get("/reminders", params={"goal": "Groceries"}).json()
    assert [r["id"] for r in listed] == [created["id"]]


def test_past_time_is_unprocessable(client, scheduler):
    response = client.post("/reminders", json={
        "message": "Too late",
        "scheduled_time": iso(timedelta(minutes=-5)),
    })
    assert response.status_code == 422
    assert scheduler.schedule_calls == 0


def test_scheduling_failure_is_conflict(store, settings_store):
    manager = ReminderManager(
        store=store,
        scheduler=FakeScheduler(fail_bodies={"Blocked"}),
        settings_store=settings_store,
        clock=lambda: NOW,
    )
    with TestClient(create_app(manager)) as client:
        response = client.post("/reminders", json={
            "message": "Blocked",
            "scheduled_time": iso(timedelta(hours=1)),
        })
    assert response.status_code == 409
    assert response.json()["kind"] == "platform_error"


def test_plan_creation_uses_fallback_without_gateway(client):
    response = client.post("/plans", json={"goal": "Learn Spanish", "timeframe": "3 weeks"})

    assert response.status_code == 201
    body = response.json()
    assert body["source"] == "fallback"
    assert body["timeframe_days"] == 21
    assert body["created_count"] == len(body["created"])
    assert body["failed_count"] == 0

    stats = client.get("/reminders/stats").json()
    assert stats["total"] == body["created_count"]
    assert stats["by_goal"] == {"Learn Spanish": body["created_count"]}


def test_plan_with_gateway_error_still_succeeds(store, settings_store):
    manager = ReminderManager(
        store=store,
        scheduler=FakeScheduler(),
        gateway=FakeGateway(error=GatewayError(GatewayErrorKind.AUTH_INVALID, "API key is invalid")),
        settings_store=settings_store,
        clock=lambda: NOW,
    )
    with TestClient(create_app(manager)) as client:
        body = client.post("/plans", json={"goal": "Run 5k"}).json()

    assert body["source"] == "fallback"
    assert body["gateway_error"] == "API key is invalid"


def test_cancel_and_status_filter(client):
    keep = client.post("/reminders", json={"message": "Keep", "scheduled_time": iso(timedelta(hours=1))}).json()
    drop = client.post("/reminders", json={"message": "Drop", "scheduled_time": iso(timedelta(hours=2))}).json()

    first = client.post(f"/reminders/{drop['id']}/cancel")
    second = client.post(f"/reminders/{drop['id']}/cancel")
    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "cancelled"

    active = client.get("/reminders", params={"status": "active"}).json()
    assert [r["id"] for r in active] == [keep["id"]]
    assert client.post("/reminders/unknown/cancel").status_code == 404


def test_delete_and_clear(client, scheduler):
    created = client.post("/reminders", json={"message": "Delete me", "scheduled_time": iso(timedelta(hours=1))}).json()

    assert client.delete(f"/reminders/{created['id']}").status_code == 200
    assert client.delete(f"/reminders/{created['id']}").status_code == 404
    assert client.get(f"/reminders/{created['id']}").status_code == 404

    client.post("/reminders", json={"message": "Another", "scheduled_time": iso(timedelta(hours=1))})
    assert client.delete("/reminders").status_code == 200
    assert client.get("/reminders").json() == []
    assert scheduler.cancel_all_calls == 1


def test_sync_endpoint(client, scheduler):
    created = client.post("/reminders", json={"message": "Resync", "scheduled_time": iso(timedelta(hours=1))}).json()
    scheduler.live.pop(created["notification_handle"])

    report = client.post("/sync").json()

    assert report["rescheduled"] == 1
    assert client.post("/sync").json()["rescheduled"] == 0


def test_settings_round_trip_masks_api_key(client):
    response = client.put("/settings", json={
        "api_key": "secret-key-1234",
        "ai_preferences": {"enabled": False},
    })
    assert response.status_code == 200
    assert response.json()["apiKey"].endswith("1234")
    assert "secret" not in response.json()["apiKey"]

    current = client.get("/settings").json()
    assert current["aiPreferences"]["enabled"] is False
    assert current["notificationPreferences"]["enabled"] is True

    assert client.post("/settings/test-ai").json() == {"connected": False}


def test_short_api_keys_are_fully_masked(client):
    body = client.put("/settings", json={"api_key": "abcd"}).json()
    assert body["apiKey"] == "****"


def test_masked_key_sent_back_keeps_stored_key(client, settings_store):
    masked = client.put("/settings", json={"api_key": "secret-key-1234"}).json()["apiKey"]

    response = client.put("/settings", json={"api_key": masked, "notification_preferences": {"enabled": False}})

    assert response.status_code == 200
    stored = asyncio.run(settings_store.get())
    assert stored.api_key == "secret-key-1234"
    assert stored.notification_preferences.enabled is False
