"""Shared fixtures: in-memory database, stores and a fake notification scheduler."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from crud import KeyValueStore, ReminderStore, SettingsStore
from database import init_db, make_engine, make_session_factory
from errors import GatewayError, SchedulingError, SchedulingErrorKind
from notifications import NotificationScheduler
from schemas import GoalAnalysis
from service import ReminderManager

NOW = datetime(2026, 10, 18, 10, 30, tzinfo=timezone.utc)


class FakeScheduler(NotificationScheduler):
    """Records calls; fails for bodies listed in ``fail_bodies``."""

    def __init__(self, fail_bodies=(), fail_cancel: bool = False):
        self.live: Dict[str, tuple] = {}
        self.schedule_calls = 0
        self.cancelled: List[str] = []
        self.cancel_all_calls = 0
        self.fail_bodies = set(fail_bodies)
        self.fail_cancel = fail_cancel

    async def schedule(self, title, body, fire_time):
        self.schedule_calls += 1
        if body in self.fail_bodies:
            raise SchedulingError(SchedulingErrorKind.PLATFORM_ERROR, f"cannot schedule '{body}'")
        handle = f"handle-{self.schedule_calls}"
        self.live[handle] = (title, body, fire_time)
        return handle

    async def cancel(self, handle):
        if self.fail_cancel:
            raise SchedulingError(SchedulingErrorKind.PLATFORM_ERROR, "cancel failed")
        self.cancelled.append(handle)
        self.live.pop(handle, None)

    async def cancel_all(self):
        self.cancel_all_calls += 1
        self.live.clear()

    async def list_scheduled(self):
        return list(self.live)


class FakeGateway:
    """Returns a fixed analysis, or raises the given GatewayError."""

    def __init__(self, analysis: Optional[GoalAnalysis] = None, error: Optional[GatewayError] = None):
        self.analysis = analysis
        self.error = error
        self.calls = []

    async def request_candidates(self, goal, timeframe_hint=None, api_key=None):
        self.calls.append((goal, timeframe_hint, api_key))
        if self.error:
            raise self.error
        return self.analysis


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def kv(session_factory):
    return KeyValueStore(session_factory, timeout=5.0)


@pytest.fixture
def store(kv):
    return ReminderStore(kv, key="motivations", legacy_key="reminders")


@pytest.fixture
def settings_store(kv):
    return SettingsStore(kv, key="app_settings")


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def manager(store, scheduler, settings_store):
    return ReminderManager(
        store=store,
        scheduler=scheduler,
        gateway=None,
        settings_store=settings_store,
        clock=lambda: NOW,
    )
