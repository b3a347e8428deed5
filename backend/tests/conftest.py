"""Pytest configuration and fixtures for the Uptimer test suite."""
from collections import deque
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from uptimer.database import create_db_engine, create_session_factory, init_db
from uptimer.errors import StorageError
from uptimer.schemas import AssertionConfig, HeartbeatData, MonitorConfig, MonitorState, MonitorType
from uptimer.services.engine import MonitorEngine
from uptimer.services.events import EventPublisher
from uptimer.services.heartbeat import HeartbeatRecorder
from uptimer.services.probe import Failed, FailureKind, ProbeExecutor, Responded
from uptimer.services.status_machine import StatusStateMachine
from uptimer.services.store import MonitorStore


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeStore:
    """In-memory stand-in for MonitorStore with switchable storage faults."""

    def __init__(self, monitors: Optional[List[MonitorConfig]] = None):
        self.monitors: Dict[int, MonitorConfig] = {m.id: m for m in monitors or []}
        self.status_updates: List[tuple] = []
        self.heartbeats: List[HeartbeatData] = []
        self.alerts: List[tuple] = []
        self.recipients: Dict[int, List[str]] = {}
        self.fail_status_updates = False
        self.fail_heartbeats = False

    async def get_monitor_by_id(self, monitor_id):
        return self.monitors.get(monitor_id)

    async def get_all_active_monitors(self):
        return [m for m in self.monitors.values() if m.active]

    async def get_active_monitors_for_user(self, user_id):
        return [m for m in self.monitors.values() if m.active and m.user_id == user_id]

    async def update_monitor_status(self, monitor_id, status, last_changed):
        if self.fail_status_updates:
            raise StorageError("database is locked", monitor_id=monitor_id)
        self.status_updates.append((monitor_id, status, last_changed))

    async def record_heartbeat(self, data):
        if self.fail_heartbeats:
            raise StorageError("disk full", monitor_id=data.monitor_id)
        self.heartbeats.append(data)

    async def get_notification_recipients(self, monitor):
        return self.recipients.get(monitor.id, [])

    async def record_alert(self, monitor_id, alert_type, channel, payload, success):
        self.alerts.append((monitor_id, alert_type, channel, success))

    def heartbeats_for(self, monitor_id):
        return [hb for hb in self.heartbeats if hb.monitor_id == monitor_id]


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, monitor, kind):
        self.sent.append((monitor.id, kind))


class RecordingPublisher(EventPublisher):
    def __init__(self):
        super().__init__()
        self.published = []

    async def publish(self, user_id, monitors):
        self.published.append((user_id, [m.id for m in monitors]))


class StubProbe:
    """Returns queued outcomes in order, repeating the last one."""

    def __init__(self, *outcomes):
        self.outcomes = deque(outcomes)
        self.calls = 0

    async def probe(self, monitor):
        self.calls += 1
        if len(self.outcomes) > 1:
            return self.outcomes.popleft()
        return self.outcomes[0]


class SteppingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def ok(code: int = 200, elapsed_ms: int = 150, content_type: str = "application/json") -> Responded:
    return Responded(
        code=code,
        message=f"{code} - OK" if code < 400 else f"{code} - Error",
        elapsed_ms=elapsed_ms,
        response_headers={"content-type": content_type},
        response_body='{"ok": true}',
    )


def timeout(elapsed_ms: int = 5000) -> Failed:
    return Failed(FailureKind.PROBE, "Request timeout after 5s", elapsed_ms)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def make_monitor():
    """Factory for validated monitor configs with sensible defaults."""
    def _make(**overrides) -> MonitorConfig:
        data = {
            "id": 1,
            "user_id": 7,
            "name": "api",
            "url": "https://status.example.test/health",
            "frequency": 30,
            "timeout": 5,
            "assertions": AssertionConfig(allowed_codes=[200], max_response_ms=2000),
            "alert_threshold": 3,
            "status": MonitorState.UP,
        }
        data.update(overrides)
        return MonitorConfig(**data)
    return _make


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def make_engine(fake_store, notifier, publisher, clock):
    """Build an engine over fakes; pass the probe to use for http monitors."""
    def _make(probe) -> MonitorEngine:
        executor = ProbeExecutor({MonitorType.HTTP: probe})
        return MonitorEngine(
            store=fake_store,
            executor=executor,
            state_machine=StatusStateMachine(fake_store, notifier),
            recorder=HeartbeatRecorder(fake_store),
            publisher=publisher,
            clock=clock,
        )
    return _make


@pytest.fixture
async def session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite+aiosqlite://")
    await init_db(bind=engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return MonitorStore(session_factory)
