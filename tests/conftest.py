"""Shared fixtures: a throwaway database, a controllable clock and manual timers."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Setup environment for testing
os.environ["GAMECENTRE_DATA_DIR"] = tempfile.mkdtemp()
os.environ["GAMECENTRE_DB_PATH"] = os.path.join(os.environ["GAMECENTRE_DATA_DIR"], "test.db")

import pytest  # noqa: E402

from gamecentre.config import settings  # noqa: E402
from gamecentre.database import create_db_engine, init_db  # noqa: E402
from gamecentre.services.scheduler import as_utc  # noqa: E402
from gamecentre.services.session_service import SessionEngine  # noqa: E402
from gamecentre.services.store import RecordStore  # noqa: E402

FIXED_CODE = "123456"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = as_utc(when)

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class ManualTimers:
    """Same interface as TimerService, but callbacks only run on ``advance()``."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._timers: dict[str, tuple] = {}  # key -> (due, callback, args)

    def schedule(self, key, delay, callback, *args) -> None:
        due = self.clock.now() + timedelta(seconds=max(delay, 0.0))
        self._timers[key] = (due, callback, args)

    def schedule_at(self, key, when, callback, *args) -> None:
        self._timers[key] = (as_utc(when), callback, args)

    def cancel(self, key) -> bool:
        return self._timers.pop(key, None) is not None

    def pending(self, key) -> bool:
        return key in self._timers

    def due(self, key) -> datetime:
        return self._timers[key][0]

    @property
    def active_count(self) -> int:
        return len(self._timers)

    def shutdown(self) -> None:
        self._timers.clear()

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.clock.now() + timedelta(seconds=seconds)
        while True:
            due = sorted((when, key) for key, (when, _, _) in self._timers.items() if when <= target)
            if not due:
                break
            when, key = due[0]
            _, callback, args = self._timers.pop(key)
            if when > self.clock.now():
                self.clock.set(when)
            callback(*args)
        self.clock.set(target)


class RecordingSink:
    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def notify(self, kind, session_id, payload) -> None:
        self.events.append((kind, session_id, payload))

    def kinds(self, session_id: str | None = None) -> list[str]:
        return [k for k, sid, _ in self.events if session_id is None or sid == session_id]

    def last(self, kind: str) -> dict:
        return [p for k, _, p in self.events if k == kind][-1]


class StubPayments:
    def __init__(self, result: str = "paid"):
        self.result = result
        self.calls: list[tuple[str, str]] = []
        self.during_confirm = None  # called while the charge is in flight

    def confirm_payment(self, session_id, method) -> str:
        self.calls.append((session_id, method))
        if self.during_confirm:
            self.during_confirm(session_id)
        return self.result


@pytest.fixture
def db(tmp_path):
    bind = create_db_engine(tmp_path / "gamecentre.db", echo=False)
    init_db(bind)
    yield bind
    bind.dispose()


@pytest.fixture
def store(db):
    return RecordStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers(clock):
    return ManualTimers(clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def payments():
    return StubPayments()


@pytest.fixture
def engine(store, timers, sink, payments, clock):
    sessions = SessionEngine(
        store=store,
        timers=timers,
        notifier=sink,
        payments=payments,
        clock=clock,
        warning_seconds=300,
        auto_reject_expired=True,
        code_expire_seconds=300,
        max_attempts=3,
    )
    sessions.devices.provision(settings.devices)
    return sessions


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr("gamecentre.services.code_issuer.generate_code", lambda: FIXED_CODE)
    return FIXED_CODE


@pytest.fixture
def book(engine):
    """Create a pending session with sensible defaults."""

    def _book(device_id="CONSOLE-01", duration_minutes=30, **kwargs):
        kwargs.setdefault("name", "A")
        kwargs.setdefault("phone", "5551234567")
        return engine.request(device_id=device_id, duration_minutes=duration_minutes, **kwargs)

    return _book


@pytest.fixture
def restart(engine, clock, sink, payments):
    """Build a fresh engine over the same store, as after a process restart."""

    def _restart():
        return SessionEngine(
            store=engine.store,
            timers=ManualTimers(clock),
            notifier=sink,
            payments=payments,
            clock=clock,
            code_expire_seconds=300,
            max_attempts=3,
        )

    return _restart
