from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import pytest

from src.note_lifecycle.domain.models.user import User, UserRole
from src.note_lifecycle.engine import build_note_engine
from src.note_lifecycle.infra.db.inmemory import InMemoryKeyValueStore
from src.note_lifecycle.main import app


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class ManualHandle:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Deterministic scheduler: callbacks run only when time is advanced."""

    elapsed: float = 0.0
    handles: List[ManualHandle] = field(default_factory=list)

    def schedule(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(due=self.elapsed + delay, callback=callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        self.elapsed += seconds
        due = sorted((h for h in self.pending() if h.due <= self.elapsed), key=lambda h: h.due)
        for handle in due:
            handle.fired = True
            handle.callback()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def engine(store, clock, scheduler):
    return build_note_engine(store=store, clock=clock, scheduler=scheduler, debounce_seconds=5)


@pytest.fixture
def alice() -> User:
    return User(id="u1", name="Alice", role=UserRole.CLINICIAN)


@pytest.fixture
def bob() -> User:
    return User(id="u2", name="Bob", role=UserRole.CLINICIAN)


@pytest.fixture
def carol() -> User:
    return User(id="u3", name="Carol", role=UserRole.SUPERVISOR)


@pytest.fixture
def api_engine(scheduler):
    """Give the API an isolated engine driven by the manual scheduler."""

    previous = app.state.lifecycle
    app.state.lifecycle = build_note_engine(scheduler=scheduler, debounce_seconds=5)
    yield app.state.lifecycle
    app.state.lifecycle = previous
