from __future__ import annotations

import asyncio
import threading
from typing import Callable, Protocol

from src.note_lifecycle.config import settings


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay and returns a cancellable handle."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop's ``call_later``.

    Must be called from code executing on the loop (e.g., FastAPI async route
    handlers); the callback then runs on the same loop, so no extra locking is
    needed between the callback and request handlers.
    """

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ThreadTimerScheduler:
    """Scheduler backed by daemon ``threading.Timer`` objects.

    Useful when the engine is embedded in synchronous code with no event loop.
    Callbacks run on the timer thread.
    """

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


def get_scheduler_from_env() -> Scheduler:
    """Return the scheduler selected by AUTOSAVE_SCHEDULER."""

    name = (settings.autosave_scheduler or "asyncio").lower()
    if name == "thread":
        return ThreadTimerScheduler()
    return AsyncioScheduler()
