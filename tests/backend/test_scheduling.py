import asyncio
import threading

from src.note_lifecycle.config import settings
from src.note_lifecycle.scheduling import AsyncioScheduler, ThreadTimerScheduler, get_scheduler_from_env


async def test_asyncio_scheduler_runs_and_cancels():
    scheduler = AsyncioScheduler()
    fired = []

    scheduler.schedule(0.01, lambda: fired.append("kept"))
    cancelled = scheduler.schedule(0.01, lambda: fired.append("cancelled"))
    cancelled.cancel()

    await asyncio.sleep(0.05)
    assert fired == ["kept"]


def test_thread_timer_scheduler_runs_callback():
    done = threading.Event()

    ThreadTimerScheduler().schedule(0.01, done.set)

    assert done.wait(timeout=2)


def test_scheduler_selected_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "autosave_scheduler", "thread")
    assert isinstance(get_scheduler_from_env(), ThreadTimerScheduler)

    monkeypatch.setattr(settings, "autosave_scheduler", "asyncio")
    assert isinstance(get_scheduler_from_env(), AsyncioScheduler)
