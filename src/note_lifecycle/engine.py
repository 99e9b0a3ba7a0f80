from __future__ import annotations

from typing import Optional

from src.note_lifecycle.clock import Clock, system_clock
from src.note_lifecycle.infra.db.inmemory import InMemoryKeyValueStore
from src.note_lifecycle.infra.db.repositories import KeyValueStore
from src.note_lifecycle.scheduling import Scheduler, get_scheduler_from_env
from src.note_lifecycle.services.autosave.service import AutoSaveTracker
from src.note_lifecycle.services.notes.lifecycle import NoteLifecycleController
from src.note_lifecycle.services.signatures.service import SignatureLedger
from src.note_lifecycle.services.versions.service import VersionStore


def build_note_engine(
    *,
    store: Optional[KeyValueStore] = None,
    clock: Clock = system_clock,
    scheduler: Optional[Scheduler] = None,
    debounce_seconds: Optional[float] = None,
) -> NoteLifecycleController:
    """Wire the version store, signature ledger and auto-save tracker together.

    Each call builds an isolated set of components sharing one store; the
    API builds one per process, tests build one per test.
    """

    store = store or InMemoryKeyValueStore()
    versions = VersionStore(store, clock=clock)
    signatures = SignatureLedger(store, clock=clock)
    autosave = AutoSaveTracker(
        store,
        versions,
        signatures,
        scheduler or get_scheduler_from_env(),
        clock=clock,
        debounce_seconds=debounce_seconds,
    )
    return NoteLifecycleController(store, versions, signatures, autosave, clock=clock)
