from __future__ import annotations

import itertools
import logging
from threading import RLock
from typing import Dict, NamedTuple, Optional

from src.note_lifecycle.clock import Clock, system_clock
from src.note_lifecycle.config import settings
from src.note_lifecycle.domain.models.autosave import AutoSaveSnapshot
from src.note_lifecycle.infra.db.repositories import KeyValueStore
from src.note_lifecycle.scheduling import ScheduledHandle, Scheduler
from src.note_lifecycle.services.signatures.service import SignatureLedger
from src.note_lifecycle.services.versions.service import VersionStore

logger = logging.getLogger(__name__)

AUTOSAVE_PREFIX = "autosave:"
AUTOSAVE_REASON = "Auto-saved"
AUTOSAVE_AUTHOR_NAME = "Auto-save"


class _PendingSave(NamedTuple):
    token: int
    handle: ScheduledHandle


class AutoSaveTracker:
    """Debounced auto-save of in-progress note edits.

    One snapshot is kept per tracked note. Every registered change replaces
    the snapshot and restarts the note's debounce timer, so only the last
    change in a burst is promoted into the version history. Locked notes are
    never tracked. Auto-save is best-effort: failures are logged and never
    reach the editor.
    """

    def __init__(
        self,
        store: KeyValueStore,
        versions: VersionStore,
        signatures: SignatureLedger,
        scheduler: Scheduler,
        *,
        clock: Clock = system_clock,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self._store = store
        self._versions = versions
        self._signatures = signatures
        self._scheduler = scheduler
        self._clock = clock
        self._debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.autosave_debounce_seconds
        )
        # Only the timer whose token is stored here may save; a callback that
        # fires after being replaced or cancelled finds a different token.
        self._timers: Dict[str, _PendingSave] = {}
        self._tokens = itertools.count(1)
        self._lock = RLock()

    @property
    def debounce_seconds(self) -> float:
        return self._debounce_seconds

    def start_tracking(self, note_id: str, initial_content: str, initial_title: str, user_id: str) -> bool:
        """Establish the initial snapshot. Returns False if the note is locked."""

        if self._signatures.is_note_locked(note_id):
            logger.debug("Not tracking locked note %s", note_id)
            return False

        with self._lock:
            self._save(
                AutoSaveSnapshot(
                    note_id=note_id,
                    content=initial_content,
                    title=initial_title,
                    saved_at=self._clock.now(),
                    author_id=user_id,
                )
            )
        return True

    def register_change(self, note_id: str, content: str, title: str, user_id: str) -> bool:
        """Record the latest edit and restart the debounce timer.

        Returns False, leaving the snapshot untouched, if the note is locked.
        """

        if self._signatures.is_note_locked(note_id):
            logger.debug("Ignoring change to locked note %s", note_id)
            return False

        with self._lock:
            previous = self._load(note_id)
            self._save(
                AutoSaveSnapshot(
                    note_id=note_id,
                    content=content,
                    title=title,
                    saved_at=self._clock.now(),
                    author_id=user_id,
                    last_promoted_version_id=previous.last_promoted_version_id if previous else None,
                )
            )
            self._cancel_timer(note_id)
            token = next(self._tokens)
            handle = self._scheduler.schedule(
                self._debounce_seconds,
                lambda: self._on_timer(note_id, token),
            )
            self._timers[note_id] = _PendingSave(token, handle)
        return True

    def perform_auto_save(self, note_id: str) -> None:
        """Promote the tracked snapshot into a version if its content changed."""

        with self._lock:
            snapshot = self._load(note_id)
            if snapshot is None:
                return

            try:
                current = self._versions.get_current_version(note_id)
                if self._signatures.is_note_locked(note_id):
                    logger.info("Auto-save skipped for note %s: note was locked", note_id)
                elif current is None:
                    logger.warning("Auto-save skipped for note %s: no version history", note_id)
                elif current.content != snapshot.content:
                    version_id = self._versions.add_version(
                        note_id,
                        snapshot.content,
                        snapshot.author_id,
                        AUTOSAVE_AUTHOR_NAME,
                        AUTOSAVE_REASON,
                    )
                    snapshot.last_promoted_version_id = version_id
                    logger.info("Auto-saved note %s as version %s", note_id, version_id)

                snapshot.saved_at = self._clock.now()
                self._save(snapshot)
            except Exception:
                logger.exception("Error during auto-save of note %s", note_id)

    def force_save(self, note_id: str) -> bool:
        """Save the tracked snapshot now. Returns False if nothing is tracked."""

        with self._lock:
            if self._load(note_id) is None:
                return False
            self._cancel_timer(note_id)
            self.perform_auto_save(note_id)
        return True

    def mark_saved(self, note_id: str, content: str, version_id: str, title: Optional[str] = None) -> None:
        """Align the snapshot with an explicitly committed version.

        Cancels the pending auto-save. An existing snapshot takes the
        committed content so it is no longer reported as unsaved and a later
        flush cannot write the older draft back over the commit.
        """

        with self._lock:
            self._cancel_timer(note_id)
            snapshot = self._load(note_id)
            if snapshot is None:
                return
            snapshot.content = content
            if title is not None:
                snapshot.title = title
            snapshot.last_promoted_version_id = version_id
            snapshot.saved_at = self._clock.now()
            self._save(snapshot)

    def has_unsaved_changes(self, note_id: str) -> bool:
        snapshot = self._load(note_id)
        if snapshot is None:
            return False
        current = self._versions.get_current_version(note_id)
        if current is None:
            return True
        return current.content != snapshot.content

    def stop_tracking(self, note_id: str) -> None:
        """Cancel any pending auto-save. The snapshot is kept for recovery."""

        with self._lock:
            self._cancel_timer(note_id)

    def has_pending_save(self, note_id: str) -> bool:
        """True while a debounced auto-save is scheduled for the note."""

        with self._lock:
            return note_id in self._timers

    def get_auto_saved_data(self, note_id: str) -> Optional[AutoSaveSnapshot]:
        return self._load(note_id)

    # Internal helpers

    def _on_timer(self, note_id: str, token: int) -> None:
        with self._lock:
            pending = self._timers.get(note_id)
            if pending is None or pending.token != token:
                logger.debug("Ignoring superseded auto-save timer for note %s", note_id)
                return
            del self._timers[note_id]
            self.perform_auto_save(note_id)

    def _cancel_timer(self, note_id: str) -> None:
        pending = self._timers.pop(note_id, None)
        if pending is not None:
            pending.handle.cancel()

    @staticmethod
    def _key(note_id: str) -> str:
        return f"{AUTOSAVE_PREFIX}{note_id}"

    def _load(self, note_id: str) -> Optional[AutoSaveSnapshot]:
        raw = self._store.get(self._key(note_id))
        if raw is None:
            return None
        return AutoSaveSnapshot.model_validate_json(raw)

    def _save(self, snapshot: AutoSaveSnapshot) -> None:
        self._store.put(self._key(snapshot.note_id), snapshot.model_dump_json().encode("utf-8"))
