from __future__ import annotations

from threading import RLock
from typing import List, Optional
from uuid import uuid4

from src.note_lifecycle.clock import Clock, system_clock
from src.note_lifecycle.domain.errors import (
    ConcurrentModificationError,
    HistoryAlreadyInitializedError,
    HistoryNotFoundError,
)
from src.note_lifecycle.domain.models.note_version import NoteHistory, NoteVersion, VersionDiff
from src.note_lifecycle.infra.db.repositories import KeyValueStore

HISTORY_PREFIX = "history:"


class VersionStore:
    """Append-only content history for notes.

    Every version is a full snapshot of the note body. Versions are never
    edited or removed; reverting appends a copy of an older snapshot.
    """

    def __init__(self, store: KeyValueStore, *, clock: Clock = system_clock) -> None:
        self._store = store
        self._clock = clock
        self._lock = RLock()

    def initialize_history(self, note_id: str, content: str, author_id: str, author_name: str) -> str:
        """Create the pristine first version of a note and return its id."""

        with self._lock:
            if self._load(note_id) is not None:
                raise HistoryAlreadyInitializedError(note_id)

            version = NoteVersion(
                version_id=str(uuid4()),
                note_id=note_id,
                sequence=1,
                content=content,
                timestamp=self._clock.now(),
                author_id=author_id,
                author_name=author_name,
                is_pristine=True,
            )
            history = NoteHistory(note_id=note_id, versions=[version], current_version_id=version.version_id)
            self._save(history)
            return version.version_id

    def add_version(
        self,
        note_id: str,
        content: str,
        author_id: str,
        author_name: str,
        reason: Optional[str] = None,
        *,
        expected_revision: Optional[int] = None,
    ) -> str:
        """Append a version and make it current.

        A version is created even when ``content`` equals the current one.
        When ``expected_revision`` is given it must match the number of
        versions currently stored.
        """

        with self._lock:
            history = self._load(note_id)
            if history is None:
                raise HistoryNotFoundError(note_id)
            if expected_revision is not None and expected_revision != history.revision:
                raise ConcurrentModificationError(note_id, expected_revision, history.revision)

            version = NoteVersion(
                version_id=str(uuid4()),
                note_id=note_id,
                sequence=history.revision + 1,
                content=content,
                timestamp=self._clock.now(),
                author_id=author_id,
                author_name=author_name,
                reason=reason,
            )
            history.versions.append(version)
            history.current_version_id = version.version_id
            self._save(history)
            return version.version_id

    def has_history(self, note_id: str) -> bool:
        return self._store.get(self._key(note_id)) is not None

    def get_note_history(self, note_id: str) -> Optional[NoteHistory]:
        return self._load(note_id)

    def get_history(self, note_id: str) -> Optional[List[NoteVersion]]:
        """Return all versions of a note, most recent first."""

        history = self._load(note_id)
        if history is None:
            return None
        return list(reversed(history.versions))

    def get_version(self, note_id: str, version_id: str) -> Optional[NoteVersion]:
        history = self._load(note_id)
        if history is None:
            return None
        for version in history.versions:
            if version.version_id == version_id:
                return version
        return None

    def get_current_version(self, note_id: str) -> Optional[NoteVersion]:
        history = self._load(note_id)
        if history is None:
            return None
        return self.get_version(note_id, history.current_version_id)

    def revert_to_version(
        self,
        note_id: str,
        version_id: str,
        acting_user_id: str,
        acting_user_name: str,
        *,
        expected_revision: Optional[int] = None,
    ) -> Optional[str]:
        """Append a copy of ``version_id`` as the new current version.

        Returns None when the version does not belong to the note.
        """

        with self._lock:
            target = self.get_version(note_id, version_id)
            if target is None:
                return None
            return self.add_version(
                note_id,
                target.content,
                acting_user_id,
                acting_user_name,
                f"Reverted to version from {target.timestamp.isoformat()}",
                expected_revision=expected_revision,
            )

    def compare_versions(self, note_id: str, version_id_1: str, version_id_2: str) -> Optional[VersionDiff]:
        """Line-level membership diff between two versions.

        ``added`` holds lines of the second version absent from the first and
        ``removed`` the reverse. Lines are compared by membership only, not
        aligned as a sequence, so a line that merely moved shows up in
        neither list.
        """

        first = self.get_version(note_id, version_id_1)
        second = self.get_version(note_id, version_id_2)
        if first is None or second is None:
            return None

        lines_1 = first.content.split("\n")
        lines_2 = second.content.split("\n")
        present_1 = set(lines_1)
        present_2 = set(lines_2)

        return VersionDiff(
            added=[line for line in lines_2 if line not in present_1],
            removed=[line for line in lines_1 if line not in present_2],
        )

    # Persistence helpers

    @staticmethod
    def _key(note_id: str) -> str:
        return f"{HISTORY_PREFIX}{note_id}"

    def _load(self, note_id: str) -> Optional[NoteHistory]:
        raw = self._store.get(self._key(note_id))
        if raw is None:
            return None
        return NoteHistory.model_validate_json(raw)

    def _save(self, history: NoteHistory) -> None:
        self._store.put(self._key(history.note_id), history.model_dump_json().encode("utf-8"))
