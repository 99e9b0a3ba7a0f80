from __future__ import annotations


class NoteLifecycleError(Exception):
    """Base class for errors raised by the note lifecycle engine."""


class HistoryAlreadyInitializedError(NoteLifecycleError):
    def __init__(self, note_id: str) -> None:
        super().__init__(f"Note history already initialized for note ID: {note_id}")
        self.note_id = note_id


class HistoryNotFoundError(NoteLifecycleError):
    def __init__(self, note_id: str) -> None:
        super().__init__(f"Note history not found for note ID: {note_id}")
        self.note_id = note_id


class ConcurrentModificationError(NoteLifecycleError):
    """The note changed since the caller last read it."""

    def __init__(self, note_id: str, expected_revision: int, actual_revision: int) -> None:
        super().__init__(
            f"Note {note_id} is at revision {actual_revision}, "
            f"caller expected revision {expected_revision}"
        )
        self.note_id = note_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class NoteLockedError(NoteLifecycleError):
    def __init__(self, note_id: str) -> None:
        super().__init__("This note is signed and locked. Unlock it before making changes.")
        self.note_id = note_id
