from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.note_lifecycle.services.notes.lifecycle import NoteLifecycleController


def get_lifecycle(request: Request) -> NoteLifecycleController:
    """Return the process-wide lifecycle controller built at app creation."""

    return request.app.state.lifecycle


def require_note(lifecycle: NoteLifecycleController, note_id: str) -> None:
    if lifecycle.get_note(note_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
