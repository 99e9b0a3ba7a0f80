from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.note_lifecycle.api.deps import get_lifecycle, require_note
from src.note_lifecycle.domain.models.autosave import AutoSaveSnapshot
from src.note_lifecycle.domain.models.user import User
from src.note_lifecycle.security import get_api_key, get_current_user
from src.note_lifecycle.services.audit.service import audit_service
from src.note_lifecycle.services.notes.lifecycle import NoteLifecycleController

router = APIRouter(
    prefix="/notes/{note_id}/autosave",
    tags=["autosave"],
    dependencies=[Depends(get_api_key)],
)


class AutoSaveChangeRequest(BaseModel):
    content: str
    title: str


class AutoSaveStatusResponse(BaseModel):
    snapshot: Optional[AutoSaveSnapshot] = None
    has_unsaved_changes: bool
    has_pending_save: bool
    current_version_id: Optional[str] = None


def _status_response(lifecycle: NoteLifecycleController, note_id: str) -> AutoSaveStatusResponse:
    current = lifecycle.versions.get_current_version(note_id)
    return AutoSaveStatusResponse(
        snapshot=lifecycle.autosave.get_auto_saved_data(note_id),
        has_unsaved_changes=lifecycle.autosave.has_unsaved_changes(note_id),
        has_pending_save=lifecycle.autosave.has_pending_save(note_id),
        current_version_id=current.version_id if current is not None else None,
    )


@router.post("/start", response_model=AutoSaveStatusResponse)
async def start_tracking(
    note_id: str,
    payload: AutoSaveChangeRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> AutoSaveStatusResponse:
    require_note(lifecycle, note_id)
    lifecycle.start_editing(note_id, content=payload.content, title=payload.title, user=current_user)
    return _status_response(lifecycle, note_id)


@router.put("", response_model=AutoSaveStatusResponse)
async def register_change(
    note_id: str,
    payload: AutoSaveChangeRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> AutoSaveStatusResponse:
    """Record the latest edit; it is promoted to a version after the debounce window."""

    require_note(lifecycle, note_id)
    lifecycle.register_change(note_id, content=payload.content, title=payload.title, user=current_user)
    return _status_response(lifecycle, note_id)


@router.post("/flush", response_model=AutoSaveStatusResponse)
async def force_save(
    note_id: str,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> AutoSaveStatusResponse:
    if not lifecycle.flush_autosave(note_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No auto-save data for this note")

    audit_service.log_event(
        action="flush_autosave",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
    )

    return _status_response(lifecycle, note_id)


@router.get("", response_model=AutoSaveStatusResponse)
async def get_auto_saved_data(
    note_id: str,
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> AutoSaveStatusResponse:
    return _status_response(lifecycle, note_id)


@router.delete("", response_model=AutoSaveStatusResponse)
async def stop_tracking(
    note_id: str,
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> AutoSaveStatusResponse:
    lifecycle.stop_editing(note_id)
    return _status_response(lifecycle, note_id)
