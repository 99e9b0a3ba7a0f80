from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.note_lifecycle.api.deps import get_lifecycle, require_note
from src.note_lifecycle.domain.models.clinical_note import ClinicalNote
from src.note_lifecycle.domain.models.note_version import NoteVersion, VersionDiff
from src.note_lifecycle.domain.models.user import User
from src.note_lifecycle.security import get_api_key, get_current_user
from src.note_lifecycle.services.audit.service import audit_service
from src.note_lifecycle.services.notes.lifecycle import NoteLifecycleController

router = APIRouter(
    prefix="/notes",
    tags=["notes"],
    dependencies=[Depends(get_api_key)],
)


class NoteCreateRequest(BaseModel):
    title: str
    content: str
    # Optional caller-chosen identifier; generated when omitted.
    id: Optional[str] = None


class NoteSaveRequest(BaseModel):
    content: str
    title: Optional[str] = None
    reason: Optional[str] = None
    sign: bool = False
    # Revision the caller last observed; the save is rejected with 409 when
    # the note has moved on since.
    expected_revision: Optional[int] = None


class NoteSaveResponse(BaseModel):
    version: NoteVersion
    note: ClinicalNote


class RevertRequest(BaseModel):
    expected_revision: Optional[int] = None


@router.post("/", response_model=ClinicalNote, status_code=status.HTTP_201_CREATED)
async def create_note(
    payload: NoteCreateRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> ClinicalNote:
    if payload.id is not None and lifecycle.get_note(payload.id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Note already exists")

    note = lifecycle.create_note(title=payload.title, content=payload.content, user=current_user, note_id=payload.id)

    audit_service.log_event(
        action="create_note",
        resource_type="clinical_note",
        resource_id=note.id,
        user_id=current_user.id,
    )

    return note


@router.get("/{note_id}", response_model=ClinicalNote)
async def get_note(
    note_id: str,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> ClinicalNote:
    note = lifecycle.get_note(note_id)
    if note is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")

    audit_service.log_event(
        action="get_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
    )

    return note


@router.post("/{note_id}/versions", response_model=NoteSaveResponse, status_code=status.HTTP_201_CREATED)
async def save_note(
    note_id: str,
    payload: NoteSaveRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> NoteSaveResponse:
    """Commit an explicit save; the first save of an unknown note creates it."""

    version = lifecycle.save_note(
        note_id,
        content=payload.content,
        user=current_user,
        title=payload.title,
        reason=payload.reason,
        sign=payload.sign,
        ip_address=request.client.host if request.client else None,
        expected_revision=payload.expected_revision,
    )

    audit_service.log_event(
        action="save_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
        extra={"version_id": version.version_id, "sequence": version.sequence, "sign": payload.sign},
    )

    return NoteSaveResponse(version=version, note=lifecycle.get_note(note_id))


@router.get("/{note_id}/versions", response_model=List[NoteVersion])
async def get_history(
    note_id: str,
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> List[NoteVersion]:
    history = lifecycle.get_history(note_id)
    if history is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note history not found")
    return history


@router.get("/{note_id}/versions/compare", response_model=VersionDiff)
async def compare_versions(
    note_id: str,
    a: str = Query(..., description="Base version id"),
    b: str = Query(..., description="Version id compared against the base"),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> VersionDiff:
    diff = lifecycle.compare(note_id, a, b)
    if diff is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Version not found")
    return diff


@router.get("/{note_id}/versions/{version_id}", response_model=NoteVersion)
async def get_version(
    note_id: str,
    version_id: str,
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> NoteVersion:
    version = lifecycle.get_version(note_id, version_id)
    if version is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Version not found")
    return version


@router.post("/{note_id}/versions/{version_id}/revert", response_model=NoteVersion, status_code=status.HTTP_201_CREATED)
async def revert_to_version(
    note_id: str,
    version_id: str,
    payload: Optional[RevertRequest] = None,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> NoteVersion:
    require_note(lifecycle, note_id)

    version = lifecycle.revert(
        note_id,
        version_id,
        user=current_user,
        expected_revision=payload.expected_revision if payload else None,
    )
    if version is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Version not found")

    audit_service.log_event(
        action="revert_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
        extra={"reverted_from": version_id, "version_id": version.version_id},
    )

    return version
