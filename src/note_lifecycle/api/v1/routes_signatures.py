from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.note_lifecycle.api.deps import get_lifecycle, require_note
from src.note_lifecycle.domain.models.clinical_note import ClinicalNote
from src.note_lifecycle.domain.models.signature import Signature, SignatureRequest, SignedNote
from src.note_lifecycle.domain.models.user import User
from src.note_lifecycle.security import get_api_key, get_current_user
from src.note_lifecycle.services.audit.service import audit_service
from src.note_lifecycle.services.notes.lifecycle import NoteLifecycleController

router = APIRouter(
    tags=["signatures"],
    dependencies=[Depends(get_api_key)],
)


class SignatureResponse(BaseModel):
    signature: Signature
    note: ClinicalNote


class UnlockRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class InvalidateSignatureRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CoSignatureRequestCreate(BaseModel):
    to_user_id: str
    to_user_name: str
    message: Optional[str] = None


class RejectCoSignatureRequest(BaseModel):
    reason: str = Field(..., min_length=1)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("/notes/{note_id}/signatures", response_model=SignedNote)
async def get_note_signatures(
    note_id: str,
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignedNote:
    entry = lifecycle.signatures.get_note_signatures(note_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No signature record for this note")
    return entry


@router.post("/notes/{note_id}/sign", response_model=SignatureResponse)
async def sign_note(
    note_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignatureResponse:
    require_note(lifecycle, note_id)

    signature = lifecycle.sign(note_id, user=current_user, ip_address=_client_ip(request))

    audit_service.log_event(
        action="sign_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
        extra={"signature_id": signature.signature_id, "role": current_user.role.value},
    )

    return SignatureResponse(signature=signature, note=lifecycle.get_note(note_id))


@router.post("/notes/{note_id}/cosign", response_model=SignatureResponse)
async def co_sign_note(
    note_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignatureResponse:
    require_note(lifecycle, note_id)

    signature = lifecycle.co_sign(note_id, user=current_user, ip_address=_client_ip(request))
    if signature is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No signature record for this note")

    audit_service.log_event(
        action="co_sign_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
        extra={"signature_id": signature.signature_id, "role": current_user.role.value},
    )

    return SignatureResponse(signature=signature, note=lifecycle.get_note(note_id))


@router.post("/notes/{note_id}/unlock", response_model=ClinicalNote)
async def unlock_note(
    note_id: str,
    payload: UnlockRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> ClinicalNote:
    require_note(lifecycle, note_id)

    try:
        unlocked = lifecycle.unlock(note_id, user=current_user, reason=payload.reason)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if not unlocked:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Note is not locked")

    audit_service.log_event(
        action="unlock_note",
        resource_type="clinical_note",
        resource_id=note_id,
        user_id=current_user.id,
    )

    return lifecycle.get_note(note_id)


@router.post("/notes/{note_id}/signatures/{signature_id}/invalidate", response_model=SignedNote)
async def invalidate_signature(
    note_id: str,
    signature_id: str,
    payload: InvalidateSignatureRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignedNote:
    if not lifecycle.invalidate_signature(note_id, signature_id, user=current_user, reason=payload.reason):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No valid signature with this id")

    audit_service.log_event(
        action="invalidate_signature",
        resource_type="signature",
        resource_id=signature_id,
        user_id=current_user.id,
        extra={"note_id": note_id},
    )

    return lifecycle.signatures.get_note_signatures(note_id)


@router.post(
    "/notes/{note_id}/cosign-requests",
    response_model=SignatureRequest,
    status_code=status.HTTP_201_CREATED,
)
async def request_co_signature(
    note_id: str,
    payload: CoSignatureRequestCreate,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignatureRequest:
    require_note(lifecycle, note_id)

    signature_request = lifecycle.request_co_signature(
        note_id,
        user=current_user,
        to_user_id=payload.to_user_id,
        to_user_name=payload.to_user_name,
        message=payload.message,
    )

    audit_service.log_event(
        action="request_co_signature",
        resource_type="signature_request",
        resource_id=signature_request.request_id,
        user_id=current_user.id,
        extra={"note_id": note_id, "to_user_id": payload.to_user_id},
    )

    return signature_request


@router.post("/notes/{note_id}/cosign-requests/{request_id}/reject", response_model=SignedNote)
async def reject_co_signature_request(
    note_id: str,
    request_id: str,
    payload: RejectCoSignatureRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> SignedNote:
    if not lifecycle.reject_co_signature_request(note_id, request_id, user=current_user, reason=payload.reason):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No pending co-signature request with this id")

    audit_service.log_event(
        action="reject_co_signature_request",
        resource_type="signature_request",
        resource_id=request_id,
        user_id=current_user.id,
        extra={"note_id": note_id},
    )

    return lifecycle.signatures.get_note_signatures(note_id)


@router.get("/signature-requests/pending", response_model=List[SignatureRequest])
async def pending_requests_for_user(
    current_user: User = Depends(get_current_user),
    lifecycle: NoteLifecycleController = Depends(get_lifecycle),
) -> List[SignatureRequest]:
    return lifecycle.get_pending_requests_for_user(current_user.id)
