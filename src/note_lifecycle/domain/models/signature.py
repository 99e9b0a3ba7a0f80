from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class SignatureType(str, Enum):
    PRIMARY = "primary"
    CO_SIGNATURE = "co-signature"


class SignatureRequestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Signature(BaseModel):
    """A signature issued against a note.

    Signatures are never removed from a ledger. When one is superseded or
    revoked, ``is_valid`` flips to False and the invalidation fields are
    filled in together.
    """

    signature_id: str
    note_id: str
    signer_id: str
    signer_name: str
    signer_role: str
    timestamp: datetime
    signature_type: SignatureType
    is_valid: bool = True
    invalidated_reason: Optional[str] = None
    invalidated_at: Optional[datetime] = None
    invalidated_by: Optional[str] = None
    # Recorded for audit purposes only.
    ip_address: Optional[str] = None


class SignatureRequest(BaseModel):
    request_id: str
    note_id: str
    requested_by_user_id: str
    requested_by_user_name: str
    requested_to_user_id: str
    requested_to_user_name: str
    requested_at: datetime
    status: SignatureRequestStatus = SignatureRequestStatus.PENDING
    completed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    message: Optional[str] = None


class SignedNote(BaseModel):
    """Signature ledger entry for a single note."""

    note_id: str
    # Every primary signature ever issued, oldest first. Only the latest one
    # can still be valid.
    primary_signatures: List[Signature] = Field(default_factory=list)
    co_signatures: List[Signature] = Field(default_factory=list)
    locked: bool = False
    locked_at: Optional[datetime] = None
    unlocked_at: Optional[datetime] = None
    unlocked_by: Optional[str] = None
    unlocked_by_name: Optional[str] = None
    unlocked_reason: Optional[str] = None
    signature_requests: List[SignatureRequest] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def primary_signature(self) -> Optional[Signature]:
        return self.primary_signatures[-1] if self.primary_signatures else None

    def valid_co_signatures(self) -> List[Signature]:
        return [sig for sig in self.co_signatures if sig.is_valid]

    def find_signature(self, signature_id: str) -> Optional[Signature]:
        for sig in [*self.primary_signatures, *self.co_signatures]:
            if sig.signature_id == signature_id:
                return sig
        return None

    def co_signatures_of_current_primary(self) -> List[Signature]:
        """Valid co-signatures given on or after the latest valid primary.

        Co-signatures from before a re-signature endorsed earlier content and
        do not count towards the current one.
        """

        primary = self.primary_signature
        if primary is None or not primary.is_valid:
            return []
        return [sig for sig in self.valid_co_signatures() if sig.timestamp >= primary.timestamp]
