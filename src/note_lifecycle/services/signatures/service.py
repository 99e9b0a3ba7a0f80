from __future__ import annotations

from threading import RLock
from typing import List, Optional
from uuid import uuid4

from src.note_lifecycle.clock import Clock, system_clock
from src.note_lifecycle.domain.models.signature import (
    Signature,
    SignatureRequest,
    SignatureRequestStatus,
    SignatureType,
    SignedNote,
)
from src.note_lifecycle.infra.db.repositories import KeyValueStore

LEDGER_PREFIX = "ledger:"

SUPERSEDED_SIGNATURE_REASON = "Superseded by new signature"
SUPERSEDED_CO_SIGNATURE_REASON = "Superseded by new co-signature"


class SignatureLedger:
    """Primary signatures, co-signatures, co-signature requests and the lock flag.

    Nothing is ever removed from a ledger entry. Re-signing invalidates the
    earlier signature in place, and unlocking a note leaves its signatures
    untouched as historical record.
    """

    def __init__(self, store: KeyValueStore, *, clock: Clock = system_clock) -> None:
        self._store = store
        self._clock = clock
        self._lock = RLock()

    def initialize_note(self, note_id: str) -> SignedNote:
        with self._lock:
            entry = self._load(note_id)
            if entry is None:
                entry = SignedNote(note_id=note_id)
                self._save(entry)
            return entry

    def sign_note(
        self,
        note_id: str,
        user_id: str,
        user_name: str,
        user_role: str,
        ip_address: Optional[str] = None,
    ) -> Signature:
        """Add a primary signature and lock the note.

        Signing an already-signed note is a re-sign: the previous valid
        primary signature is invalidated first.
        """

        with self._lock:
            entry = self.initialize_note(note_id)
            now = self._clock.now()

            current = entry.primary_signature
            if current is not None and current.is_valid:
                self._invalidate(current, invalidated_by=user_id, reason=SUPERSEDED_SIGNATURE_REASON)

            signature = self._new_signature(
                note_id, user_id, user_name, user_role, SignatureType.PRIMARY, ip_address
            )
            entry.primary_signatures.append(signature)
            entry.locked = True
            entry.locked_at = now
            self._save(entry)
            return signature

    def co_sign_note(
        self,
        note_id: str,
        user_id: str,
        user_name: str,
        user_role: str,
        ip_address: Optional[str] = None,
    ) -> Optional[Signature]:
        """Add a co-signature. Returns None if the note has no ledger entry."""

        with self._lock:
            entry = self._load(note_id)
            if entry is None:
                return None

            for existing in entry.co_signatures:
                if existing.signer_id == user_id and existing.is_valid:
                    self._invalidate(existing, invalidated_by=user_id, reason=SUPERSEDED_CO_SIGNATURE_REASON)

            signature = self._new_signature(
                note_id, user_id, user_name, user_role, SignatureType.CO_SIGNATURE, ip_address
            )
            entry.co_signatures.append(signature)

            for request in entry.signature_requests:
                if request.requested_to_user_id == user_id and request.status == SignatureRequestStatus.PENDING:
                    request.status = SignatureRequestStatus.COMPLETED
                    request.completed_at = signature.timestamp

            self._save(entry)
            return signature

    def invalidate_signature(self, note_id: str, signature_id: str, invalidated_by: str, reason: str) -> bool:
        """Mark a primary or co-signature invalid.

        Returns False when the signature is unknown or was already invalid.
        """

        with self._lock:
            entry = self._load(note_id)
            if entry is None:
                return False
            signature = entry.find_signature(signature_id)
            if signature is None or not signature.is_valid:
                return False
            self._invalidate(signature, invalidated_by=invalidated_by, reason=reason)
            self._save(entry)
            return True

    def unlock_note(self, note_id: str, user_id: str, user_name: str, reason: str) -> bool:
        with self._lock:
            entry = self._load(note_id)
            if entry is None or not entry.locked:
                return False
            entry.locked = False
            entry.unlocked_at = self._clock.now()
            entry.unlocked_by = user_id
            entry.unlocked_by_name = user_name
            entry.unlocked_reason = reason
            self._save(entry)
            return True

    def lock_note(self, note_id: str) -> bool:
        with self._lock:
            entry = self._load(note_id)
            if entry is None:
                return False
            entry.locked = True
            entry.locked_at = self._clock.now()
            self._save(entry)
            return True

    def request_co_signature(
        self,
        note_id: str,
        from_user_id: str,
        from_user_name: str,
        to_user_id: str,
        to_user_name: str,
        message: Optional[str] = None,
    ) -> SignatureRequest:
        with self._lock:
            entry = self.initialize_note(note_id)
            request = SignatureRequest(
                request_id=str(uuid4()),
                note_id=note_id,
                requested_by_user_id=from_user_id,
                requested_by_user_name=from_user_name,
                requested_to_user_id=to_user_id,
                requested_to_user_name=to_user_name,
                requested_at=self._clock.now(),
                message=message,
            )
            entry.signature_requests.append(request)
            self._save(entry)
            return request

    def reject_co_signature_request(
        self,
        note_id: str,
        request_id: str,
        rejecting_user_id: str,
        reason: str,
    ) -> bool:
        with self._lock:
            entry = self._load(note_id)
            if entry is None:
                return False
            for request in entry.signature_requests:
                if request.request_id == request_id and request.status == SignatureRequestStatus.PENDING:
                    request.status = SignatureRequestStatus.REJECTED
                    request.rejected_at = self._clock.now()
                    request.rejected_by = rejecting_user_id
                    request.rejection_reason = reason
                    self._save(entry)
                    return True
            return False

    def is_note_locked(self, note_id: str) -> bool:
        entry = self._load(note_id)
        return entry.locked if entry is not None else False

    def get_note_signatures(self, note_id: str) -> Optional[SignedNote]:
        return self._load(note_id)

    def get_pending_requests_for_user(self, user_id: str) -> List[SignatureRequest]:
        """Collect pending co-signature requests addressed to ``user_id`` across all notes."""

        pending: List[SignatureRequest] = []
        for key in self._store.keys(LEDGER_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                continue
            entry = SignedNote.model_validate_json(raw)
            pending.extend(
                request
                for request in entry.signature_requests
                if request.requested_to_user_id == user_id and request.status == SignatureRequestStatus.PENDING
            )
        return pending

    def has_valid_co_signature(self, note_id: str, user_id: str) -> bool:
        entry = self._load(note_id)
        if entry is None:
            return False
        return any(sig.signer_id == user_id for sig in entry.valid_co_signatures())

    def has_pending_request(self, note_id: str, user_id: str) -> bool:
        entry = self._load(note_id)
        if entry is None:
            return False
        return any(
            request.requested_to_user_id == user_id and request.status == SignatureRequestStatus.PENDING
            for request in entry.signature_requests
        )

    # Internal helpers

    def _new_signature(
        self,
        note_id: str,
        user_id: str,
        user_name: str,
        user_role: str,
        signature_type: SignatureType,
        ip_address: Optional[str],
    ) -> Signature:
        return Signature(
            signature_id=str(uuid4()),
            note_id=note_id,
            signer_id=user_id,
            signer_name=user_name,
            signer_role=user_role,
            timestamp=self._clock.now(),
            signature_type=signature_type,
            ip_address=ip_address,
        )

    def _invalidate(self, signature: Signature, *, invalidated_by: str, reason: str) -> None:
        signature.is_valid = False
        signature.invalidated_reason = reason
        signature.invalidated_at = self._clock.now()
        signature.invalidated_by = invalidated_by

    @staticmethod
    def _key(note_id: str) -> str:
        return f"{LEDGER_PREFIX}{note_id}"

    def _load(self, note_id: str) -> Optional[SignedNote]:
        raw = self._store.get(self._key(note_id))
        if raw is None:
            return None
        return SignedNote.model_validate_json(raw)

    def _save(self, entry: SignedNote) -> None:
        self._store.put(self._key(entry.note_id), entry.model_dump_json().encode("utf-8"))
