from __future__ import annotations

import logging
from typing import List, Optional
from uuid import uuid4

from src.note_lifecycle.clock import Clock, system_clock
from src.note_lifecycle.domain.errors import ConcurrentModificationError, NoteLockedError
from src.note_lifecycle.domain.models.autosave import AutoSaveSnapshot
from src.note_lifecycle.domain.models.clinical_note import ClinicalNote, NoteRecord, NoteStatus
from src.note_lifecycle.domain.models.note_version import NoteVersion, VersionDiff
from src.note_lifecycle.domain.models.signature import Signature, SignatureRequest, SignedNote
from src.note_lifecycle.domain.models.user import User
from src.note_lifecycle.infra.db.repositories import KeyValueStore
from src.note_lifecycle.services.autosave.service import AutoSaveTracker
from src.note_lifecycle.services.signatures.service import SignatureLedger
from src.note_lifecycle.services.versions.service import VersionStore

logger = logging.getLogger(__name__)

NOTE_PREFIX = "note:"


def derive_status(entry: Optional[SignedNote]) -> NoteStatus:
    """Compute a note's status from its signature ledger entry.

    The ledger's lock flag is the only source of truth; status is never
    stored on its own.
    """

    if entry is None:
        return NoteStatus.DRAFT
    if entry.locked:
        return NoteStatus.CO_SIGNED if entry.co_signatures_of_current_primary() else NoteStatus.SIGNED
    if entry.unlocked_at is not None:
        return NoteStatus.REOPENED
    return NoteStatus.DRAFT


class NoteLifecycleController:
    """Coordinates the version store, signature ledger and auto-save tracker.

    Status moves draft -> signed -> co-signed -> reopened -> signed/co-signed
    only through calls into the signature ledger. Every content mutation
    (explicit save, auto-save change, revert) is refused while the ledger
    reports the note as locked.
    """

    def __init__(
        self,
        store: KeyValueStore,
        versions: VersionStore,
        signatures: SignatureLedger,
        autosave: AutoSaveTracker,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self.versions = versions
        self.signatures = signatures
        self.autosave = autosave
        self._clock = clock

    # Notes

    def create_note(self, *, title: str, content: str, user: User, note_id: Optional[str] = None) -> ClinicalNote:
        """Create a note with its pristine version and an empty ledger entry."""

        note_id = note_id or str(uuid4())
        self.versions.initialize_history(note_id, content, user.id, user.name)
        self.signatures.initialize_note(note_id)
        record = NoteRecord(id=note_id, title=title, created_at=self._clock.now(), created_by=user.id)
        self._save_record(record)
        logger.info("Created note %s", note_id)
        return self._build_view(record)

    def get_note(self, note_id: str) -> Optional[ClinicalNote]:
        record = self._load_record(note_id)
        if record is None:
            return None
        return self._build_view(record)

    def get_status(self, note_id: str) -> Optional[NoteStatus]:
        if self._load_record(note_id) is None:
            return None
        return derive_status(self.signatures.get_note_signatures(note_id))

    def is_locked(self, note_id: str) -> bool:
        return self.signatures.is_note_locked(note_id)

    def save_note(
        self,
        note_id: str,
        *,
        content: str,
        user: User,
        title: Optional[str] = None,
        reason: Optional[str] = None,
        sign: bool = False,
        ip_address: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> NoteVersion:
        """Explicit, user-initiated save.

        The first save of an unknown note creates it with a pristine version;
        pristine versions carry no reason, and the only revision such a save
        accepts is 0. With ``sign=True`` the note is signed (and locked) after
        the version is written.
        """

        self._ensure_unlocked(note_id)

        if not self.versions.has_history(note_id):
            if expected_revision is not None and expected_revision != 0:
                raise ConcurrentModificationError(note_id, expected_revision, 0)
            self.create_note(title=title or "", content=content, user=user, note_id=note_id)
            version = self.versions.get_current_version(note_id)
        else:
            record = self._load_record(note_id)
            if record is None:
                record = NoteRecord(id=note_id, title=title or "", created_at=self._clock.now(), created_by=user.id)
                self._save_record(record)
            elif title is not None and title != record.title:
                record.title = title
                self._save_record(record)
            version_id = self.versions.add_version(
                note_id,
                content,
                user.id,
                user.name,
                reason,
                expected_revision=expected_revision,
            )
            version = self.versions.get_version(note_id, version_id)
        assert version is not None

        # The tracked snapshot now matches the committed text; a pending
        # auto-save must neither duplicate nor overwrite it.
        self.autosave.mark_saved(note_id, version.content, version.version_id, title=title)

        if sign:
            self.sign(note_id, user=user, ip_address=ip_address)

        return version

    # Versions

    def get_history(self, note_id: str) -> Optional[List[NoteVersion]]:
        return self.versions.get_history(note_id)

    def get_version(self, note_id: str, version_id: str) -> Optional[NoteVersion]:
        return self.versions.get_version(note_id, version_id)

    def revert(
        self,
        note_id: str,
        version_id: str,
        *,
        user: User,
        expected_revision: Optional[int] = None,
    ) -> Optional[NoteVersion]:
        self._ensure_unlocked(note_id)
        new_version_id = self.versions.revert_to_version(
            note_id, version_id, user.id, user.name, expected_revision=expected_revision
        )
        if new_version_id is None:
            return None
        version = self.versions.get_version(note_id, new_version_id)
        assert version is not None
        self.autosave.mark_saved(note_id, version.content, version.version_id)
        return version

    def compare(self, note_id: str, version_id_1: str, version_id_2: str) -> Optional[VersionDiff]:
        return self.versions.compare_versions(note_id, version_id_1, version_id_2)

    # Auto-save

    def start_editing(self, note_id: str, *, content: str, title: str, user: User) -> AutoSaveSnapshot:
        self._ensure_unlocked(note_id)
        if not self.autosave.start_tracking(note_id, content, title, user.id):
            raise NoteLockedError(note_id)
        snapshot = self.autosave.get_auto_saved_data(note_id)
        assert snapshot is not None
        return snapshot

    def register_change(self, note_id: str, *, content: str, title: str, user: User) -> AutoSaveSnapshot:
        self._ensure_unlocked(note_id)
        if not self.autosave.register_change(note_id, content, title, user.id):
            raise NoteLockedError(note_id)
        snapshot = self.autosave.get_auto_saved_data(note_id)
        assert snapshot is not None
        return snapshot

    def flush_autosave(self, note_id: str) -> bool:
        return self.autosave.force_save(note_id)

    def stop_editing(self, note_id: str) -> None:
        self.autosave.stop_tracking(note_id)

    # Signatures

    def sign(self, note_id: str, *, user: User, ip_address: Optional[str] = None) -> Signature:
        signature = self.signatures.sign_note(note_id, user.id, user.name, user.role.value, ip_address)
        # Signing locks the note; pending auto-saves must not land afterwards.
        self.autosave.stop_tracking(note_id)
        return signature

    def co_sign(self, note_id: str, *, user: User, ip_address: Optional[str] = None) -> Optional[Signature]:
        return self.signatures.co_sign_note(note_id, user.id, user.name, user.role.value, ip_address)

    def unlock(self, note_id: str, *, user: User, reason: str) -> bool:
        """Reopen a locked note for editing. A non-blank reason is required."""

        if not reason or not reason.strip():
            raise ValueError("A reason is required to unlock a signed note")
        return self.signatures.unlock_note(note_id, user.id, user.name, reason.strip())

    def invalidate_signature(self, note_id: str, signature_id: str, *, user: User, reason: str) -> bool:
        return self.signatures.invalidate_signature(note_id, signature_id, user.id, reason)

    def request_co_signature(
        self,
        note_id: str,
        *,
        user: User,
        to_user_id: str,
        to_user_name: str,
        message: Optional[str] = None,
    ) -> SignatureRequest:
        return self.signatures.request_co_signature(
            note_id, user.id, user.name, to_user_id, to_user_name, message
        )

    def reject_co_signature_request(self, note_id: str, request_id: str, *, user: User, reason: str) -> bool:
        return self.signatures.reject_co_signature_request(note_id, request_id, user.id, reason)

    def get_pending_requests_for_user(self, user_id: str) -> List[SignatureRequest]:
        return self.signatures.get_pending_requests_for_user(user_id)

    # Internal helpers

    def _ensure_unlocked(self, note_id: str) -> None:
        if self.signatures.is_note_locked(note_id):
            raise NoteLockedError(note_id)

    def _build_view(self, record: NoteRecord) -> ClinicalNote:
        history = self.versions.get_note_history(record.id)
        current = self.versions.get_current_version(record.id)
        entry = self.signatures.get_note_signatures(record.id)
        return ClinicalNote(
            id=record.id,
            title=record.title,
            created_at=record.created_at,
            created_by=record.created_by,
            status=derive_status(entry),
            locked=entry.locked if entry is not None else False,
            current_version_id=history.current_version_id if history is not None else None,
            revision=history.revision if history is not None else 0,
            content=current.content if current is not None else None,
        )

    @staticmethod
    def _key(note_id: str) -> str:
        return f"{NOTE_PREFIX}{note_id}"

    def _load_record(self, note_id: str) -> Optional[NoteRecord]:
        raw = self._store.get(self._key(note_id))
        if raw is None:
            return None
        return NoteRecord.model_validate_json(raw)

    def _save_record(self, record: NoteRecord) -> None:
        self._store.put(self._key(record.id), record.model_dump_json().encode("utf-8"))
