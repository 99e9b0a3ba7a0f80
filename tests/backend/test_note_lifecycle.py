import pytest

from src.note_lifecycle.domain.errors import ConcurrentModificationError, NoteLockedError
from src.note_lifecycle.domain.models.clinical_note import NoteStatus
from src.note_lifecycle.domain.models.signature import SignatureRequestStatus


def test_create_note_starts_as_draft(engine, alice):
    note = engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")

    assert note.status == NoteStatus.DRAFT
    assert note.locked is False
    assert note.revision == 1
    assert note.content == "Hello"
    assert engine.versions.get_current_version("note1").is_pristine is True
    assert engine.signatures.get_note_signatures("note1") is not None


def test_first_save_of_unknown_note_initializes_history(engine, alice):
    version = engine.save_note("note1", content="Hello", user=alice, title="Intake")

    assert version.is_pristine is True
    assert engine.get_note("note1").title == "Intake"

    second = engine.save_note("note1", content="Hello world", user=alice)
    assert second.sequence == 2
    assert second.is_pristine is False


def test_full_signing_workflow(engine, alice, bob, carol):
    # Scenario: create, sign, attempt edit, unlock, edit, re-sign, co-sign.
    engine.create_note(title="Progress", content="Hello", user=alice, note_id="note1")
    assert engine.versions.get_current_version("note1").content == "Hello"

    engine.start_editing("note1", content="Hello", title="Progress", user=alice)
    first_signature = engine.sign("note1", user=alice)
    assert engine.is_locked("note1") is True
    assert engine.get_status("note1") == NoteStatus.SIGNED

    with pytest.raises(NoteLockedError) as excinfo:
        engine.register_change("note1", content="Hello world", title="Progress", user=alice)
    assert "signed and locked" in str(excinfo.value)
    assert engine.autosave.get_auto_saved_data("note1").content == "Hello"

    assert engine.unlock("note1", user=alice, reason="typo fix") is True
    assert engine.is_locked("note1") is False
    assert engine.get_status("note1") == NoteStatus.REOPENED

    engine.save_note("note1", content="Hello world", user=alice)
    history = engine.get_history("note1")
    assert len(history) == 2
    assert history[0].content == "Hello world"

    second_signature = engine.sign("note1", user=bob)
    entry = engine.signatures.get_note_signatures("note1")
    old = entry.find_signature(first_signature.signature_id)
    assert old.is_valid is False
    assert old.invalidated_reason == "Superseded by new signature"
    assert entry.primary_signature.signature_id == second_signature.signature_id
    assert entry.primary_signature.is_valid is True
    assert engine.get_status("note1") == NoteStatus.SIGNED

    request = engine.request_co_signature("note1", user=bob, to_user_id=carol.id, to_user_name=carol.name)
    engine.co_sign("note1", user=carol)
    entry = engine.signatures.get_note_signatures("note1")
    assert entry.signature_requests[0].request_id == request.request_id
    assert entry.signature_requests[0].status == SignatureRequestStatus.COMPLETED
    assert engine.get_status("note1") == NoteStatus.CO_SIGNED
    assert engine.is_locked("note1") is True


def test_locked_note_refuses_every_content_mutation(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    pristine = engine.versions.get_current_version("note1").version_id
    engine.save_note("note1", content="Hello world", user=alice, sign=True)

    with pytest.raises(NoteLockedError):
        engine.save_note("note1", content="Changed", user=alice)
    with pytest.raises(NoteLockedError):
        engine.revert("note1", pristine, user=alice)
    with pytest.raises(NoteLockedError):
        engine.start_editing("note1", content="Changed", title="Intake", user=alice)
    with pytest.raises(NoteLockedError):
        engine.register_change("note1", content="Changed", title="Intake", user=alice)

    assert len(engine.get_history("note1")) == 2


def test_sign_on_save_writes_version_before_locking(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")

    version = engine.save_note("note1", content="Final text", user=alice, sign=True)

    note = engine.get_note("note1")
    assert note.status == NoteStatus.SIGNED
    assert note.current_version_id == version.version_id
    assert note.content == "Final text"


def test_unlock_requires_reason(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.sign("note1", user=alice)

    with pytest.raises(ValueError):
        engine.unlock("note1", user=alice, reason="   ")
    assert engine.is_locked("note1") is True


def test_unlock_of_draft_fails(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")

    assert engine.unlock("note1", user=alice, reason="why not") is False
    assert engine.get_status("note1") == NoteStatus.DRAFT


def test_revert_round_trip(engine, alice, bob):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    target = engine.versions.get_current_version("note1")
    engine.save_note("note1", content="Hello world", user=alice)

    reverted = engine.revert("note1", target.version_id, user=bob)

    assert engine.versions.get_current_version("note1").content == target.content
    assert reverted.author_id == bob.id
    assert engine.get_version("note1", target.version_id) == target
    assert engine.revert("note1", "missing", user=bob) is None


def test_stale_save_is_rejected(engine, alice, bob):
    note = engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")

    engine.save_note("note1", content="Alice edit", user=alice, expected_revision=note.revision)
    with pytest.raises(ConcurrentModificationError):
        engine.save_note("note1", content="Bob edit", user=bob, expected_revision=note.revision)

    assert engine.get_note("note1").content == "Alice edit"


def test_explicit_save_cancels_pending_autosave(engine, alice, scheduler):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.register_change("note1", content="Hello w", title="Intake", user=alice)

    engine.save_note("note1", content="Hello world", user=alice)
    scheduler.advance(5)

    history = engine.get_history("note1")
    assert [v.content for v in history] == ["Hello world", "Hello"]


def test_compare_through_controller(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    v1 = engine.versions.get_current_version("note1").version_id
    v2 = engine.save_note("note1", content="Hello world", user=alice).version_id

    diff = engine.compare("note1", v1, v2)

    assert diff.added == ["Hello world"]
    assert diff.removed == ["Hello"]


def test_status_of_unknown_note(engine):
    assert engine.get_status("missing") is None
    assert engine.get_note("missing") is None


def test_co_signature_of_draft_does_not_count_for_later_signature(engine, alice, carol, clock):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.co_sign("note1", user=carol)
    clock.advance(60)

    engine.sign("note1", user=alice)

    assert engine.get_status("note1") == NoteStatus.SIGNED


def test_re_signing_after_reopen_needs_fresh_co_signature(engine, alice, carol, clock):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.sign("note1", user=alice)
    engine.co_sign("note1", user=carol)
    assert engine.get_status("note1") == NoteStatus.CO_SIGNED

    engine.unlock("note1", user=alice, reason="add allergy")
    engine.save_note("note1", content="Hello\nAllergy: penicillin", user=alice)
    clock.advance(60)
    engine.sign("note1", user=alice)

    assert engine.get_status("note1") == NoteStatus.SIGNED

    clock.advance(60)
    engine.co_sign("note1", user=carol)
    assert engine.get_status("note1") == NoteStatus.CO_SIGNED


def test_explicit_save_is_not_overwritten_by_flush(engine, alice, scheduler):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.register_change("note1", content="Hello w", title="Intake", user=alice)

    engine.save_note("note1", content="Hello world", user=alice)

    assert engine.autosave.has_unsaved_changes("note1") is False
    engine.flush_autosave("note1")
    scheduler.advance(10)
    assert engine.get_note("note1").content == "Hello world"


def test_revert_refreshes_autosave_snapshot(engine, alice):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    pristine = engine.versions.get_current_version("note1").version_id
    engine.save_note("note1", content="Hello world", user=alice)
    engine.register_change("note1", content="Hello world!", title="Intake", user=alice)

    engine.revert("note1", pristine, user=alice)

    assert engine.autosave.get_auto_saved_data("note1").content == "Hello"
    assert engine.flush_autosave("note1") is True
    assert engine.get_note("note1").content == "Hello"


def test_late_timer_cannot_overwrite_explicit_save(engine, alice, scheduler):
    engine.create_note(title="Intake", content="Hello", user=alice, note_id="note1")
    engine.register_change("note1", content="Hello w", title="Intake", user=alice)
    first = scheduler.handles[0]
    engine.register_change("note1", content="Hello wo", title="Intake", user=alice)
    first.callback()

    engine.stop_editing("note1")
    engine.save_note("note1", content="Explicit", user=alice)
    scheduler.advance(10)

    assert engine.get_history("note1")[0].content == "Explicit"


def test_first_save_rejects_nonzero_expected_revision(engine, alice):
    with pytest.raises(ConcurrentModificationError) as excinfo:
        engine.save_note("note1", content="Hello", user=alice, expected_revision=1)

    assert excinfo.value.actual_revision == 0
    assert engine.get_note("note1") is None

    version = engine.save_note("note1", content="Hello", user=alice, expected_revision=0)
    assert version.is_pristine is True
