import pytest

from src.note_lifecycle.domain.errors import (
    ConcurrentModificationError,
    HistoryAlreadyInitializedError,
    HistoryNotFoundError,
)
from src.note_lifecycle.services.versions.service import VersionStore


@pytest.fixture
def versions(store, clock) -> VersionStore:
    return VersionStore(store, clock=clock)


def test_initialize_history_creates_pristine_version(versions):
    version_id = versions.initialize_history("note1", "Hello", "u1", "Alice")

    current = versions.get_current_version("note1")
    assert current is not None
    assert current.version_id == version_id
    assert current.content == "Hello"
    assert current.is_pristine is True
    assert current.sequence == 1
    assert current.author_name == "Alice"


def test_initialize_history_twice_is_an_error(versions):
    versions.initialize_history("note1", "Hello", "u1", "Alice")

    with pytest.raises(HistoryAlreadyInitializedError):
        versions.initialize_history("note1", "Other", "u1", "Alice")

    # The original history is untouched.
    assert versions.get_current_version("note1").content == "Hello"


def test_add_version_requires_history(versions):
    with pytest.raises(HistoryNotFoundError):
        versions.add_version("missing", "text", "u1", "Alice")


def test_history_is_append_only_and_newest_first(versions, clock):
    first = versions.initialize_history("note1", "Hello", "u1", "Alice")
    before = versions.get_history("note1")

    clock.advance(60)
    second = versions.add_version("note1", "Hello world", "u2", "Bob", "typo fix")
    after = versions.get_history("note1")

    assert [v.version_id for v in after] == [second, first]
    # Every earlier version is still there, unchanged.
    assert after[1:] == before
    assert after[0].reason == "typo fix"
    assert after[0].is_pristine is False
    assert after[0].timestamp > after[1].timestamp


def test_no_op_save_still_creates_version(versions):
    versions.initialize_history("note1", "Hello", "u1", "Alice")
    versions.add_version("note1", "Hello", "u1", "Alice")

    assert len(versions.get_history("note1")) == 2


def test_reads_on_unknown_note_return_none(versions):
    assert versions.get_history("missing") is None
    assert versions.get_current_version("missing") is None
    assert versions.get_version("missing", "v") is None
    assert versions.get_note_history("missing") is None


def test_revert_appends_copy_of_target(versions, clock):
    original = versions.initialize_history("note1", "Hello", "u1", "Alice")
    clock.advance(30)
    versions.add_version("note1", "Hello world", "u1", "Alice")
    original_before = versions.get_version("note1", original)

    clock.advance(30)
    reverted = versions.revert_to_version("note1", original, "u2", "Bob")

    assert reverted is not None
    current = versions.get_current_version("note1")
    assert current.version_id == reverted
    assert current.content == "Hello"
    assert current.author_id == "u2"
    assert current.reason == f"Reverted to version from {original_before.timestamp.isoformat()}"
    assert versions.get_version("note1", original) == original_before
    assert len(versions.get_history("note1")) == 3


def test_revert_to_version_of_other_note_returns_none(versions):
    versions.initialize_history("note1", "Hello", "u1", "Alice")
    other = versions.initialize_history("note2", "Other", "u1", "Alice")

    assert versions.revert_to_version("note1", other, "u1", "Alice") is None
    assert len(versions.get_history("note1")) == 1


def test_expected_revision_mismatch_is_rejected(versions):
    versions.initialize_history("note1", "Hello", "u1", "Alice")
    versions.add_version("note1", "Hello again", "u1", "Alice", expected_revision=1)

    with pytest.raises(ConcurrentModificationError) as excinfo:
        versions.add_version("note1", "Stale edit", "u2", "Bob", expected_revision=1)

    assert excinfo.value.actual_revision == 2
    assert versions.get_current_version("note1").content == "Hello again"


def test_compare_versions_is_line_based(versions):
    v1 = versions.initialize_history("note1", "Hello", "u1", "Alice")
    v2 = versions.add_version("note1", "Hello world", "u1", "Alice")

    diff = versions.compare_versions("note1", v1, v2)

    assert diff.added == ["Hello world"]
    assert diff.removed == ["Hello"]


def test_compare_versions_ignores_moved_lines_and_is_symmetric(versions):
    a = versions.initialize_history("note1", "alpha\nbeta\ngamma", "u1", "Alice")
    b = versions.add_version("note1", "gamma\nalpha\ndelta", "u1", "Alice")

    forward = versions.compare_versions("note1", a, b)
    backward = versions.compare_versions("note1", b, a)

    assert forward.added == ["delta"]
    assert forward.removed == ["beta"]
    assert forward.added == backward.removed
    assert forward.removed == backward.added


def test_compare_with_unknown_version_returns_none(versions):
    v1 = versions.initialize_history("note1", "Hello", "u1", "Alice")

    assert versions.compare_versions("note1", v1, "nope") is None
