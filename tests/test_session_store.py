"""
Tests for the session store.
"""

import pytest

from darija_tutor.orchestrator import Message, Session, SessionStore
from darija_tutor.orchestrator.schemas import DEFAULT_SESSION_TITLE


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


def test_create_session_prepends_and_activates(store: SessionStore) -> None:
    first = store.create_session()
    second = store.create_session()

    assert first.title == DEFAULT_SESSION_TITLE
    assert first.messages == []
    assert [s.id for s in store.stored_sessions()] == [second.id, first.id]
    assert store.current_session_id == second.id


def test_ids_are_unique_under_rapid_creation(store: SessionStore) -> None:
    ids = {store.create_session().id for _ in range(200)}
    assert len(ids) == 200


def test_select_unknown_session_is_ignored(store: SessionStore) -> None:
    session = store.create_session()
    store.select_session("missing")
    assert store.current_session_id == session.id


def test_update_missing_session_is_noop(store: SessionStore) -> None:
    store.create_session()
    assert store.update_session(Session(id="ghost")) is False
    assert len(store) == 1


def test_modify_session_addresses_by_id(store: SessionStore) -> None:
    session = store.create_session()
    message = Message.from_user_text("Salam")

    updated = store.modify_session(session.id, lambda s: s.with_message(message))

    assert updated is not None
    assert store.get_session(session.id).messages == [message]
    assert updated.updated_at >= session.updated_at


def test_modify_missing_session_returns_none(store: SessionStore) -> None:
    assert store.modify_session("ghost", lambda s: s) is None


def test_readers_get_copies(store: SessionStore) -> None:
    session = store.create_session()
    copy = store.get_session(session.id)
    copy.title = "Changed locally"

    assert store.get_session(session.id).title == DEFAULT_SESSION_TITLE


def test_delete_active_session_clears_pointer(store: SessionStore) -> None:
    session = store.create_session()

    assert store.delete_session(session.id) is True
    assert store.current_session_id is None
    assert store.current_session() is None


def test_delete_other_session_keeps_pointer(store: SessionStore) -> None:
    other = store.create_session()
    active = store.create_session()

    store.delete_session(other.id)

    assert store.current_session_id == active.id
    assert len(store) == 1


def test_delete_missing_session_is_noop(store: SessionStore) -> None:
    store.create_session()
    assert store.delete_session("ghost") is False
    assert len(store) == 1


def test_list_sessions_sorts_by_activity_without_reordering_storage(store: SessionStore) -> None:
    older = store.create_session()
    newer = store.create_session()
    store.modify_session(older.id, lambda s: s.model_copy(update={"updated_at": newer.updated_at + 1000}))

    assert [s.id for s in store.list_sessions()] == [older.id, newer.id]
    assert [s.id for s in store.stored_sessions()] == [newer.id, older.id]


def test_on_change_receives_every_mutation() -> None:
    snapshots: list[list[Session]] = []
    store = SessionStore(on_change=snapshots.append)

    session = store.create_session()
    store.modify_session(session.id, lambda s: s.with_message(Message.from_user_text("hi")))
    store.delete_session(session.id)

    assert [len(s) for s in snapshots] == [1, 1, 0]
    assert len(snapshots[1][0].messages) == 1


def test_duplicate_ids_dropped_on_load() -> None:
    store = SessionStore([Session(id="a", title="one"), Session(id="a", title="two")])
    assert len(store) == 1
    assert store.get_session("a").title == "one"


def test_persistence_failure_does_not_undo_mutation() -> None:
    def failing_write(sessions: list[Session]) -> None:
        raise OSError("disk I/O error")

    store = SessionStore(on_change=failing_write)
    session = store.create_session()
    store.modify_session(session.id, lambda s: s.with_message(Message.from_user_text("Salam")))

    assert store.current_session_id == session.id
    assert len(store.get_session(session.id).messages) == 1
