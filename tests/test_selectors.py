from __future__ import annotations

from chatcore.engine import selectors as sel
from chatcore.engine.store import SessionStore
from chatcore.shared.models.message import Message, MessageRole
from chatcore.shared.models.settings import Provider

VALID_KEY = "AIza" + "k" * 35


def _store_with_messages(*contents: str) -> tuple[SessionStore, str]:
    store = SessionStore()
    sid = store.create_session()
    for text in contents:
        store.add_message(Message(role=MessageRole.USER, content=text))
    return store, sid


def test_fixed_selectors_on_empty_store() -> None:
    snap = SessionStore().snapshot()

    assert sel.select_session_count(snap) == 0
    assert sel.select_current_session(snap) is None
    assert sel.select_has_messages(snap) is False
    assert sel.select_message_count(snap) == 0
    assert sel.select_last_message(snap) is None
    assert sel.select_is_app_ready(snap) is False
    assert sel.select_is_api_key_set(snap) is False
    assert sel.select_endpoint_url(snap) == "http://localhost:11434"
    assert sel.select_default_provider(snap) is Provider.LOCAL
    assert sel.select_use_swarm(snap) is False


def test_fixed_selectors_reflect_state() -> None:
    store, sid = _store_with_messages("one", "two")
    store.update_settings({"api_key": VALID_KEY, "use_swarm_mode": True})
    snap = store.snapshot()

    assert sel.select_current_session_id(snap) == sid
    assert sel.select_current_session(snap).session_id == sid
    assert sel.select_message_count(snap) == 2
    assert sel.select_last_message(snap).content == "two"
    assert sel.select_is_app_ready(snap) is True
    assert sel.select_is_api_key_set(snap) is True
    assert sel.select_api_key(snap) == VALID_KEY
    assert sel.select_use_swarm(snap) is True


def test_repeated_reads_of_unchanged_snapshot_return_same_reference() -> None:
    store, _ = _store_with_messages("hello")
    snap = store.snapshot()

    assert sel.select_sessions(snap) is sel.select_sessions(snap)
    assert sel.select_current_messages(snap) is sel.select_current_messages(snap)
    assert sel.select_settings(snap) is sel.select_settings(snap)
    assert sel.select_session_metadata(snap) is sel.select_session_metadata(snap)
    assert sel.select_api_config_status(snap) is sel.select_api_config_status(snap)
    assert sel.select_runtime_settings(snap) is sel.select_runtime_settings(snap)


def test_unrelated_mutation_keeps_slice_references() -> None:
    store = SessionStore()
    a = store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="in a"))
    before = store.snapshot()

    store.create_session()
    store.update_settings({"use_swarm_mode": True})
    after = store.snapshot()

    by_a = sel.select_messages_by_session_id(a)
    assert by_a(after) is by_a(before)
    assert sel.select_session_by_id(a)(after) is sel.select_session_by_id(a)(before)
    assert sel.select_current_messages(after) is not sel.select_current_messages(before)


def test_settings_reference_stable_across_session_changes() -> None:
    store = SessionStore()
    before = store.snapshot()
    store.create_session()

    assert sel.select_settings(store.snapshot()) is sel.select_settings(before)


def test_parameterized_factories_are_cached() -> None:
    assert sel.select_session_by_id("x") is sel.select_session_by_id("x")
    assert sel.select_message_count_by_session_id("x") is sel.select_message_count_by_session_id("x")
    assert sel.select_session_by_id("x") is not sel.select_session_by_id("y")


def test_parameterized_selectors_per_session() -> None:
    store = SessionStore()
    a = store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="first"))
    b = store.create_session()
    snap = store.snapshot()

    assert sel.select_message_count_by_session_id(a)(snap) == 1
    assert sel.select_message_count_by_session_id(b)(snap) == 0
    assert sel.select_session_has_messages(a)(snap) is True
    assert sel.select_session_has_messages(b)(snap) is False
    assert sel.select_last_message_by_session_id(a)(snap).content == "first"
    assert sel.select_last_message_by_session_id("missing")(snap) is None
    assert sel.select_session_by_id("missing")(snap) is None


def test_metadata_recomputed_only_for_new_snapshot() -> None:
    store, sid = _store_with_messages("hi")
    first = sel.select_session_metadata(store.snapshot())

    store.update_last_message(" there")
    second = sel.select_session_metadata(store.snapshot())

    assert first is not second
    assert first == second
    assert second == {
        "total_sessions": 1,
        "current_session_id": sid,
        "has_current_session": True,
        "has_messages": True,
        "message_count": 1,
    }


def test_api_config_status() -> None:
    snap = SessionStore().snapshot()
    assert sel.select_api_config_status(snap) == {
        "has_api_key": False,
        "endpoint_url": "http://localhost:11434",
        "is_configured": True,
    }


def test_watch_fires_only_on_value_change() -> None:
    store = SessionStore()
    seen = []
    unwatch = sel.watch(store, sel.select_session_count, lambda new, old: seen.append((new, old)))

    store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="no count change"))
    store.update_last_message(" more")
    store.create_session()
    unwatch()
    store.create_session()

    assert seen == [(1, 0), (2, 1)]


def test_watch_per_session_ignores_other_sessions() -> None:
    store = SessionStore()
    a = store.create_session()
    seen = []
    sel.watch(store, sel.select_messages_by_session_id(a), lambda new, old: seen.append(len(new)))

    store.create_session()
    store.add_message(Message(role=MessageRole.USER, content="in b"))
    store.add_message(Message(role=MessageRole.USER, content="in a"), session_id=a)

    assert seen == [1]
