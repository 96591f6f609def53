from __future__ import annotations

import itertools
import uuid
from datetime import timedelta

from chat_sync.domain.entities.message import LocalPending, Message
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.domain.value_objects.ids import ConversationId, UserId
from chat_sync.services.message_store import MessageStore
from tests.conftest import CLIENT_ID, T0, make_message


def _pending(content: str, *, seconds: float = 0.0) -> Message:
    return Message(
        ref=LocalPending(uuid.uuid4()),
        conversation_id=ConversationId(1),
        sender_id=UserId(CLIENT_ID),
        content=content,
        message_type=MessageType.TEXT,
        created_at=T0 + timedelta(seconds=seconds),
    )


def _ids(store: MessageStore) -> list[int | None]:
    return [m.id for m in store.messages]


def test_append_same_id_twice_is_noop():
    store = MessageStore()
    assert store.append(make_message(501)) is True
    assert store.append(make_message(501)) is False
    assert _ids(store) == [501]


def test_order_is_independent_of_arrival_order():
    messages = [make_message(i) for i in (3, 1, 2, 5, 4)]
    expected = [1, 2, 3, 4, 5]
    for permutation in itertools.permutations(messages):
        store = MessageStore()
        for m in permutation:
            store.append(m)
        assert _ids(store) == expected


def test_equal_timestamps_are_ordered_by_id():
    store = MessageStore()
    store.append(make_message(20, created_at=T0))
    store.append(make_message(10, created_at=T0))
    assert _ids(store) == [10, 20]


def test_pending_sorts_after_confirmed_with_same_timestamp():
    store = MessageStore()
    pending = _pending("hi", seconds=5)
    store.append(pending)
    store.append(make_message(1, created_at=T0 + timedelta(seconds=5)))
    assert [m.is_pending for m in store.messages] == [False, True]


def test_reconcile_by_temp_key_replaces_in_place():
    store = MessageStore()
    store.append(make_message(1))
    pending = _pending("hello", seconds=10)
    store.append(pending)

    confirmed = make_message(900, sender_id=CLIENT_ID, content="hello", created_at=T0 + timedelta(seconds=10))
    assert store.reconcile(confirmed, temp_key=pending.temp_key) is True

    assert _ids(store) == [1, 900]
    assert store.pending == ()


def test_reconcile_push_echo_matches_sender_and_content():
    store = MessageStore()
    pending = _pending("hello", seconds=10)
    store.append(pending)

    echo = make_message(900, sender_id=CLIENT_ID, content="hello", created_at=T0 + timedelta(seconds=12))
    assert store.reconcile(echo) is True
    assert _ids(store) == [900]


def test_reconcile_ignores_other_sender_and_old_pending():
    store = MessageStore(reconcile_window=30)
    store.append(_pending("hello", seconds=0))

    other_sender = make_message(900, content="hello", created_at=T0 + timedelta(seconds=1))
    too_late = make_message(901, sender_id=CLIENT_ID, content="hello", created_at=T0 + timedelta(seconds=45))

    assert store.reconcile(other_sender) is False
    assert store.reconcile(too_late) is False
    assert len(store.pending) == 1


def test_reconcile_when_echo_already_stored_drops_pending():
    store = MessageStore()
    pending = _pending("hello", seconds=10)
    store.append(pending)
    store.append(make_message(900, sender_id=CLIENT_ID, content="other", created_at=T0 + timedelta(seconds=11)))

    response = make_message(900, sender_id=CLIENT_ID, content="hello", created_at=T0 + timedelta(seconds=11))
    assert store.reconcile(response, temp_key=pending.temp_key) is True
    assert _ids(store) == [900]


def test_redelivered_push_keeps_matching_pending_send():
    store = MessageStore()
    store.append(make_message(800, sender_id=CLIENT_ID, content="ok", created_at=T0))
    pending = _pending("ok", seconds=2)
    store.append(pending)

    redelivered = make_message(800, sender_id=CLIENT_ID, content="ok", created_at=T0)
    assert store.reconcile(redelivered) is False
    assert store.append(redelivered) is False
    assert [(m.id, m.is_pending) for m in store.messages] == [(800, False), (None, True)]


def test_reconcile_moves_entry_when_server_time_differs():
    store = MessageStore()
    pending = _pending("late", seconds=1)
    store.append(pending)
    store.append(make_message(5))

    confirmed = make_message(900, sender_id=CLIENT_ID, content="late", created_at=T0 + timedelta(seconds=9))
    store.reconcile(confirmed, temp_key=pending.temp_key)
    assert _ids(store) == [5, 900]


def test_merge_skips_known_ids_and_absorbs_pending():
    store = MessageStore()
    store.append(make_message(1))
    pending = _pending("hello", seconds=3)
    store.append(pending)

    page = [
        make_message(1),
        make_message(2),
        make_message(3, sender_id=CLIENT_ID, content="hello"),
    ]
    assert store.merge(page) == 2
    assert _ids(store) == [1, 2, 3]


def test_replace_all_resets_ids():
    store = MessageStore()
    store.append(make_message(1))
    store.replace_all([make_message(2), make_message(2)])
    assert _ids(store) == [2]
    assert 1 not in store
    assert store.get(2) is not None


def test_remove_pending():
    store = MessageStore()
    pending = _pending("hello")
    store.append(pending)
    assert store.remove_pending(pending.temp_key) is True
    assert store.remove_pending(pending.temp_key) is False
    assert len(store) == 0
