import time

import pytest

from prose_core.domain.exceptions import ConversationNotFoundError
from prose_core.domain.models import ChatMessage
from prose_core.infrastructure.storage.memory_store import ConversationSweeper, InMemoryConversationStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_start_creates_system_first_conversation():
    store = InMemoryConversationStore()
    cid = store.start("prose_assistant", "sys")
    assert cid.startswith("prose_assistant-")
    msgs = store.snapshot(cid)
    assert [(m.role, m.content) for m in msgs] == [("system", "sys")]


def test_ids_are_unique():
    store = InMemoryConversationStore()
    ids = {store.start("tool", "sys") for _ in range(50)}
    assert len(ids) == 50


def test_snapshot_is_a_defensive_copy():
    store = InMemoryConversationStore()
    cid = store.start("tool", "sys")
    store.append(cid, ChatMessage(role="user", content="hi"))
    snap = store.snapshot(cid)
    snap.append(ChatMessage(role="assistant", content="injected"))
    snap[0].content = "changed"
    again = store.snapshot(cid)
    assert len(again) == 2
    assert again[0].content == "sys"


def test_unknown_ids_fail_loudly_on_append_and_snapshot():
    store = InMemoryConversationStore()
    with pytest.raises(ConversationNotFoundError) as exc:
        store.append("missing", ChatMessage(role="user", content="x"))
    assert exc.value.code == "CONVERSATION_NOT_FOUND"
    with pytest.raises(ConversationNotFoundError):
        store.snapshot("missing")


def test_reset_keeps_system_message_and_ignores_unknown():
    store = InMemoryConversationStore()
    cid = store.start("tool", "sys")
    store.append(cid, ChatMessage(role="user", content="a"))
    store.append(cid, ChatMessage(role="assistant", content="b"))
    store.reset(cid)
    assert [m.role for m in store.snapshot(cid)] == ["system"]
    store.reset("missing")


def test_delete_is_idempotent():
    store = InMemoryConversationStore()
    cid = store.start("tool", "sys")
    store.delete(cid)
    store.delete(cid)
    assert cid not in store
    assert len(store) == 0


def test_sweep_removes_only_idle_conversations():
    clock = FakeClock()
    store = InMemoryConversationStore(clock=clock)
    old = store.start("tool", "sys")
    clock.now += 200
    fresh = store.start("tool", "sys")
    clock.now += 150
    store.append(fresh, ChatMessage(role="user", content="still here"))

    removed = store.sweep(300)

    assert removed == 1
    assert old not in store
    assert fresh in store
    info = store.info(fresh)
    assert info.message_count == 2
    assert info.last_activity - info.created_at == 150
    assert store.info(old) is None


def test_sweeper_runs_periodically_and_stops():
    clock = FakeClock()
    store = InMemoryConversationStore(clock=clock)
    cid = store.start("tool", "sys")
    clock.now += 10

    sweeper = ConversationSweeper(store, interval_seconds=0.01, max_age_seconds=5)
    sweeper.start()
    try:
        deadline = time.time() + 2
        while cid in store and time.time() < deadline:
            time.sleep(0.01)
        assert cid not in store
        assert sweeper.running
    finally:
        sweeper.stop()
    assert not sweeper.running
    sweeper.stop()
