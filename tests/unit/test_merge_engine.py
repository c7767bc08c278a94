from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chat_client.application.dto.inbox import ChatHistoryDTO
from chat_client.domain.entities.conversation import CounterpartyProfile
from chat_client.domain.value_objects.enums import MessageDirection
from chat_client.services.conversation_cache import ConversationCache
from chat_client.services.merge_engine import MergeEngine
from tests.conftest import NOW, make_conversation, make_event, make_message

T = NOW - timedelta(hours=1)


@pytest.fixture
def cache(clock) -> ConversationCache:
    return ConversationCache(clock, timezone.utc)


@pytest.fixture
def engine(cache, clock) -> MergeEngine:
    engine = MergeEngine(cache, viewer_id="admin-1", clock=clock)
    engine.apply_conversation_list(
        [
            make_conversation(conversation_id="c-1", counterparty_id="peer-1", last_at=T),
            make_conversation(conversation_id="c-2", counterparty_id="peer-2", last_at=T + timedelta(minutes=5)),
        ]
    )
    return engine


def _ids(cache: ConversationCache) -> list[str]:
    return [c.id for c in cache.conversations()]


def test_conversation_order_newest_first_empty_last(cache):
    engine = MergeEngine(cache)
    engine.apply_conversation_list(
        [
            make_conversation(conversation_id="t", counterparty_id="p1", last_at=T),
            make_conversation(conversation_id="none", counterparty_id="p2"),
            make_conversation(conversation_id="t5", counterparty_id="p3", last_at=T + timedelta(minutes=5)),
            make_conversation(conversation_id="none-2", counterparty_id="p4"),
        ]
    )

    assert _ids(cache) == ["t5", "t", "none", "none-2"]


def test_live_message_for_open_conversation_appends_without_unread(engine, cache):
    engine.open_conversation("peer-1")

    engine.apply_live_message(make_event(message_id="m-9", from_user_id="peer-1"))

    conversation = cache.get("c-1")
    assert [m.id for m in cache.messages("c-1")] == ["m-9"]
    assert conversation.unread_count == 0
    assert conversation.last_message.message_id == "m-9"
    assert _ids(cache)[0] == "c-1"


def test_live_message_for_other_conversation_counts_unread_and_moves_first(engine, cache):
    engine.open_conversation("peer-2")

    engine.apply_live_message(make_event(message_id="m-9", from_user_id="peer-1"))

    assert cache.get("c-1").unread_count == 1
    assert cache.messages("c-1") == ()
    assert _ids(cache) == ["c-1", "c-2"]


@pytest.mark.parametrize("open_peer", ["peer-1", "peer-2"])
def test_same_event_twice_is_merged_once(engine, cache, open_peer):
    engine.open_conversation(open_peer)
    event = make_event(message_id="m-9", from_user_id="peer-1")

    engine.apply_live_message(event)
    assert engine.apply_live_message(event) is None

    assert len(cache.messages("c-1")) == (1 if open_peer == "peer-1" else 0)
    assert cache.get("c-1").unread_count == (0 if open_peer == "peer-1" else 1)


def test_event_from_unknown_peer_creates_conversation(engine, cache):
    engine.apply_live_message(make_event(message_id="m-1", from_user_id="stranger", conversation_id="c-77"))

    conversation = cache.find_by_counterparty("stranger")
    assert conversation.id == "c-77"
    assert conversation.unread_count == 1
    assert _ids(cache)[0] == "c-77"


def test_outbound_echo_does_not_count_unread(engine, cache):
    engine.apply_live_message(make_event(message_id="m-5", from_user_id="admin-1", to_user_id="peer-1"))

    assert cache.get("c-1").unread_count == 0
    assert cache.get("c-1").last_message.message_id == "m-5"


def test_older_live_event_does_not_replace_last_message(engine, cache):
    engine.apply_live_message(make_event(message_id="old", from_user_id="peer-2", created_at=T - timedelta(days=1)))

    conversation = cache.get("c-2")
    assert conversation.last_message.created_at == T + timedelta(minutes=5)
    assert conversation.unread_count == 1


def test_stale_refetch_does_not_overwrite_newer_live_state(engine, cache):
    engine.apply_live_message(make_event(message_id="m-9", from_user_id="peer-1", created_at=NOW))

    engine.apply_conversation_list([make_conversation(conversation_id="c-1", counterparty_id="peer-1", last_at=T)])

    conversation = cache.get("c-1")
    assert conversation.last_message.message_id == "m-9"
    assert conversation.unread_count == 1


def test_newer_refetch_replaces_derived_fields(engine, cache):
    engine.apply_live_message(make_event(message_id="m-9", from_user_id="peer-1", created_at=NOW))

    engine.apply_conversation_list(
        [
            make_conversation(
                conversation_id="c-1",
                counterparty_id="peer-1",
                last_at=NOW + timedelta(minutes=1),
                last_text="server",
                unread=4,
            )
        ]
    )

    conversation = cache.get("c-1")
    assert conversation.last_message.text == "server"
    assert conversation.unread_count == 4


def test_refetch_adopts_server_id_for_live_created_conversation(engine, cache):
    engine.apply_live_message(make_event(message_id="m-1", from_user_id="stranger"))
    assert cache.find_by_counterparty("stranger").id == "stranger"

    engine.apply_conversation_list([make_conversation(conversation_id="c-99", counterparty_id="stranger", last_at=NOW)])

    assert cache.get("stranger") is None
    assert cache.find_by_counterparty("stranger").id == "c-99"


def test_history_merge_keeps_messages_that_arrived_after_the_fetch(engine, cache):
    engine.open_conversation("peer-1")
    engine.apply_live_message(make_event(message_id="live", from_user_id="peer-1", created_at=NOW))

    engine.apply_history(
        ChatHistoryDTO(
            counterparty_id="peer-1",
            messages=(
                make_message(message_id="h1", conversation_id="", created_at=T),
                make_message(message_id="h2", conversation_id="", created_at=T + timedelta(minutes=1)),
            ),
            counterparty_profile=CounterpartyProfile(id="peer-1", name="Jane"),
        )
    )

    assert [m.id for m in cache.messages("c-1")] == ["h1", "h2", "live"]
    assert all(m.conversation_id == "c-1" for m in cache.messages("c-1"))
    assert cache.get("c-1").counterparty_profile.name == "Jane"

    engine.apply_live_message(make_event(message_id="h2", from_user_id="peer-1"))
    assert len(cache.messages("c-1")) == 3


def test_opening_conversation_clears_unread(engine, cache):
    engine.apply_live_message(make_event(message_id="m-1", from_user_id="peer-1"))
    engine.apply_live_message(make_event(message_id="m-2", from_user_id="peer-1"))
    assert cache.get("c-1").unread_count == 2

    engine.open_conversation("peer-1")
    engine.close_conversation()
    engine.apply_live_message(make_event(message_id="m-3", from_user_id="peer-1"))

    assert cache.get("c-1").unread_count == 1
    assert engine.active_counterparty is None


def test_optimistic_message_is_confirmed_by_echo(engine, cache):
    engine.open_conversation("peer-1")
    local = engine.append_local_message("peer-1", "on my way")

    assert local.pending
    assert cache.messages("c-1")[-1].id == local.id
    assert _ids(cache)[0] == "c-1"

    engine.apply_live_message(
        make_event(message_id="srv-1", from_user_id="admin-1", to_user_id="peer-1", text="on my way")
    )

    messages = cache.messages("c-1")
    assert [m.id for m in messages] == ["srv-1"]
    assert messages[0].direction == MessageDirection.OUTBOUND
    assert not messages[0].pending


def test_discarded_optimistic_message_restores_last_message(engine, cache):
    before = cache.get("c-1").last_message
    local = engine.append_local_message("peer-1", "never sent")

    engine.discard_local_message(local)

    assert cache.messages("c-1") == ()
    assert cache.get("c-1").last_message == before


def test_bad_input_never_raises(engine, cache):
    engine.handle_event({"not": "an event"})
    engine.apply_live_message(None)  # type: ignore[arg-type]
    engine.apply_conversation_list([None])  # type: ignore[list-item]

    assert _ids(cache) == ["c-2", "c-1"]


def test_date_groups_follow_message_changes(engine, cache, clock):
    engine.open_conversation("peer-1")
    engine.apply_live_message(make_event(message_id="a", from_user_id="peer-1", created_at=NOW - timedelta(days=1)))
    assert [g.label for g in cache.date_groups("c-1")] == ["Yesterday"]

    engine.apply_live_message(make_event(message_id="b", from_user_id="peer-1", created_at=NOW))
    assert [g.label for g in cache.date_groups("c-1")] == ["Yesterday", "Today"]

    clock.advance(timedelta(days=1))
    assert [g.label for g in cache.date_groups("c-1")] == ["January 16, 2024", "Yesterday"]


def test_cache_listeners_are_notified(engine, cache):
    changed: list[str | None] = []
    cache.add_listener(changed.append)

    engine.apply_live_message(make_event(message_id="m-1", from_user_id="peer-1"))

    assert "c-1" in changed


def test_reset_forgets_everything(engine, cache):
    engine.open_conversation("peer-1")
    engine.reset()

    assert cache.conversations() == ()
    assert engine.active_counterparty is None


def test_failed_merge_leaves_no_trace_and_redelivery_applies(engine, cache):
    engine.open_conversation("peer-1")
    naive = make_event(message_id="m-7", from_user_id="peer-1", created_at=datetime(2024, 1, 17, 13))

    assert engine.apply_live_message(naive) is None
    assert cache.messages("c-1") == ()
    assert cache.get("c-1").last_message.created_at == T

    redelivered = make_event(message_id="m-7", from_user_id="peer-1", created_at=NOW + timedelta(hours=1))
    assert engine.apply_live_message(redelivered) is not None

    assert [m.id for m in cache.messages("c-1")] == ["m-7"]
    assert cache.get("c-1").last_message.message_id == "m-7"
