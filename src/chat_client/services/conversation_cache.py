from __future__ import annotations

import itertools
import logging
from datetime import date, tzinfo
from typing import Callable

from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.date_group import DateGroup
from chat_client.domain.entities.message import Message
from chat_client.services.grouping import group_by_date, local_day

logger = logging.getLogger(__name__)

CacheListener = Callable[[str | None], None]


class ConversationCache:
    """Read-mostly store of conversation summaries and message histories.

    Only the merge engine writes to it. Readers get immutable snapshots and can
    register listeners that fire with the id of the conversation that changed.
    """

    def __init__(self, clock: Clock | None = None, tz: tzinfo | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tz = tz
        self._seq = itertools.count()
        self._conversations: dict[str, Conversation] = {}
        self._inserted: dict[str, int] = {}
        self._by_counterparty: dict[str, str] = {}
        self._order: list[str] = []
        self._messages: dict[str, tuple[Message, ...]] = {}
        self._groups: dict[str, tuple[date, list[DateGroup]]] = {}
        self._listeners: list[CacheListener] = []

    # -- reads ---------------------------------------------------------------

    def conversations(self) -> tuple[Conversation, ...]:
        return tuple(self._conversations[cid] for cid in self._order)

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def find_by_counterparty(self, counterparty_id: str) -> Conversation | None:
        cid = self._by_counterparty.get(counterparty_id)
        return self._conversations.get(cid) if cid is not None else None

    def messages(self, conversation_id: str) -> tuple[Message, ...]:
        return self._messages.get(conversation_id, ())

    def date_groups(self, conversation_id: str) -> list[DateGroup]:
        today = local_day(self._clock.now(), self._tz)
        cached = self._groups.get(conversation_id)
        if cached is None or cached[0] != today:
            groups = group_by_date(self.messages(conversation_id), self._clock.now(), self._tz)
            self._groups[conversation_id] = (today, groups)
            return list(groups)
        return list(cached[1])

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # -- writes --------------------------------------------------------------

    def put(self, conversation: Conversation) -> None:
        cid = conversation.id
        previous = self._conversations.get(cid)
        if previous is not None and previous.counterparty_id != conversation.counterparty_id:
            self._by_counterparty.pop(previous.counterparty_id, None)
        if cid not in self._inserted:
            self._inserted[cid] = next(self._seq)
        self._conversations[cid] = conversation
        self._by_counterparty[conversation.counterparty_id] = cid
        self._resort()
        self._notify(cid)

    def set_messages(self, conversation_id: str, messages: tuple[Message, ...]) -> None:
        self._messages[conversation_id] = messages
        self._groups.pop(conversation_id, None)
        self._notify(conversation_id)

    def rekey(self, old_id: str, new_id: str) -> None:
        """Move a conversation first seen under a provisional id to its real id."""
        if old_id == new_id or old_id not in self._conversations:
            return
        conversation = self._conversations.pop(old_id)
        self._inserted[new_id] = self._inserted.pop(old_id)
        if old_id in self._messages:
            self._messages[new_id] = self._messages.pop(old_id)
        self._groups.pop(old_id, None)
        self._conversations[new_id] = Conversation(
            id=new_id,
            counterparty_id=conversation.counterparty_id,
            counterparty_profile=conversation.counterparty_profile,
            last_message=conversation.last_message,
            unread_count=conversation.unread_count,
        )
        self._by_counterparty[conversation.counterparty_id] = new_id
        self._resort()

    def clear(self) -> None:
        self._conversations.clear()
        self._inserted.clear()
        self._by_counterparty.clear()
        self._order.clear()
        self._messages.clear()
        self._groups.clear()
        self._notify(None)

    def _resort(self) -> None:
        # Newest last message first, empty conversations last, insertion order on ties.
        def _key(cid: str) -> tuple[bool, float, int]:
            last = self._conversations[cid].last_message
            ts = -last.created_at.timestamp() if last is not None else 0.0
            return (last is None, ts, self._inserted[cid])

        self._order = sorted(self._conversations, key=_key)

    def _notify(self, conversation_id: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(conversation_id)
            except Exception:
                logger.exception("Conversation cache listener failed")
