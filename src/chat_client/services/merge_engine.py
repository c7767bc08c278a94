"""Applies live events and REST refetch results to the conversation cache.

Every entry point is total: bad input is logged and ignored so one broken
event can never leave the cache half-updated or kill the dispatch loop.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any, Iterable

from chat_client.application.dto.inbox import ChatHistoryDTO
from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.domain.entities.conversation import Conversation, CounterpartyProfile, LastMessage
from chat_client.domain.entities.message import Message
from chat_client.domain.events.message_received import MessageReceived
from chat_client.domain.value_objects.enums import MessageDirection
from chat_client.services.conversation_cache import ConversationCache

logger = logging.getLogger(__name__)


def _is_newer(candidate: LastMessage | None, current: LastMessage | None) -> bool:
    if candidate is None:
        return False
    return current is None or candidate.created_at >= current.created_at


def _last_of(messages: Iterable[Message]) -> LastMessage | None:
    latest = max(messages, key=lambda m: m.created_at, default=None)
    if latest is None:
        return None
    return LastMessage(text=latest.text, created_at=latest.created_at, message_id=latest.id)


def _pending_match(history: tuple[Message, ...], confirmed: Message) -> int | None:
    """Index of the oldest optimistic message the server echo confirms."""
    for index, candidate in enumerate(history):
        if candidate.pending and candidate.text == confirmed.text:
            return index
    return None


class MergeEngine:
    def __init__(
        self,
        cache: ConversationCache,
        *,
        viewer_id: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._cache = cache
        self._viewer_id = viewer_id
        self._clock = clock or SystemClock()
        self._active: str | None = None
        self._applied: dict[str, set[str]] = {}
        # last_message each still-pending local send displaced
        self._displaced: dict[str, LastMessage | None] = {}

    @property
    def cache(self) -> ConversationCache:
        return self._cache

    @property
    def active_counterparty(self) -> str | None:
        return self._active

    @property
    def viewer_id(self) -> str | None:
        return self._viewer_id

    @viewer_id.setter
    def viewer_id(self, value: str | None) -> None:
        self._viewer_id = value

    # -- open view -----------------------------------------------------------

    def open_conversation(self, counterparty_id: str) -> None:
        """Switch the open view; live messages for this peer now append to its history."""
        self._active = counterparty_id
        conversation = self._cache.find_by_counterparty(counterparty_id)
        if conversation is None:
            return
        if conversation.unread_count:
            self._cache.put(replace(conversation, unread_count=0))
        messages = self._cache.messages(conversation.id)
        if any(m.is_inbound and not m.read_flag for m in messages):
            self._cache.set_messages(
                conversation.id,
                tuple(replace(m, read_flag=True) if m.is_inbound else m for m in messages),
            )

    def close_conversation(self) -> None:
        self._active = None

    def reset(self) -> None:
        """Forget everything; used when the session ends."""
        self._active = None
        self._applied.clear()
        self._displaced.clear()
        self._cache.clear()

    # -- live events ---------------------------------------------------------

    def handle_event(self, payload: Any) -> None:
        """Subscription handler for the ``new_message`` channel event."""
        if not isinstance(payload, MessageReceived):
            logger.warning("Ignoring unexpected live payload: %r", type(payload).__name__)
            return
        self.apply_live_message(payload)

    def apply_live_message(self, event: MessageReceived) -> Message | None:
        try:
            return self._merge_live(event)
        except Exception:
            logger.exception("Failed to merge live message %s", getattr(event, "message_id", "?"))
            return None

    def _merge_live(self, event: MessageReceived) -> Message | None:
        peer, direction = self._resolve_peer(event)
        conversation = self._cache.find_by_counterparty(peer)
        if conversation is None:
            conversation = Conversation(
                id=event.conversation_id or peer,
                counterparty_id=peer,
                counterparty_profile=CounterpartyProfile(id=peer),
                last_message=None,
            )
            logger.info("New conversation observed with %s", peer)

        history = self._cache.messages(conversation.id)
        if event.message_id in self._applied.get(conversation.id, ()) or any(
            m.id == event.message_id for m in history
        ):
            logger.debug("Duplicate live message %s ignored", event.message_id)
            return None

        is_open = peer == self._active
        message = Message(
            id=event.message_id,
            conversation_id=conversation.id,
            direction=direction,
            text=event.text,
            created_at=event.created_at,
            read_flag=event.has_read or is_open or direction == MessageDirection.OUTBOUND,
        )

        unread = conversation.unread_count
        if not is_open and direction == MessageDirection.INBOUND and not event.has_read:
            unread += 1

        last = LastMessage(text=message.text, created_at=message.created_at, message_id=message.id)
        if not _is_newer(last, conversation.last_message):
            last = conversation.last_message
        updated = replace(conversation, last_message=last, unread_count=unread)

        pending = _pending_match(history, message) if direction == MessageDirection.OUTBOUND else None
        messages: tuple[Message, ...] | None = None
        if pending is not None:
            messages = (*history[:pending], message, *history[pending + 1:])
        elif is_open:
            messages = (*history, message)

        # Writes only from here on.
        if pending is not None:
            self._displaced.pop(history[pending].id, None)
        self._applied.setdefault(conversation.id, set()).add(event.message_id)
        if messages is not None:
            self._cache.set_messages(conversation.id, messages)
        self._cache.put(updated)
        return message

    def _resolve_peer(self, event: MessageReceived) -> tuple[str, MessageDirection]:
        if self._viewer_id is not None:
            if event.from_user_id == self._viewer_id:
                return event.to_user_id, MessageDirection.OUTBOUND
            return event.from_user_id, MessageDirection.INBOUND
        # No viewer id: if only the recipient is a known counterparty, we sent it.
        if (
            self._cache.find_by_counterparty(event.from_user_id) is None
            and self._cache.find_by_counterparty(event.to_user_id) is not None
        ):
            return event.to_user_id, MessageDirection.OUTBOUND
        return event.from_user_id, MessageDirection.INBOUND

    # -- refetch results -----------------------------------------------------

    def apply_conversation_list(self, conversations: Iterable[Conversation]) -> None:
        for fetched in conversations:
            try:
                self._merge_summary(fetched)
            except Exception:
                logger.exception("Failed to merge conversation %s", getattr(fetched, "id", "?"))

    def _merge_summary(self, fetched: Conversation) -> None:
        existing = self._cache.get(fetched.id) or self._cache.find_by_counterparty(
            fetched.counterparty_id
        )
        merged = fetched
        if existing is not None:
            if existing.id != fetched.id:
                self._cache.rekey(existing.id, fetched.id)
                self._applied[fetched.id] = self._applied.pop(existing.id, set())
            if existing.last_message is not None and not _is_newer(
                fetched.last_message, existing.last_message
            ):
                # The cache already saw something newer than this snapshot.
                merged = replace(
                    fetched,
                    last_message=existing.last_message,
                    unread_count=existing.unread_count,
                )
        if fetched.counterparty_id == self._active:
            merged = replace(merged, unread_count=0)
        self._cache.put(merged)

    def apply_history(self, history: ChatHistoryDTO) -> None:
        try:
            self._merge_history(history)
        except Exception:
            logger.exception("Failed to merge history for %s", history.counterparty_id)

    def _merge_history(self, history: ChatHistoryDTO) -> None:
        peer = history.counterparty_id
        conversation = self._cache.find_by_counterparty(peer)
        if conversation is None:
            server_id = next((m.conversation_id for m in history.messages if m.conversation_id), None)
            conversation = Conversation(
                id=server_id or peer,
                counterparty_id=peer,
                counterparty_profile=history.counterparty_profile or CounterpartyProfile(id=peer),
                last_message=None,
            )

        fetched = tuple(replace(m, conversation_id=conversation.id) for m in history.messages)
        fetched_ids = {m.id for m in fetched}
        # Anything cached that this response does not know about yet arrived later.
        extras = tuple(m for m in self._cache.messages(conversation.id) if m.id not in fetched_ids)
        merged = (*fetched, *extras)

        last = conversation.last_message
        candidate = _last_of(merged)
        if _is_newer(candidate, last):
            last = candidate
        updated = replace(
            conversation,
            counterparty_profile=history.counterparty_profile or conversation.counterparty_profile,
            last_message=last,
            unread_count=0 if peer == self._active else conversation.unread_count,
        )
        self._applied.setdefault(conversation.id, set()).update(fetched_ids)
        self._cache.set_messages(conversation.id, merged)
        self._cache.put(updated)

    # -- optimistic sends ----------------------------------------------------

    def append_local_message(self, counterparty_id: str, text: str) -> Message:
        conversation = self._cache.find_by_counterparty(counterparty_id)
        if conversation is None:
            conversation = Conversation(
                id=counterparty_id,
                counterparty_id=counterparty_id,
                counterparty_profile=CounterpartyProfile(id=counterparty_id),
                last_message=None,
            )
        message = Message(
            id=f"local-{uuid.uuid4().hex}",
            conversation_id=conversation.id,
            direction=MessageDirection.OUTBOUND,
            text=text,
            created_at=self._clock.now(),
            read_flag=True,
            pending=True,
        )
        self._cache.set_messages(conversation.id, (*self._cache.messages(conversation.id), message))
        self._displaced[message.id] = conversation.last_message
        last = LastMessage(text=text, created_at=message.created_at, message_id=message.id)
        self._cache.put(replace(conversation, last_message=last))
        return message

    def discard_local_message(self, message: Message) -> None:
        """Roll back an optimistic message whose send never left the client."""
        previous = self._displaced.pop(message.id, None)
        conversation = self._cache.get(message.conversation_id)
        if conversation is None:
            return
        remaining = tuple(m for m in self._cache.messages(conversation.id) if m.id != message.id)
        self._cache.set_messages(conversation.id, remaining)
        last = conversation.last_message
        if last is not None and last.message_id == message.id:
            restored = _last_of(remaining)
            if not _is_newer(restored, previous):
                restored = previous
            self._cache.put(replace(conversation, last_message=restored))
