from __future__ import annotations

from chat_client.application.dto.inbox import ChatHistoryDTO
from chat_client.domain.entities.conversation import Conversation, CounterpartyProfile, LastMessage
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.enums import MessageDirection
from chat_client.infrastructure.http.schemas import (
    ChatHistoryData,
    ChatMessageOut,
    ChatSummaryOut,
    UserOut,
)


def user_to_profile(user: UserOut) -> CounterpartyProfile:
    return CounterpartyProfile(id=user.id, name=user.name, avatar=user.avatar)


def summary_to_entity(summary: ChatSummaryOut) -> Conversation:
    last = summary.last_message
    return Conversation(
        id=summary.id,
        counterparty_id=summary.to_user.id,
        counterparty_profile=user_to_profile(summary.to_user),
        last_message=LastMessage(text=last.message, created_at=last.created_at) if last else None,
        unread_count=summary.unread_count,
    )


def message_to_entity(out: ChatMessageOut) -> Message:
    return Message(
        id=out.id,
        conversation_id=out.conversation_id,
        direction=MessageDirection.INBOUND if out.is_other_user_message else MessageDirection.OUTBOUND,
        text=out.message,
        created_at=out.created_at,
        read_flag=out.has_read,
    )


def history_to_dto(counterparty_id: str, data: ChatHistoryData) -> ChatHistoryDTO:
    profile = user_to_profile(data.other_user_details) if data.other_user_details else None
    return ChatHistoryDTO(
        counterparty_id=counterparty_id,
        messages=tuple(message_to_entity(m) for m in data.messages),
        counterparty_profile=profile,
    )
