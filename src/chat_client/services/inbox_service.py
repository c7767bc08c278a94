from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from chat_client.application.exceptions import ApiError, ChannelDisconnected, MalformedEvent
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.enums import ChannelEvent
from chat_client.infrastructure.http.mappers import history_to_dto, summary_to_entity
from chat_client.infrastructure.http.schemas import ChatHistoryData, ChatListData, Envelope
from chat_client.infrastructure.ws.protocol import SendMessagePayload
from chat_client.services.merge_engine import MergeEngine
from chat_client.services.realtime_channel import RealtimeChannel
from chat_client.services.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)


async def refresh_conversations(
    pipeline: RequestPipeline,
    engine: MergeEngine,
    path: str,
) -> tuple[Conversation, ...]:
    """Refetch the conversation list and merge it into the cache."""
    response = await pipeline.get(path)
    try:
        data = Envelope[ChatListData].model_validate_json(response.content).data
    except PydanticValidationError as exc:
        raise ApiError(response.status_code, f"Unexpected conversation list: {exc}") from exc
    engine.apply_conversation_list(summary_to_entity(c) for c in data.conversations)
    logger.debug("Fetched %d conversation(s)", len(data.conversations))
    return engine.cache.conversations()


async def load_history(
    pipeline: RequestPipeline,
    engine: MergeEngine,
    path_template: str,
    counterparty_id: str,
) -> tuple[Message, ...]:
    """Refetch one counterparty's chat history and merge it into the cache."""
    response = await pipeline.get(path_template.format(user_id=counterparty_id))
    try:
        data = Envelope[ChatHistoryData].model_validate_json(response.content).data
    except PydanticValidationError as exc:
        raise ApiError(response.status_code, f"Unexpected chat history: {exc}") from exc
    engine.apply_history(history_to_dto(counterparty_id, data))
    conversation = engine.cache.find_by_counterparty(counterparty_id)
    return engine.cache.messages(conversation.id) if conversation else ()


async def open_conversation(
    pipeline: RequestPipeline,
    engine: MergeEngine,
    path_template: str,
    counterparty_id: str,
) -> tuple[Message, ...]:
    engine.open_conversation(counterparty_id)
    return await load_history(pipeline, engine, path_template, counterparty_id)


async def send_message(
    channel: RealtimeChannel,
    engine: MergeEngine,
    counterparty_id: str,
    text: str,
) -> Message:
    """Show the message right away, then hand it to the realtime channel.

    The optimistic copy is rolled back if the channel cannot take it.
    """
    try:
        payload = SendMessagePayload(to_user_id=counterparty_id, message=text)
    except PydanticValidationError as exc:
        raise MalformedEvent(ChannelEvent.SEND_MESSAGE, str(exc)) from exc
    message = engine.append_local_message(counterparty_id, text)
    try:
        await channel.publish(ChannelEvent.SEND_MESSAGE, payload)
    except ChannelDisconnected:
        engine.discard_local_message(message)
        raise
    return message
