"""Socket.IO event payload models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chat_client.application.exceptions import MalformedEvent
from chat_client.domain.events.message_received import MessageReceived
from chat_client.domain.value_objects.enums import ChannelEvent
from chat_client.infrastructure.timestamps import UtcDatetime


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class NewMessagePayload(_Payload):
    """Server → Client."""

    id: str = Field(min_length=1)
    from_user_id: str = Field(alias="fromUserId", min_length=1)
    to_user_id: str = Field(alias="toUserId", min_length=1)
    message: str
    created_at: UtcDatetime = Field(alias="createdAt")
    has_read: bool = Field(default=False, alias="hasRead")
    conversation_id: str | None = Field(default=None, alias="conversationId")

    def to_event(self) -> MessageReceived:
        return MessageReceived(
            message_id=self.id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            text=self.message,
            created_at=self.created_at,
            has_read=self.has_read,
            conversation_id=self.conversation_id or None,
        )


class SendMessagePayload(_Payload):
    """Client → Server."""

    to_user_id: str = Field(alias="toUserId", min_length=1)
    message: str = Field(min_length=1)


INBOUND_SCHEMAS: dict[str, type[_Payload]] = {
    ChannelEvent.NEW_MESSAGE: NewMessagePayload,
}

OUTBOUND_SCHEMAS: dict[str, type[_Payload]] = {
    ChannelEvent.SEND_MESSAGE: SendMessagePayload,
}


def parse_inbound(event: str, raw: Any) -> Any:
    """Validate a pushed payload. Events without a schema pass through as-is."""
    schema = INBOUND_SCHEMAS.get(event)
    if schema is None:
        return raw
    if not isinstance(raw, dict):
        raise MalformedEvent(event, f"expected an object, got {type(raw).__name__}")
    try:
        payload = schema.model_validate(raw)
    except ValidationError as exc:
        raise MalformedEvent(event, str(exc)) from exc
    if isinstance(payload, NewMessagePayload):
        return payload.to_event()
    return payload


def serialize_outbound(event: str, payload: Any) -> Any:
    schema = OUTBOUND_SCHEMAS.get(event)
    if schema is None:
        return payload
    if isinstance(payload, BaseModel):
        model = payload
    else:
        try:
            model = schema.model_validate(payload)
        except ValidationError as exc:
            raise MalformedEvent(event, str(exc)) from exc
    return model.model_dump(mode="json", by_alias=True)
