"""Response shapes of the REST backend (camelCase on the wire)."""
from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from chat_client.infrastructure.timestamps import UtcDatetime

T = TypeVar("T")


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class Envelope(WireModel, Generic[T]):
    message: str | None = None
    data: T  # type: ignore[type-var]


class SignInRequest(WireModel):
    email: str
    password: str
    role: str


class SignInData(WireModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class AccessTokenData(WireModel):
    access_token: str = Field(alias="accessToken")


class UserOut(WireModel):
    id: str
    name: str | None = None
    avatar: str | None = None


class LastMessageOut(WireModel):
    message: str
    created_at: UtcDatetime = Field(alias="createdAt")


class ChatSummaryOut(WireModel):
    id: str
    to_user: UserOut = Field(alias="toUser")
    last_message: LastMessageOut | None = Field(default=None, alias="lastMessage")
    unread_count: int = Field(default=0, alias="unReadCount")


class ChatListData(WireModel):
    conversations: list[ChatSummaryOut] = []


class ChatMessageOut(WireModel):
    id: str
    conversation_id: str = Field(default="", alias="conversationId")
    is_other_user_message: bool = Field(alias="isOtherUserMessage")
    message: str
    created_at: UtcDatetime = Field(alias="createdAt")
    has_read: bool = Field(default=False, alias="hasRead")


class ChatHistoryData(WireModel):
    messages: list[ChatMessageOut] = []
    other_user_details: UserOut | None = Field(default=None, alias="otherUserDetails")
