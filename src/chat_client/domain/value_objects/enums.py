from __future__ import annotations

from enum import StrEnum


class MessageDirection(StrEnum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class RefreshStatus(StrEnum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"


class ChannelEvent(StrEnum):
    JOIN = "join"
    NEW_MESSAGE = "new_message"
    SEND_MESSAGE = "send_message"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
